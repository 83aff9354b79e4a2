"""Tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path

import pytest

from typedrows.__main__ import main


@pytest.fixture
def people_csv(tmp_path: Path) -> Path:
    path = tmp_path / "people.csv"
    path.write_text('name,age,height\n"Alice",30,5.5\nBob,thirty,5.5\nCid,3,3.5\n', encoding="utf-8")
    return path


def test_prints_records_until_first_error(people_csv: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main([str(people_csv), "--types", "str,int,float", "--skip-lines", "1"])
    out, err = capsys.readouterr()
    assert code == 1
    assert out.splitlines() == ["{Alice, 30, 5.5}"]
    assert "Error at line 2, column 1: error parsing value" in err


def test_keep_going_reports_every_bad_row(people_csv: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main([str(people_csv), "--types", "str,int,float", "--skip-lines", "1", "--keep-going"])
    out, err = capsys.readouterr()
    assert code == 1
    assert out.splitlines() == ["{Alice, 30, 5.5}", "{Cid, 3, 3.5}"]
    assert err.count("Error at line") == 1


def test_clean_file_exits_zero(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "ok.tsv"
    path.write_text("1\t2\n3\t4\n", encoding="utf-8")
    code = main([str(path), "--types", "int,int", "--delimiter", "\t"])
    out, _ = capsys.readouterr()
    assert code == 0
    assert out.splitlines() == ["{1, 2}", "{3, 4}"]


def test_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main([str(tmp_path / "nope.csv"), "--types", "int"])
    _, err = capsys.readouterr()
    assert code == 2
    assert "cannot read" in err


def test_bad_schema_is_usage_error(people_csv: Path) -> None:
    with pytest.raises(SystemExit) as exc:
        main([str(people_csv), "--types", "str,integer"])
    assert exc.value.code == 2


def test_undecodable_file_is_read_error(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "latin.csv"
    path.write_bytes(b"\xff\xfe,1\n")
    code = main([str(path), "--types", "str,int"])
    _, err = capsys.readouterr()
    assert code == 2
    assert "cannot read" in err
