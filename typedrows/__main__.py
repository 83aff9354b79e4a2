"""Command-line interface: decode a CSV file and print one record per line."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from . import DecodeError, Dialect, RowStream, TypedRowsError, __version__, format_record

logger = logging.getLogger(__name__)


def _report(err: DecodeError) -> None:
    print(f"Error at line {err.line}, column {err.column}: {err.message}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="typedrows",
        description="Decode a CSV file into typed rows",
        epilog="""
Examples:
  %(prog)s people.csv --types str,int,float
  %(prog)s people.csv --types name:str,age:int --skip-lines 1
  %(prog)s data.tsv --types int,int --delimiter $'\\t' --keep-going
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("path", type=Path, help="CSV file to decode")
    parser.add_argument(
        "--types",
        required=True,
        help="Comma-separated column types (str, int, float, bool, decimal, datetime, date, ...)",
    )
    parser.add_argument("--delimiter", default=",", help="Field delimiter (default: ',')")
    parser.add_argument("--quotechar", default='"', help="Quote character (default: '\"')")
    parser.add_argument(
        "--skip-lines",
        type=int,
        default=0,
        dest="skip_lines",
        help="Number of leading lines to discard (default: 0)",
    )
    parser.add_argument(
        "--simple-split",
        action="store_true",
        dest="simple_split",
        help="Split on the delimiter before stripping quotes",
    )
    parser.add_argument(
        "--keep-going",
        action="store_true",
        dest="keep_going",
        help="Report every bad row instead of stopping at the first",
    )
    parser.add_argument("--encoding", default="utf-8", help="File encoding (default: utf-8)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        dialect = Dialect(
            delimiter=args.delimiter,
            quotechar=args.quotechar,
            protect_delimiters=not args.simple_split,
        )
    except TypedRowsError as e:
        parser.error(str(e))

    failures = 0
    try:
        with args.path.open("r", encoding=args.encoding, newline="") as f:
            try:
                stream = RowStream(f, args.types, skip_lines=args.skip_lines, dialect=dialect)
            except TypedRowsError as e:
                parser.error(str(e))

            logger.debug("Decoding %s with schema %s", args.path, stream.schema.types)
            if args.keep_going:
                for result in stream.results():
                    if result.ok:
                        print(format_record(result.record))
                    else:
                        failures += 1
                        _report(result.error)
            else:
                try:
                    for record in stream:
                        print(format_record(record))
                except DecodeError as e:
                    _report(e)
                    return 1
    except (OSError, UnicodeDecodeError) as e:
        print(f"Error: cannot read {args.path}: {e}", file=sys.stderr)
        return 2

    logger.debug("Decoded %d row(s), %d failed", stream.rows_decoded, failures)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
