import argparse
import sys

from . import pipeline
from .callbacks import TqdmObserver
from .errors import BGMExportError
from .ffmpeg_runner import check_ffmpeg
from .logging_utils import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bgm-export", description="Game BGM fingerprinting and export"
    )
    parser.add_argument("--log-level", type=str, help="Log level (DEBUG, INFO, WARNING)")
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # PROCESS
    process_parser = subparsers.add_parser(
        "process", help="Hash, diff and export tracks from the archive"
    )
    process_parser.add_argument("--archive", "-a", type=str, help="Archive root directory")
    process_parser.add_argument("--sheet", type=str, help="BGM sheet, relative to the archive")

    selection = process_parser.add_mutually_exclusive_group()
    selection.add_argument(
        "--index", "-i", type=int, nargs="+", help="Sheet rows to process (default: all)"
    )
    selection.add_argument("--title", "-t", type=str, help="Process the row with this file or title")

    process_parser.add_argument("--workers", "-w", type=int, help="Number of parallel workers")
    process_parser.add_argument("--save", type=str, help="Write a new manifest to this path")
    process_parser.add_argument(
        "--compare", type=str, help="Only export tracks changed since this manifest"
    )

    export = process_parser.add_mutually_exclusive_group()
    export.add_argument("--export-ogg", type=str, metavar="DIR", help="Export OGG files to DIR")
    export.add_argument("--export-mp3", type=str, metavar="DIR", help="Export MP3 files to DIR")

    # SHEET LISTING
    sheet_parser = subparsers.add_parser(
        "sheet", help="Write the BGM sheet with row indices to a CSV file"
    )
    sheet_parser.add_argument("output", type=str, help="CSV file to write (replaced if present)")
    sheet_parser.add_argument("--archive", "-a", type=str, help="Archive root directory")
    sheet_parser.add_argument("--sheet", type=str, help="BGM sheet, relative to the archive")

    # CHECK FFMPEG
    subparsers.add_parser("check", help="Verify dependencies")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "check":
        print("Checking dependencies...")
        if check_ffmpeg():
            print("✅ ffmpeg found.")
        else:
            print("❌ ffmpeg NOT found.")
            sys.exit(1)

    elif args.command == "process":
        # Convert args to dict, filtering None
        cli_dict = {
            k: v
            for k, v in vars(args).items()
            if v is not None and k not in ("command", "log_level")
        }
        observer = TqdmObserver()
        try:
            report = pipeline.run_process(cli_dict, observer)
        except BGMExportError as e:
            print(f"❌ {e}", file=sys.stderr)
            sys.exit(1)

        print("\n" + "=" * 60)
        print("PROCESSING SUMMARY")
        print("=" * 60)
        print(f"Resolved:             {report.resolved}")
        print(f"Hashed:               {report.hashed}")
        print(f"Changed:              {report.changed}")
        print(f"Unchanged:            {report.unchanged}")
        print(f"Exported:             {report.exported}")
        print(f"Skipped (no audio):   {report.skipped}")
        print(f"Errors:               {report.errored}")
        print(f"Files written:        {len(report.written)}")
        print("=" * 60)
        for index, reason in observer.errors:
            print(f"  ✗ Track {index}: {reason}")

    elif args.command == "sheet":
        cli_dict = {
            k: v
            for k, v in vars(args).items()
            if v is not None and k in ("archive", "sheet")
        }
        try:
            count = pipeline.run_sheet_listing(cli_dict, args.output)
        except BGMExportError as e:
            print(f"❌ {e}", file=sys.stderr)
            sys.exit(1)
        print(f"✅ Wrote {count} rows to {args.output}")

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
