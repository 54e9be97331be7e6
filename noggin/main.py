import argparse
from typing import Optional, Sequence

from noggin.app import AppSettings, run_practice_feed

__all__ = ["main"]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="noggin-feed",
        description="List a user's modules that are due for review, most urgent first.",
    )
    parser.add_argument("user_id", help="Owner of the modules.")
    parser.add_argument(
        "--all",
        action="store_true",
        dest="include_unscheduled",
        help="Also list modules that have never been reviewed.",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point for the application."""
    args = _build_parser().parse_args(argv)
    settings = AppSettings.from_env()
    run_practice_feed(settings, args.user_id, include_unscheduled=args.include_unscheduled)


if __name__ == "__main__":
    main()
