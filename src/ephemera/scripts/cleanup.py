"""Manually preview or run the expiration sweep."""
from __future__ import annotations

import argparse
import sys
from collections.abc import Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ephemera.core.errors import StoreUnavailable
from ephemera.core.settings import settings
from ephemera.services.cleanup import CleanupRunner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete expired posts and everything attached to them")
    parser.add_argument(
        "--preview",
        action="store_true",
        help="Only report what would be deleted.",
    )
    parser.add_argument(
        "--direct",
        action="store_true",
        help="Use the explicit dependent-deletion path instead of the cascading sweep.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip the confirmation prompt.",
    )
    return parser


def run_cleanup(
    args: argparse.Namespace,
    runner: CleanupRunner,
    confirm: Callable[[str], str] = input,
) -> int:
    """Execute the command and return the process exit code."""
    preview = runner.preview()
    if preview.total_expired == 0:
        print("[cleanup] no expired content found")
        return 0

    print(f"[cleanup] total expired posts: {preview.total_expired}")
    for row in preview.by_space:
        print(f"[cleanup]   {row['space']}: {row['expired_posts']} posts")
    if args.preview:
        return 0

    if not args.force:
        answer = confirm("Deletion is irreversible. Proceed? (yes/no): ")
        if answer.strip().lower() != "yes":
            print("[cleanup] cancelled")
            return 0

    result = runner.run(direct=args.direct)
    if result is None:
        print("[cleanup] another sweep is already running", file=sys.stderr)
        return 1
    print(
        f"[cleanup] deleted {result.deleted_posts} posts and "
        f"{result.deleted_replies} replies in {result.duration_ms}ms"
    )
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    from ephemera.db.session import SessionLocal

    runner = CleanupRunner(SessionLocal, settings)
    try:
        code = run_cleanup(args, runner)
    except (SQLAlchemyError, StoreUnavailable) as exc:
        print(f"[cleanup] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
