"""CLI entry point: ``python -m career_vault <command>``."""

from __future__ import annotations

import sys

from career_vault.cli import HANDLERS, build_parser
from career_vault.errors import ActionableError
from career_vault.logging import configure_file_logging, get_logger, set_verbosity

logger = get_logger(__name__)


def _report(exc: ActionableError) -> None:
    print(f"Error: {exc.error}", file=sys.stderr)
    if exc.suggestion:
        print(f"  → {exc.suggestion}", file=sys.stderr)
    if exc.troubleshooting:
        for step in exc.troubleshooting.steps:
            print(f"    {step}", file=sys.stderr)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    set_verbosity(args.verbose)
    if args.log_dir:
        configure_file_logging(args.log_dir)

    try:
        HANDLERS[args.command](args)
    except ActionableError as exc:
        _report(exc)
        sys.exit(1)
    except Exception as exc:
        # Anything else is classified by message and reported the same way
        logger.exception("Command %r failed", args.command)
        _report(ActionableError.from_exception(exc, "career-vault", args.command))
        sys.exit(1)


if __name__ == "__main__":
    main()
