"""CLI entry point with resource-action structure."""

import asyncio
from typing import Optional

from tritoncloud.cli.console import print_error
from tritoncloud.cli.parser import build_parser
from tritoncloud.constants import EXIT_INTERRUPTED, EXIT_USAGE
from tritoncloud.logger import get_logger, setup_logging

logger = get_logger(__name__)


async def main(argv: Optional[list[str]] = None) -> int:
    """Parse arguments and run the selected command handler."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level="DEBUG" if args.verbose else None)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return EXIT_USAGE

    logger.debug("running command", resource=args.resource, action=getattr(args, "action", None))
    return await handler(args)


def cli_main() -> int:
    """Entry point function for console scripts."""
    try:
        return asyncio.run(main())
    except KeyboardInterrupt:
        print_error("interrupted")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(cli_main())
