"""Exception handling for CLI command handlers."""

import json
import sys
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable

from tritoncloud.cli.console import print_error
from tritoncloud.constants import EXIT_ERROR, EXIT_OK
from tritoncloud.exceptions import TritonError
from tritoncloud.logger import get_logger

if TYPE_CHECKING:
    import argparse

logger = get_logger(__name__)


def report_error(err: BaseException, args: "argparse.Namespace", context: str) -> int:
    """Print ``err`` for the user and return the exit status it maps to."""
    if isinstance(err, TritonError):
        name, message, status = err.name, err.message, err.exit_status
        payload = err.to_dict()
    else:
        name, message, status = "InternalError", str(err) or type(err).__name__, EXIT_ERROR
        payload = {"error": name, "message": message}

    if getattr(args, "json", False):
        print(json.dumps(payload), file=sys.stderr)
    else:
        print_error(f"tritoncloud {context}: error ({name}): {message}")
    return status


def handle_cli_exceptions(context: str) -> Callable:
    """
    Turn errors raised by an async command handler into an exit status.

    The wrapped handler returns an exit status, or None for success.

    Args:
        context: Command name used in error messages and logs
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(args: "argparse.Namespace") -> int:
            try:
                result = await func(args)
            except TritonError as e:
                logger.debug("command failed", context=context, error=e.name, exc_info=True)
                return report_error(e, args, context)
            except (OSError, ValueError) as e:
                logger.debug("command failed unexpectedly", context=context, exc_info=True)
                return report_error(e, args, context)
            return EXIT_OK if result is None else result

        return wrapper

    return decorator
