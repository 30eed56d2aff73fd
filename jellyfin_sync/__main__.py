"""
Console entry point: runs the Typer app and turns errors that escape a command
into a panel and a process exit code.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from jellyfin_sync.cli.app import app
from jellyfin_sync.cli.formatters import format_error_with_suggestions
from jellyfin_sync.exceptions import (
    AuthenticationError,
    ConfigurationError,
    JellyfinSyncError,
    LocalIOError,
    QueueClosedError,
    RemoteApiError,
    RepositoryError,
    UnauthenticatedError,
)

log = logging.getLogger("jellyfin_sync")

EXIT_FAILURE = 1
EXIT_CANCELLED = 130

# Checked in order, so subclasses must come before their bases.
EXIT_CODES: tuple[tuple[type[BaseException], int], ...] = (
    (UnauthenticatedError, 2),
    (AuthenticationError, 2),
    (ConfigurationError, 3),
    (RemoteApiError, 4),
    (LocalIOError, 5),
    (RepositoryError, 5),
    (QueueClosedError, EXIT_CANCELLED),
)


def exit_code_for(error: BaseException) -> int:
    """Maps an error that escaped the CLI to the process exit code."""
    if isinstance(error, (KeyboardInterrupt, asyncio.CancelledError)):
        return EXIT_CANCELLED
    for error_type, code in EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return EXIT_FAILURE


def main() -> None:
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    console = Console(stderr=True)

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError) as e:
        console.print("\n[yellow]⚠️  Sync interrupted. Finished albums are kept.[/yellow]")
        sys.exit(exit_code_for(e))
    except QueueClosedError as e:
        # A request raced the shutdown of the download queue.
        console.print(f"\n[yellow]⚠️  Download queue already closed:[/yellow] {e}")
        sys.exit(exit_code_for(e))
    except JellyfinSyncError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(exit_code_for(e))
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        log.debug("Full traceback:", exc_info=True)
        sys.exit(exit_code_for(e))


if __name__ == "__main__":
    main()
