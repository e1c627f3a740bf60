import functools
from collections.abc import Callable
from typing import Any

import structlog
import typer
from pydantic import ValidationError as ModelValidationError

from sbomgraph.core.errors import SbomGraphError
from sbomgraph.core.logging import console
from sbomgraph.core.validation import ValidationError

logger = structlog.get_logger('cli')


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to handle exceptions in CLI commands nicely."""
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except ValidationError as e:
            console.print(f"[bold red]Invalid Input:[/] {e}")
            raise typer.Exit(1)
        except (SbomGraphError, ModelValidationError) as e:
            console.print(f"[bold red]Analysis Failed:[/] {e}")
            logger.debug('Fatal analysis error', exc_info=True)
            raise typer.Exit(1)
        except KeyboardInterrupt:
            console.print('\n[yellow]Operation cancelled by user.[/]')
            raise typer.Exit(130)
        except Exception as e:
            console.print(f"[bold red]Unexpected Error:[/] {e}")
            logger.exception('Unexpected error')
            raise typer.Exit(1)
    return wrapper
