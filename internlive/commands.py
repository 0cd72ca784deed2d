"""Optimistic command runner.

A command is a local ``Mutation`` already applied to the store plus the REST
call that persists it. If the call fails the mutation is reverted and the
failure comes back in the ``CommandResult`` instead of being raised.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .errors import ApiError
from .log import get_logger
from .store import Mutation

logger = get_logger("commands")


@dataclass
class CommandResult:
    ok: bool
    value: Any = None
    error: Optional[ApiError] = None
    inverse: Optional[Mutation] = None

    @property
    def message(self) -> str:
        return self.error.message if self.error else ""


async def run_optimistic(mutation: Mutation, request: Callable[..., Any], *args: Any) -> CommandResult:
    """Run the blocking ``request`` in a worker thread behind ``mutation``."""
    try:
        value = await asyncio.to_thread(request, *args)
    except ApiError as exc:
        mutation.revert()
        logger.warning("%s failed, rolled back: %s", mutation.label, exc.message)
        return CommandResult(ok=False, error=exc, inverse=mutation)
    except BaseException:
        mutation.revert()
        raise
    return CommandResult(ok=True, value=value, inverse=mutation)
