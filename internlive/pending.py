"""Buffer for outbound events attempted while the channel is down.

Last value wins per event name. This is not an outbox: entries are lost on
disconnect and each one is emitted at most once on reconnect.
"""
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .events import EventKey, EventName, event_key
from .log import get_logger

logger = get_logger("pending")

# events where dropping a superseded payload loses information
_LOSSY_EVENTS = {EventName.MESSAGE_READ.value}


@dataclass
class PendingEmit:
    event_name: str
    payload: Any
    enqueued_at: float


class PendingEmitQueue:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # dicts keep first-insertion order when a key is overwritten
        self._entries: Dict[str, PendingEmit] = {}

    def put(self, event: EventKey, payload: Any) -> PendingEmit:
        key = event_key(event)
        previous = self._entries.get(key)
        if previous is not None and key in _LOSSY_EVENTS and previous.payload != payload:
            logger.warning("pending %r superseded while offline; dropped payload %r", key, previous.payload)
        entry = PendingEmit(key, payload, self._clock())
        self._entries[key] = entry
        return entry

    def peek(self, event: EventKey) -> Optional[PendingEmit]:
        return self._entries.get(event_key(event))

    def drain(self) -> List[PendingEmit]:
        entries = list(self._entries.values())
        self._entries.clear()
        return entries

    def clear(self) -> None:
        if self._entries:
            logger.debug("discarding %d pending emit(s)", len(self._entries))
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, event: object) -> bool:
        if not isinstance(event, (str, EventName)):
            return False
        return event_key(event) in self._entries
