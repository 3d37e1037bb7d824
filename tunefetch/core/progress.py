import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

ARTWORK = "artwork"
LYRICS = "lyrics"


@dataclass(frozen=True)
class ProgressEvent:
    kind: str
    item_id: str
    in_progress: bool
    fraction: float
    message: Optional[str] = None
    error: Optional[str] = None


class ProgressTracker:
    """
    Per-item progress state with plain callback subscribers.

    Within one request the fraction never goes backwards; finish() clears the
    in-progress flag and keeps the last fraction (0.0 after a failure).
    """

    def __init__(self):
        self._state: Dict[Tuple[str, str], ProgressEvent] = {}
        self._listeners: List[Callable[[ProgressEvent], None]] = []

    def subscribe(self, listener: Callable[[ProgressEvent], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self, kind: str, item_id: str, message: Optional[str] = None):
        self._emit(ProgressEvent(kind, item_id, True, 0.0, message=message))

    def advance(self, kind: str, item_id: str, fraction: float, message: Optional[str] = None):
        current = self._state.get((kind, item_id))
        if current and current.in_progress:
            fraction = max(fraction, current.fraction)
        self._emit(ProgressEvent(kind, item_id, True, min(fraction, 1.0), message=message))

    def finish(self, kind: str, item_id: str, error: Optional[str] = None):
        fraction = 0.0 if error else 1.0
        self._emit(ProgressEvent(kind, item_id, False, fraction, error=error))

    def is_in_progress(self, kind: str, item_id: str) -> bool:
        event = self._state.get((kind, item_id))
        return bool(event and event.in_progress)

    def fraction(self, kind: str, item_id: str) -> float:
        event = self._state.get((kind, item_id))
        return event.fraction if event else 0.0

    def snapshot(self) -> List[ProgressEvent]:
        return list(self._state.values())

    def _emit(self, event: ProgressEvent):
        self._state[(event.kind, event.item_id)] = event
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # A broken subscriber must not abort the acquisition
                logger.exception("Progress listener failed")
