"""Process-wide observable status and the detector-mode transition table."""

from __future__ import annotations
import logging
from dataclasses import dataclass, fields, replace
from typing import Callable

from .types import DetectorMode, InitState

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StatusSnapshot:
    """Everything a UI needs to render the manager's state."""
    init_state: InitState = InitState.UNINITIALIZED
    mode: DetectorMode | None = None
    status_text: str = "Not initialized"
    last_error: str | None = None
    download_progress: str = ""
    ner_loading: bool = False


Listener = Callable[[StatusSnapshot], None]


class ObservableStatus:
    """Holds the current StatusSnapshot and notifies subscribers on change.

    Mutated only by the SessionManager through ``update``; readers either
    poll ``snapshot`` or subscribe.
    """

    __slots__ = ("_snapshot", "_listeners")

    def __init__(self) -> None:
        self._snapshot = StatusSnapshot()
        self._listeners: list[Listener] = []

    @property
    def snapshot(self) -> StatusSnapshot:
        return self._snapshot

    def subscribe(self, listener: Listener, *, replay: bool = True) -> Callable[[], None]:
        """Register listener; returns a function that unsubscribes it."""
        self._listeners.append(listener)
        if replay:
            listener(self._snapshot)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def update(self, **changes) -> StatusSnapshot:
        new = replace(self._snapshot, **changes)
        if new == self._snapshot:
            return new
        self._snapshot = new
        for listener in list(self._listeners):
            try:
                listener(new)
            except Exception:
                # A broken observer must not break the state machine
                logger.exception("Status listener failed")
        return new

    def reset(self) -> None:
        self.update(**{f.name: f.default for f in fields(StatusSnapshot)})


# ── Mode transitions ─────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class Transition:
    """How to move the manager into ``target``.

    ``fallback`` is the mode rebuilt when the target backend fails;
    None means the failure leaves the manager with no backend.
    """
    target: DetectorMode
    loading_status: str
    ready_status: str
    failed_status: str
    fallback: DetectorMode | None
    ner_loading: bool = False


TRANSITIONS: dict[DetectorMode, Transition] = {
    DetectorMode.REGEX_PLUS_NER: Transition(
        target=DetectorMode.REGEX_PLUS_NER,
        loading_status="Loading NER model...",
        ready_status="Ready (NER enabled)",
        failed_status="Error loading NER",
        fallback=DetectorMode.REGEX_ONLY,
        ner_loading=True,
    ),
    DetectorMode.REGEX_ONLY: Transition(
        target=DetectorMode.REGEX_ONLY,
        loading_status="Disabling NER...",
        ready_status="Ready (NER disabled)",
        failed_status="Error disabling NER",
        fallback=None,
    ),
}


def transition_for(target: DetectorMode) -> Transition:
    return TRANSITIONS[target.normalized()]
