"""Observer registration for transfer progress notifications."""

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

UPLOAD = "upload"
"""Fired with an UploadOutcome after each file upload completes"""

UPLOAD_ALL = "upload:all"
"""Fired once with the list of UploadOutcomes after a directory upload"""

DOWNLOAD = "download"
"""Fired with a DownloadOutcome after each file download completes"""

DOWNLOAD_ALL = "download:all"
"""Fired once with the list of DownloadOutcomes after a prefix download"""

EVENTS = (UPLOAD, UPLOAD_ALL, DOWNLOAD, DOWNLOAD_ALL)

Listener = Callable[[Any], None]


class EventEmitter:
    """Registry of listeners keyed by event name.

    Listeners are called synchronously, in registration order, from the
    event loop thread. An exception raised by a listener propagates to the
    code that emitted the event.

    Examples:
        >>> emitter = EventEmitter()
        >>> seen = []
        >>> emitter.on("upload", seen.append)
        >>> emitter.emit("upload", "payload")
        >>> seen
        ['payload']
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        """Register ``listener`` for ``event``."""
        if event not in EVENTS:
            raise ValueError(
                f"Unknown event {event!r}, expected one of {', '.join(EVENTS)}"
            )
        self._listeners[event].append(listener)

    def off(self, event: str, listener: Listener) -> None:
        """Remove a previously registered listener. Unknown listeners are ignored."""
        try:
            self._listeners[event].remove(listener)
        except ValueError:
            pass

    def listeners(self, event: str) -> list[Listener]:
        """Return a copy of the listeners registered for ``event``."""
        return list(self._listeners.get(event, []))

    def emit(self, event: str, payload: Any) -> None:
        """Call every listener of ``event`` with ``payload``."""
        listeners = self.listeners(event)
        logger.debug("Emitting %s to %d listener(s)", event, len(listeners))
        for listener in listeners:
            listener(payload)
