"""
Outbound event sink used by the relay components.

The chat service never talks to Socket.IO directly; it hands events to an
Emitter. The server wires in SocketIOEmitter, tests use a recording emitter.
Emission is fire-and-forget: no acknowledgement, and sending to a connection
that has gone away is silently a no-op.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from cipherroom.common.protocol import EventType


logger = logging.getLogger(__name__)


class Emitter(ABC):
    """Base class for event sinks."""

    @abstractmethod
    def emit(self, event: EventType, data: Any, to: Optional[str] = None) -> None:
        """Send `event` to one session id, or to every connection when `to` is None."""

    def emit_many(self, event: EventType, data: Any, targets: Iterable[str]) -> None:
        """Send the same event to each listed session id."""
        for session_id in targets:
            self.emit(event, data, to=session_id)


class SocketIOEmitter(Emitter):
    """Emitter backed by a flask_socketio.SocketIO server."""

    def __init__(self, socketio):
        self.socketio = socketio

    def emit(self, event: EventType, data: Any, to: Optional[str] = None) -> None:
        try:
            if to is None:
                self.socketio.emit(str(event), data)
            else:
                self.socketio.emit(str(event), data, to=to)
        except Exception as e:
            # The peer may have dropped between resolution and send
            logger.debug(f"Emit of '{event}' to {to or 'all'} failed: {e}")
