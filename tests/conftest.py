"""Shared fixtures for the CipherRoom test suite."""

from typing import Any, List, Optional, Tuple

import pytest

from cipherroom.server.emitter import Emitter
from cipherroom.server.keys import KeyExchangeManager, KeyMode
from cipherroom.server.service import ChatService


class RecordingEmitter(Emitter):
    """Emitter that keeps every event instead of sending it."""

    def __init__(self):
        self.sent: List[Tuple[str, Any, Optional[str]]] = []

    def emit(self, event, data, to=None):
        self.sent.append((str(event), data, to))

    def for_session(self, session_id: str, event: Optional[str] = None) -> List[Any]:
        """Payloads delivered to one session (direct or broadcast), optionally filtered by event."""
        return [
            data for name, data, to in self.sent
            if to in (session_id, None) and (event is None or name == event)
        ]

    def events_for(self, session_id: str) -> List[str]:
        return [name for name, _, to in self.sent if to in (session_id, None)]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def service(emitter):
    """Chat service in client-held key mode with two open connections."""
    svc = ChatService(emitter, keys=KeyExchangeManager(KeyMode.CLIENT_HELD))
    svc.connect("s1")
    svc.connect("s2")
    return svc


@pytest.fixture
def server_held_service(emitter):
    svc = ChatService(emitter, keys=KeyExchangeManager(KeyMode.SERVER_HELD))
    svc.connect("s1")
    svc.connect("s2")
    return svc
