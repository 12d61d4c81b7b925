"""
In-memory session registry.

Holds one Session per live Socket.IO connection that has logged in or entered a
room, plus the set of connection ids that are currently open. The registry is
the single source of truth for room membership; rooms are never stored.

Concurrency:
    Every mutation happens under one lock and swaps in a brand-new tuple of
    sessions (copy-on-write), bumping `version`. Readers grab the current tuple
    and iterate it without locking, so a broadcast never sees a half-applied
    change. Nothing slow (key generation, RSA) ever runs under the lock.
"""

from dataclasses import dataclass, replace
from threading import Lock
from typing import List, Optional, Set, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa


@dataclass(frozen=True)
class Session:
    """
    One connected participant.

    Fields:
        session_id: Socket.IO sid, stable for the connection's lifetime
        display_name: Name chosen by the client (not unique)
        room: Current room, or None before the first successful room entry
        public_key: Current RSA public key, None until key exchange completes
        private_key: Retained only in server-held key mode
        authenticated: True once `login` succeeded
    """

    session_id: str
    display_name: str
    room: Optional[str] = None
    public_key: Optional[rsa.RSAPublicKey] = None
    private_key: Optional[rsa.RSAPrivateKey] = None
    authenticated: bool = False

    def with_room(self, room: str, public_key: rsa.RSAPublicKey,
                  private_key: Optional[rsa.RSAPrivateKey] = None) -> "Session":
        """Return a copy placed in `room` with a complete new key state."""
        return replace(self, room=room, public_key=public_key, private_key=private_key)


class SessionRegistry:
    """Lock-guarded, copy-on-write table of sessions keyed by session id."""

    def __init__(self):
        self._lock = Lock()
        self._sessions: Tuple[Session, ...] = ()
        self._connections: Set[str] = set()
        self._version = 0

    @property
    def version(self) -> int:
        """Incremented on every registry mutation."""
        return self._version

    def snapshot(self) -> Tuple[Session, ...]:
        """Current sessions as an immutable tuple."""
        return self._sessions

    # Connection tracking

    def connect(self, session_id: str) -> None:
        """Mark a connection as open (state: connected, no room)."""
        with self._lock:
            self._connections = self._connections | {session_id}
            self._version += 1

    def is_connected(self, session_id: str) -> bool:
        return session_id in self._connections

    def disconnect(self, session_id: str) -> Optional[Session]:
        """
        Forget a connection and its session.

        Returns the removed session, or None if it never logged in or joined.
        """
        with self._lock:
            self._connections = self._connections - {session_id}
            return self._remove_locked(session_id)

    # Session mutation

    def upsert(self, session: Session) -> None:
        """Replace the session with the same id, or insert it."""
        with self._lock:
            self._upsert_locked(session)

    def remove(self, session_id: str) -> Optional[Session]:
        """Delete the session with this id if present. Absent ids are not an error."""
        with self._lock:
            return self._remove_locked(session_id)

    def commit_if_connected(self, session: Session) -> Tuple[bool, Optional[Session]]:
        """
        Upsert `session` only if its connection is still open.

        This is the commit step for results that were computed outside the lock
        (key generation). A session that disconnected meanwhile is left alone.

        Returns: (committed, previous session or None)
        """
        with self._lock:
            if session.session_id not in self._connections:
                return False, None
            previous = self._find(self._sessions, session.session_id)
            self._upsert_locked(session)
            return True, previous

    def _upsert_locked(self, session: Session) -> None:
        others = tuple(s for s in self._sessions if s.session_id != session.session_id)
        self._sessions = others + (session,)
        self._version += 1

    def _remove_locked(self, session_id: str) -> Optional[Session]:
        removed = self._find(self._sessions, session_id)
        if removed is not None:
            self._sessions = tuple(s for s in self._sessions if s.session_id != session_id)
        self._version += 1
        return removed

    # Queries

    @staticmethod
    def _find(sessions: Tuple[Session, ...], session_id: str) -> Optional[Session]:
        for session in sessions:
            if session.session_id == session_id:
                return session
        return None

    def find(self, session_id: str) -> Optional[Session]:
        return self._find(self._sessions, session_id)

    def list_by_room(self, room: str) -> List[Session]:
        """All sessions currently in `room`, in no guaranteed order."""
        return [s for s in self._sessions if s.room is not None and s.room == room]

    def list_active_rooms(self) -> List[str]:
        """Distinct rooms with at least one session, first-seen order."""
        rooms: List[str] = []
        for session in self._sessions:
            if session.room is not None and session.room not in rooms:
                rooms.append(session.room)
        return rooms

    def connection_ids(self) -> List[str]:
        return list(self._connections)

    def __len__(self) -> int:
        return len(self._sessions)
