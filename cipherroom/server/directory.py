"""
Room directory: a read-only view over the session registry.

Rooms have no storage of their own. Every query is answered from the
registry's current snapshot, so the directory can never drift from it.
"""

from typing import List, Optional

from cipherroom.common.protocol import RoomList, RosterEntry, UserList
from cipherroom.server.registry import Session, SessionRegistry


class RoomDirectory:
    """Derived room queries and the wire payloads built from them."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def list_active_rooms(self) -> List[str]:
        return self.registry.list_active_rooms()

    def list_by_room(self, room: str) -> List[Session]:
        return self.registry.list_by_room(room)

    def roster(self, room: str) -> UserList:
        """`userList` payload for one room."""
        return UserList(users=[
            RosterEntry(id=s.session_id, name=s.display_name, room=s.room)
            for s in self.list_by_room(room)
        ])

    def room_list(self) -> RoomList:
        """`roomList` payload for every connection."""
        return RoomList(rooms=self.list_active_rooms())

    def find_peer(self, room: str, exclude_id: str) -> Optional[Session]:
        """
        First other session in `room` that already holds a public key.

        Rooms are expected to hold two participants; with more, the first one
        found is picked.
        """
        for session in self.list_by_room(room):
            if session.session_id != exclude_id and session.public_key is not None:
                return session
        return None
