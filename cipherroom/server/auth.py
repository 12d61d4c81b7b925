"""
Login check against a static credential table.

Only the pass/fail contract matters here; there is no registration and no
storage. Passwords are compared in constant time.
"""

import secrets
from typing import Dict, Optional

from cipherroom.common.errors import AuthenticationError


DEFAULT_CREDENTIALS: Dict[str, str] = {
    "user1": "1234",
    "user2": "1234",
    "user3": "1234",
    "user4": "1234",
}


def parse_credentials(raw: str) -> Dict[str, str]:
    """
    Parse "name:password,name:password" into a credential table.

    Example:
        >>> parse_credentials("alice:pw1, bob:pw2")
        {'alice': 'pw1', 'bob': 'pw2'}

    Raises: ValueError on an entry without a colon or with an empty name
    """
    table: Dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, password = entry.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"Invalid credential entry: {entry!r} (expected name:password)")
        table[name.strip()] = password
    return table


class Authenticator:
    """Checks name/password pairs against an in-memory table."""

    def __init__(self, credentials: Optional[Dict[str, str]] = None):
        self._credentials = dict(DEFAULT_CREDENTIALS if credentials is None else credentials)

    def check(self, name: str, password: str) -> bool:
        """True iff `name` is known and `password` matches."""
        if not isinstance(name, str) or not isinstance(password, str):
            return False
        stored = self._credentials.get(name)
        if stored is None:
            # Compare anyway so unknown names take as long as wrong passwords
            secrets.compare_digest(password.encode("utf-8"), b"")
            return False
        return secrets.compare_digest(stored.encode("utf-8"), password.encode("utf-8"))

    def authenticate(self, name: str, password: str) -> str:
        """
        Returns: the authenticated name
        Raises: AuthenticationError
        """
        if not self.check(name, password):
            raise AuthenticationError("Authentication failed. Please check your credentials.")
        return name
