"""Player sessions given to the game through its command line. Only offline sessions
are supported, the access token is a fixed placeholder.
"""

from uuid import uuid5, UUID
import platform

from typing import Optional


class AuthSession:
    """Base class for sessions, providing the fields required by the game's arguments:
    username, UUID, access token and user type.
    """

    user_type: str

    def __init__(self) -> None:
        self.access_token = ""
        self.username = ""
        self.uuid = ""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.username} ({self.uuid})>"


class OfflineAuthSession(AuthSession):
    """Offline session, it provides optional static username and UUID and derived ones
    when kept unspecified.
    """

    user_type = "mojang"

    def __init__(self, username: Optional[str], uuid: Optional[str]) -> None:
        super().__init__()
        self.access_token = "0"
        if uuid is not None and len(uuid) == 32:
            # If the UUID is already valid.
            self.uuid = uuid
            self.username = uuid[:8] if username is None else username[:16]
        else:
            namespace_hash = UUID("8df5a464-38de-11ec-aa66-3fd636ee2ed7")
            if username is None:
                self.uuid = uuid5(namespace_hash, platform.node()).hex
                self.username = self.uuid[:8]
            else:
                self.username = username[:16]
                self.uuid = uuid5(namespace_hash, self.username).hex
