"""
Per-connection session state.

    AWAITING_LOGIN ──LoginRequest──► AUTHENTICATED ──EchoRequest──┐
                                          ▲                        │
                                          └────────────────────────┘

A SessionState belongs to exactly one connection and is only ever touched
by the unit serving that connection (its thread, or the event loop while
it services that socket), so it needs no locking.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..protocol.messages import Credential, MessageType, ProtocolError


class SessionPhase(Enum):
    AWAITING_LOGIN = "awaiting_login"
    AUTHENTICATED = "authenticated"


@dataclass
class SessionState:
    """
    Login state of one connection.

    Credentials are set exactly once, by authenticate(), and never change
    afterwards.
    """

    phase: SessionPhase = SessionPhase.AWAITING_LOGIN
    username: Optional[Credential] = None
    password: Optional[Credential] = None

    @property
    def logged_in(self) -> bool:
        return self.phase == SessionPhase.AUTHENTICATED

    def require_logged_out(self) -> None:
        """Raise ProtocolError if the session already logged in."""
        if self.logged_in:
            raise ProtocolError(
                f"Login request on a session already logged in as {self.username.text!r}",
                MessageType.LOGIN_REQUEST,
            )

    def authenticate(self, username: Credential, password: Credential) -> None:
        """
        Bind credentials to this session.

        Raises:
            ProtocolError: The session is already authenticated.
        """
        self.require_logged_out()
        self.username = username
        self.password = password
        self.phase = SessionPhase.AUTHENTICATED

    def require_login(self, message_type: MessageType) -> None:
        """Raise ProtocolError unless the session is authenticated."""
        if not self.logged_in:
            raise ProtocolError(f"{message_type.name} before login", message_type)
