"""
Explicit session context.

Created at login and dropped at logout; handed to the backend client and
to the views that gate mutating actions by role. Nothing here is global.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


ROLE_ADMIN = "admin"
ROLE_NGO = "ngo"
ROLE_BIDDER = "user"


@dataclass(frozen=True)
class Session:
    """Authenticated user: token plus the minimal profile used for gating"""

    token: str
    user_id: str
    role: str = ROLE_BIDDER
    email: str = ""
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_ngo(self) -> bool:
        return self.role == ROLE_NGO

    def owns_ngo(self, ngo_email: str) -> bool:
        """True when this session belongs to the NGO with the given email"""
        return self.is_ngo and bool(ngo_email) and self.email.lower() == ngo_email.lower()

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    @classmethod
    def from_login(cls, payload: Dict[str, Any]) -> "Session":
        """
        Build a session from a login response (``{token, user: {...}}``).

        Raises:
            ValueError: If the response carries no token
        """
        token = payload.get("token")
        if not token:
            raise ValueError("Login response carries no token")
        user = payload.get("user") or {}
        return cls(
            token=token,
            user_id=str(user.get("id") or user.get("_id") or ""),
            role=user.get("role") or ROLE_BIDDER,
            email=user.get("email") or "",
            name=user.get("name") or "",
        )


def is_authenticated(session: Optional[Session]) -> bool:
    return session is not None and bool(session.token)
