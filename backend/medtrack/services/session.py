"""Identity context passed into the reminder pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from medtrack.exceptions import AuthenticationRequired


class SessionContext(Protocol):
    def current_identity(self) -> Optional[str]:
        ...


@dataclass(frozen=True)
class StaticSession:
    """Session with a fixed identity; ``None`` means signed out."""

    identity: Optional[str] = None

    def current_identity(self) -> Optional[str]:
        return self.identity


def require_identity(session: SessionContext) -> str:
    identity = session.current_identity()
    if not identity:
        raise AuthenticationRequired()
    return identity
