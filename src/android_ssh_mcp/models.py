"""Shared types: connection descriptor, command result, auth outcome."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr

DEFAULT_PORT = 8022


class ConnectionDescriptor(BaseModel):
    """Immutable connection parameters for the Android device."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    username: str = Field(min_length=1)
    key_path: Optional[str] = None
    password: Optional[SecretStr] = None

    @property
    def expanded_key_path(self) -> Optional[Path]:
        """Key path with ``~`` expanded, or None if no key is configured."""
        if not self.key_path:
            return None
        return Path(self.key_path).expanduser()

    @property
    def has_credentials(self) -> bool:
        return bool(self.key_path) or self.password is not None

    @property
    def auth_summary(self) -> str:
        methods = []
        if self.key_path:
            methods.append("SSH key")
        if self.password is not None:
            methods.append("password")
        return ", ".join(methods) or "none"


@dataclass(frozen=True)
class CommandResult:
    """Output and exit status of one remote command."""

    stdout: str
    stderr: str
    exit_code: int = 0


class AuthMethod(str, Enum):
    PUBLICKEY = "publickey"
    PASSWORD = "password"


class AuthFailureReason(str, Enum):
    KEY_UNREADABLE = "key file unreadable"
    KEY_INVALID = "key file could not be parsed"
    REJECTED = "rejected by the device"
    NOT_ALLOWED = "not accepted by the server"
    ERROR = "transport error"


@dataclass(frozen=True)
class AuthAttempt:
    """One failed authentication method and why it failed."""

    method: AuthMethod
    reason: AuthFailureReason
    detail: str = ""


@dataclass(frozen=True)
class AuthOutcome:
    """Result of running the authentication chain on one transport."""

    success: bool
    method: Optional[AuthMethod] = None
    attempts: tuple[AuthAttempt, ...] = ()

    @classmethod
    def succeeded(
        cls, method: AuthMethod, attempts: tuple[AuthAttempt, ...] = ()
    ) -> "AuthOutcome":
        return cls(success=True, method=method, attempts=attempts)

    @classmethod
    def failed(cls, attempts: tuple[AuthAttempt, ...] = ()) -> "AuthOutcome":
        return cls(success=False, attempts=attempts)


class SessionState(str, Enum):
    ABSENT = "absent"
    LIVE = "live"
    STALE = "stale"
