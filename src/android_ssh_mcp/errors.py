"""Error types raised by the session and execution layers.

Each error carries structured fields; turning them into user-facing text
happens in the server module.
"""

from pathlib import Path
from typing import Optional

from .models import AuthAttempt, AuthMethod


class AndroidSSHError(Exception):
    """Base class for all errors raised by this package."""


class ConnectionFailed(AndroidSSHError):
    """The transport could not be established after all retries."""

    def __init__(
        self,
        host: str,
        port: int,
        attempts: int,
        cause: Optional[BaseException] = None,
    ):
        self.host = host
        self.port = port
        self.attempts = attempts
        self.cause = cause
        reason = str(cause) if cause is not None else "no response from device"
        super().__init__(
            f"could not connect to {host}:{port} after {attempts} attempts: {reason}"
        )


class AuthenticationFailed(AndroidSSHError):
    """The transport came up but no credential method was accepted.

    An empty ``attempts`` tuple means no method was configured at all.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        attempts: tuple[AuthAttempt, ...] = (),
    ):
        self.host = host
        self.port = port
        self.username = username
        self.attempts = tuple(attempts)
        if self.attempts:
            tried = ", ".join(
                f"{a.method.value} ({a.reason.value})" for a in self.attempts
            )
        else:
            tried = "no authentication method configured"
        super().__init__(f"authentication failed for {username}@{host}:{port}: {tried}")

    @property
    def methods_tried(self) -> tuple[AuthMethod, ...]:
        return tuple(a.method for a in self.attempts)


class ExecutionFailed(AndroidSSHError):
    """A channel-level failure unrelated to the command's own exit status."""

    def __init__(self, command: str, stage: str, cause: Optional[BaseException] = None):
        self.command = command
        self.stage = stage
        self.cause = cause
        super().__init__(f"failed to {stage}: {cause}")


class CommandTimeout(AndroidSSHError):
    """The command did not finish within its deadline."""

    def __init__(self, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(f"command timed out after {timeout:g} seconds")


class ConfigurationInvalid(AndroidSSHError):
    """The configuration is missing or has invalid fields."""

    def __init__(self, reason: str, path: Optional[Path] = None):
        self.reason = reason
        self.path = path
        super().__init__(reason)


class IOFailure(AndroidSSHError):
    """A low-level socket or file fault not covered by the other errors."""

    def __init__(
        self,
        operation: str,
        cause: Optional[BaseException] = None,
        path: Optional[Path] = None,
    ):
        self.operation = operation
        self.cause = cause
        self.path = path
        super().__init__(f"{operation}: {cause}")
