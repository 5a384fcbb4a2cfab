"""Key-then-password authentication over an open paramiko transport."""

import logging
from pathlib import Path
from typing import Callable, Optional

import paramiko
from paramiko.pkey import UnknownKeyType

from .models import (
    AuthAttempt,
    AuthFailureReason,
    AuthMethod,
    AuthOutcome,
    ConnectionDescriptor,
)

logger = logging.getLogger(__name__)


def load_private_key(path: Path) -> paramiko.PKey:
    """Load a private key of any type paramiko supports (unencrypted)."""
    return paramiko.PKey.from_path(path)


class Authenticator:
    """Runs the authentication chain for one descriptor.

    The public key is tried first when configured. A key that cannot be read
    or parsed is recorded as a failed attempt and the chain falls through to
    the password, if there is one.
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        key_loader: Callable[[Path], paramiko.PKey] = load_private_key,
    ):
        self.descriptor = descriptor
        self._load_key = key_loader

    def authenticate(self, transport: paramiko.Transport) -> AuthOutcome:
        """Authenticate ``transport``. Blocking; run it in a worker thread."""
        attempts: list[AuthAttempt] = []
        username = self.descriptor.username

        key_path = self.descriptor.expanded_key_path
        if key_path is not None:
            key, failure = self._read_key(key_path)
            if failure is not None:
                attempts.append(failure)
                logger.warning("Key authentication skipped: %s", failure.detail)
            else:
                failure = self._attempt(
                    transport,
                    AuthMethod.PUBLICKEY,
                    lambda: transport.auth_publickey(username, key),
                )
                if failure is None:
                    logger.info("Authenticated with SSH key")
                    return AuthOutcome.succeeded(AuthMethod.PUBLICKEY, tuple(attempts))
                attempts.append(failure)

            if self.descriptor.password is None:
                return AuthOutcome.failed(tuple(attempts))
            logger.warning("Key authentication failed, trying password")

        if self.descriptor.password is not None:
            password = self.descriptor.password.get_secret_value()
            failure = self._attempt(
                transport,
                AuthMethod.PASSWORD,
                lambda: transport.auth_password(username, password),
            )
            if failure is None:
                logger.info("Authenticated with password")
                return AuthOutcome.succeeded(AuthMethod.PASSWORD, tuple(attempts))
            attempts.append(failure)

        return AuthOutcome.failed(tuple(attempts))

    def _read_key(
        self, path: Path
    ) -> tuple[Optional[paramiko.PKey], Optional[AuthAttempt]]:
        try:
            return self._load_key(path), None
        except OSError as e:
            return None, AuthAttempt(
                AuthMethod.PUBLICKEY,
                AuthFailureReason.KEY_UNREADABLE,
                f"{path}: {e.strerror or e}",
            )
        except (paramiko.SSHException, UnknownKeyType, ValueError, TypeError) as e:
            return None, AuthAttempt(
                AuthMethod.PUBLICKEY, AuthFailureReason.KEY_INVALID, f"{path}: {e}"
            )

    @staticmethod
    def _attempt(
        transport: paramiko.Transport,
        method: AuthMethod,
        call: Callable[[], object],
    ) -> Optional[AuthAttempt]:
        """Run one auth call; return None on success or the failed attempt."""
        try:
            call()
        except paramiko.BadAuthenticationType as e:
            allowed = ", ".join(e.allowed_types) or "none"
            return AuthAttempt(
                method, AuthFailureReason.NOT_ALLOWED, f"server allows: {allowed}"
            )
        except paramiko.AuthenticationException as e:
            return AuthAttempt(method, AuthFailureReason.REJECTED, str(e))
        except (paramiko.SSHException, OSError, EOFError) as e:
            return AuthAttempt(method, AuthFailureReason.ERROR, str(e) or type(e).__name__)

        if not transport.is_authenticated():
            return AuthAttempt(
                method, AuthFailureReason.REJECTED, "further authentication required"
            )
        return None
