"""Owns the single SSH session to the device and keeps it alive."""

import asyncio
import logging
import socket
from typing import Awaitable, Callable, Optional

import paramiko

from .auth import Authenticator
from .errors import AuthenticationFailed, ConnectionFailed
from .executor import CommandExecutor
from .models import CommandResult, ConnectionDescriptor, SessionState

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_DELAY = 2.0
CONNECT_TIMEOUT = 10.0
KEEPALIVE_INTERVAL = 30


def open_transport(host: str, port: int) -> paramiko.Transport:
    """Open a TCP connection and complete the SSH handshake (no auth yet).

    Host keys are not verified: Termux devices regenerate them on reinstall
    and are reached by address on the local network.
    """
    sock = socket.create_connection((host, port), timeout=CONNECT_TIMEOUT)
    transport = paramiko.Transport(sock)
    try:
        transport.start_client(timeout=CONNECT_TIMEOUT)
    except Exception:
        transport.close()
        raise
    transport.set_keepalive(KEEPALIVE_INTERVAL)
    return transport


class SessionManager:
    """Holds at most one authenticated transport.

    ``execute`` serializes every command behind one lock, so a reconnect is
    never raced and channels of different commands never interleave.
    """

    def __init__(
        self,
        descriptor: ConnectionDescriptor,
        authenticator: Optional[Authenticator] = None,
        executor: Optional[CommandExecutor] = None,
        transport_factory: Optional[Callable[[str, int], paramiko.Transport]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.descriptor = descriptor
        self.authenticator = authenticator or Authenticator(descriptor)
        self.executor = executor or CommandExecutor()
        self._open_transport = transport_factory or open_transport
        self._sleep = sleep
        self._transport: Optional[paramiko.Transport] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> SessionState:
        if self._transport is None:
            return SessionState.ABSENT
        if self._transport.is_active():
            return SessionState.LIVE
        return SessionState.STALE

    async def connect(self) -> None:
        """Establish a new authenticated session, retrying failed attempts.

        Each attempt opens a transport and authenticates on it; either step
        failing uses up the attempt.

        Raises:
            AuthenticationFailed: no credentials, or the last attempt
                reached the device but every method was refused
            ConnectionFailed: the last attempt could not open the transport
        """
        d = self.descriptor
        if not d.has_credentials:
            raise AuthenticationFailed(d.host, d.port, d.username)

        last_error: Optional[BaseException] = None
        auth_error: Optional[AuthenticationFailed] = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            if attempt > 1:
                logger.warning(
                    "Connection attempt %d/%d to %s:%d failed (%s), retrying in %gs",
                    attempt - 1, MAX_ATTEMPTS, d.host, d.port,
                    auth_error or last_error, RETRY_DELAY,
                )
                await self._sleep(RETRY_DELAY)

            try:
                transport = await asyncio.to_thread(self._open_transport, d.host, d.port)
            except (OSError, paramiko.SSHException) as e:
                last_error, auth_error = e, None
                continue

            try:
                outcome = await asyncio.to_thread(self.authenticator.authenticate, transport)
            except BaseException:
                _close_quietly(transport)
                raise
            if not outcome.success:
                _close_quietly(transport)
                auth_error = AuthenticationFailed(
                    d.host, d.port, d.username, outcome.attempts
                )
                continue

            self._transport = transport
            logger.info(
                "Connected to %s@%s:%d via %s (attempt %d)",
                d.username, d.host, d.port, outcome.method.value, attempt,
            )
            return

        logger.error("Giving up on %s:%d after %d attempts", d.host, d.port, MAX_ATTEMPTS)
        if auth_error is not None:
            raise auth_error
        raise ConnectionFailed(d.host, d.port, MAX_ATTEMPTS, last_error)

    async def ensure_connected(self) -> None:
        """Connect if there is no session, reconnect if it has gone stale."""
        state = self.state
        if state is SessionState.LIVE:
            return
        if state is SessionState.STALE:
            logger.warning("Session to %s closed, reconnecting", self.descriptor.host)
            _close_quietly(self._transport)
            self._transport = None
        else:
            logger.info("No active session, connecting to %s", self.descriptor.host)
        await self.connect()

    async def verify(self) -> None:
        """Make sure a live session exists, taking the command lock."""
        async with self._lock:
            await self.ensure_connected()

    async def execute(self, command: str, timeout: float) -> CommandResult:
        """Run ``command`` on a healthy session, connecting as needed."""
        async with self._lock:
            await self.ensure_connected()
            logger.debug("Running (timeout %ss): %s", timeout, command)
            return await self.executor.run(self._transport, command, timeout)

    async def disconnect(self) -> None:
        """Close the session if one is held. Errors are ignored."""
        async with self._lock:
            transport, self._transport = self._transport, None
            if transport is None:
                return
            await asyncio.to_thread(_close_quietly, transport)
            logger.info("Disconnected from %s", self.descriptor.host)


def _close_quietly(transport: paramiko.Transport) -> None:
    try:
        transport.close()
    except Exception as e:
        logger.debug("Ignoring error while closing transport: %s", e)
