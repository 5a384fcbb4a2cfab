"""Runs one command per fresh SSH channel and collects its output."""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Optional

import paramiko

from .errors import CommandTimeout, ExecutionFailed, IOFailure
from .models import CommandResult

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.02
CHUNK_SIZE = 4096
# paramiko leaves exit_status at -1 until the remote reports one
NO_EXIT_STATUS = -1


class EventKind(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"
    EXIT_STATUS = "exit-status"
    EOF = "eof"
    OTHER = "other"


@dataclass(frozen=True)
class ChannelEvent:
    kind: EventKind
    data: bytes = b""
    status: Optional[int] = None


def iter_channel_events(
    channel: paramiko.Channel,
    poll_interval: float = POLL_INTERVAL,
    chunk_size: int = CHUNK_SIZE,
) -> Iterator[ChannelEvent]:
    """Yield events from ``channel`` in arrival order until it is closed.

    Buffered stdout and stderr are always emptied before the exit status or
    end-of-stream is reported. Blocks between polls.
    """
    status_seen = False
    eof_seen = False
    while True:
        # sampled before the buffers: data always arrives ahead of EOF/close
        eof = channel.eof_received
        closed = channel.closed
        progressed = False
        if channel.recv_ready():
            yield ChannelEvent(EventKind.STDOUT, data=channel.recv(chunk_size))
            progressed = True
        if channel.recv_stderr_ready():
            yield ChannelEvent(EventKind.STDERR, data=channel.recv_stderr(chunk_size))
            progressed = True
        if progressed:
            continue

        if (
            not status_seen
            and channel.exit_status_ready()
            and channel.exit_status != NO_EXIT_STATUS
        ):
            status_seen = True
            yield ChannelEvent(EventKind.EXIT_STATUS, status=channel.exit_status)
            continue
        if not eof_seen and eof:
            eof_seen = True
            yield ChannelEvent(EventKind.EOF)
            continue
        if closed:
            return

        time.sleep(poll_interval)


def drain(events: Iterable[ChannelEvent]) -> CommandResult:
    """Collect events into a CommandResult.

    Stops once both the exit status and end-of-stream have been seen, in
    either order, or when the events run out. A missing exit status counts
    as 0.
    """
    stdout = bytearray()
    stderr = bytearray()
    exit_code: Optional[int] = None
    eof = False

    for event in events:
        if event.kind is EventKind.STDOUT:
            stdout.extend(event.data)
        elif event.kind is EventKind.STDERR:
            stderr.extend(event.data)
        elif event.kind is EventKind.EXIT_STATUS:
            exit_code = event.status
        elif event.kind is EventKind.EOF:
            eof = True

        if eof and exit_code is not None:
            break

    return CommandResult(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        exit_code=exit_code if exit_code is not None else 0,
    )


class CommandExecutor:
    """Executes commands on an authenticated transport under a deadline."""

    def __init__(self, poll_interval: float = POLL_INTERVAL, chunk_size: int = CHUNK_SIZE):
        self.poll_interval = poll_interval
        self.chunk_size = chunk_size

    async def run(
        self, transport: paramiko.Transport, command: str, timeout: float
    ) -> CommandResult:
        """
        Execute a command on a new channel of ``transport``.

        Returns:
            CommandResult; a non-zero exit code is not an error

        Raises:
            CommandTimeout: the deadline elapsed first
            ExecutionFailed: the channel could not be opened or exec'd
            IOFailure: the socket failed while reading output
        """
        try:
            return await asyncio.wait_for(self._run(transport, command), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Command timed out after %ss: %s", timeout, command)
            raise CommandTimeout(command, timeout) from None

    async def _run(self, transport: paramiko.Transport, command: str) -> CommandResult:
        opening = asyncio.ensure_future(
            asyncio.to_thread(self._open_channel, transport, command)
        )
        try:
            channel = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # the worker thread still finishes exec; close what it returns
            opening.add_done_callback(_close_orphaned)
            raise

        try:
            result = await asyncio.to_thread(self._drain_channel, channel, command)
        finally:
            _close_quietly(channel)
        logger.debug("Command exited with %d: %s", result.exit_code, command)
        return result

    def _open_channel(self, transport: paramiko.Transport, command: str) -> paramiko.Channel:
        try:
            channel = transport.open_session()
        except (paramiko.SSHException, OSError) as e:
            raise ExecutionFailed(command, "open channel", e) from e

        try:
            channel.exec_command(command)
        except (paramiko.SSHException, OSError) as e:
            _close_quietly(channel)
            raise ExecutionFailed(command, "exec", e) from e
        return channel

    def _drain_channel(self, channel: paramiko.Channel, command: str) -> CommandResult:
        try:
            return drain(iter_channel_events(channel, self.poll_interval, self.chunk_size))
        except OSError as e:
            raise IOFailure(f"reading output of '{command}'", e) from e


def _close_orphaned(opening: "asyncio.Future[paramiko.Channel]") -> None:
    if opening.cancelled() or opening.exception() is not None:
        return
    logger.debug("Closing channel opened after the deadline")
    _close_quietly(opening.result())


def _close_quietly(channel: paramiko.Channel) -> None:
    try:
        channel.close()
    except (paramiko.SSHException, OSError) as e:
        logger.debug("Ignoring error while closing channel: %s", e)
