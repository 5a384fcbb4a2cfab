"""Fake paramiko transport/channel objects and key fixtures."""

import os
from typing import Optional

import paramiko
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from android_ssh_mcp.models import ConnectionDescriptor


class FakeChannel:
    """Mimics the parts of paramiko.Channel the executor reads.

    By default the command has already finished: all output buffered, EOF
    received and the channel closed. Pass ``closed=False, eof=False`` for a
    command that never finishes.
    """

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        exit_status: Optional[int] = 0,
        eof: bool = True,
        closed: bool = True,
        exec_error: Optional[Exception] = None,
    ):
        self._stdout = bytearray(stdout)
        self._stderr = bytearray(stderr)
        self.exit_status = -1 if exit_status is None else exit_status
        self.eof_received = eof
        self.closed = closed
        self.exec_error = exec_error
        self.command = None
        self.close_calls = 0

    def exec_command(self, command):
        if self.exec_error is not None:
            raise self.exec_error
        self.command = command

    def recv_ready(self):
        return bool(self._stdout)

    def recv(self, nbytes):
        data = bytes(self._stdout[:nbytes])
        del self._stdout[:nbytes]
        return data

    def recv_stderr_ready(self):
        return bool(self._stderr)

    def recv_stderr(self, nbytes):
        data = bytes(self._stderr[:nbytes])
        del self._stderr[:nbytes]
        return data

    def exit_status_ready(self):
        return self.closed or self.exit_status != -1

    def close(self):
        self.closed = True
        self.close_calls += 1


class FakeTransport:
    """Mimics paramiko.Transport: auth calls, liveness and session channels."""

    def __init__(
        self,
        key_error: Optional[Exception] = None,
        password_error: Optional[Exception] = None,
        channels: Optional[list] = None,
        open_error: Optional[Exception] = None,
    ):
        self.key_error = key_error
        self.password_error = password_error
        self.open_error = open_error
        self.channels = list(channels or [])
        self.opened: list[FakeChannel] = []
        self.auth_calls: list[tuple[str, str]] = []
        self.active = True
        self.authenticated = False
        self.closed = False

    def is_active(self):
        return self.active

    def is_authenticated(self):
        return self.authenticated

    def auth_publickey(self, username, key):
        self.auth_calls.append(("publickey", username))
        if self.key_error is not None:
            raise self.key_error
        self.authenticated = True
        return []

    def auth_password(self, username, password):
        self.auth_calls.append(("password", username))
        if self.password_error is not None:
            raise self.password_error
        self.authenticated = True
        return []

    def open_session(self):
        if self.open_error is not None:
            raise self.open_error
        channel = self.channels.pop(0) if self.channels else FakeChannel()
        self.opened.append(channel)
        return channel

    def close(self):
        self.active = False
        self.closed = True


class TransportFactory:
    """Transport factory that fails ``failures`` times, then hands out transports."""

    def __init__(self, transports=None, failures: int = 0, error: Optional[Exception] = None):
        self.transports = list(transports or [])
        self.failures = failures
        self.error = error or ConnectionRefusedError(111, "Connection refused")
        self.calls: list[tuple[str, int]] = []

    def __call__(self, host, port):
        self.calls.append((host, port))
        if len(self.calls) <= self.failures:
            raise self.error
        if self.transports:
            return self.transports.pop(0)
        return FakeTransport()


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def key_file(tmp_path):
    """An unencrypted Ed25519 private key in OpenSSH format, mode 0600."""
    key = Ed25519PrivateKey.generate()
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.OpenSSH,
        encryption_algorithm=serialization.NoEncryption(),
    )
    path = tmp_path / "id_ed25519"
    path.write_bytes(pem)
    os.chmod(path, 0o600)
    return path


@pytest.fixture
def descriptor(key_file):
    return ConnectionDescriptor(
        host="192.168.1.100", port=8022, username="u0_a555", key_path=str(key_file)
    )


@pytest.fixture
def password_descriptor():
    return ConnectionDescriptor(
        host="192.168.1.100", port=8022, username="u0_a555", password="secret"
    )


@pytest.fixture
def rejected():
    return paramiko.AuthenticationException("Authentication failed.")
