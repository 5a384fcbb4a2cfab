"""MCP server for running shell commands on an Android device over SSH."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP
from pydantic import ValidationError

from .commands import (
    DEFAULT_TIMEOUT,
    MAX_TIMEOUT,
    MIN_TIMEOUT,
    READ_ONLY_CATEGORIES,
    check_timeout,
    first_word,
    is_read_only,
)
from .config import (
    default_config_path,
    first_run_message,
    format_validation_error,
    load_config,
    load_existing,
    save_config,
    validate_descriptor,
)
from .errors import (
    AndroidSSHError,
    AuthenticationFailed,
    CommandTimeout,
    ConfigurationInvalid,
    ConnectionFailed,
    ExecutionFailed,
    IOFailure,
)
from .log import setup_logging
from .models import (
    DEFAULT_PORT,
    AuthFailureReason,
    AuthMethod,
    CommandResult,
    ConnectionDescriptor,
)
from .session import SessionManager

logger = logging.getLogger(__name__)


def _instructions() -> str:
    whitelist = "\n".join(
        f"- {category}: {', '.join(names)}"
        for category, names in READ_ONLY_CATEGORIES.items()
    )
    return (
        "Android SSH MCP Server - shell access to an Android device (Termux sshd).\n\n"
        "Use setup to configure the connection.\n"
        "Use execute_read for safe read-only commands (ls, cat, ps, etc.).\n"
        "Use execute for commands that modify the system (rm, mkdir, curl, etc.).\n\n"
        "execute_read only accepts commands whose program name is whitelisted:\n"
        f"{whitelist}\n\n"
        "Both execute tools accept an optional 'timeout' "
        f"({MIN_TIMEOUT}-{MAX_TIMEOUT} seconds, default: {DEFAULT_TIMEOUT}). "
        "Use longer timeouts for package installations or long-running operations."
    )


mcp = FastMCP("Android SSH", instructions=_instructions())
manager: Optional[SessionManager] = None
config_path: Path = default_config_path()
config_error: Optional[AndroidSSHError] = None


def format_result(result: CommandResult) -> str:
    """Render stdout, an optional stderr block and a status line."""
    output = ""
    if result.stdout:
        output += result.stdout
        if not output.endswith("\n"):
            output += "\n"

    if result.stderr:
        if output:
            output += "\n"
        output += "stderr:\n" + result.stderr
        if not output.endswith("\n"):
            output += "\n"

    if output:
        output += "\n"

    if result.exit_code == 0:
        output += "✓ Success"
    else:
        output += f"✗ Failed (exit code: {result.exit_code})"
    return output


_METHOD_LABELS = {AuthMethod.PUBLICKEY: "SSH key", AuthMethod.PASSWORD: "Password"}


def _auth_hint(method: AuthMethod, reason: AuthFailureReason, port: int) -> str:
    if reason in (AuthFailureReason.KEY_UNREADABLE, AuthFailureReason.KEY_INVALID):
        return "check key_path points to a readable, unencrypted private key"
    if reason is AuthFailureReason.NOT_ALLOWED:
        return "enable this method in the device's sshd config or use the other one"
    if reason is AuthFailureReason.ERROR:
        return "the connection dropped during authentication; try again"
    if method is AuthMethod.PUBLICKEY:
        return (
            "check the key was installed on the remote device: "
            f"ssh-copy-id -p {port} -i KEY.pub USER@HOST"
        )
    return "check the password (set it with 'passwd' in Termux)"


def format_error(exc: BaseException) -> str:
    """Human-readable diagnostic with remediation hints for the caller."""
    if isinstance(exc, ConnectionFailed):
        cause = exc.cause if exc.cause is not None else "no response from device"
        return (
            f"Could not connect to {exc.host}:{exc.port} "
            f"after {exc.attempts} attempts: {cause}\n\n"
            "Check that:\n"
            "- the device is on the same network and the IP is current "
            "(run 'ip -4 addr show wlan0' in Termux)\n"
            "- sshd is running in Termux (run 'sshd')\n"
            f"- the port is correct (Termux default: {DEFAULT_PORT})"
        )

    if isinstance(exc, AuthenticationFailed):
        lines = [f"Authentication failed for {exc.username}@{exc.host}:{exc.port}"]
        if not exc.attempts:
            lines.append(
                "- No authentication method configured: "
                "set key_path or password with the setup tool"
            )
        for attempt in exc.attempts:
            line = f"- {_METHOD_LABELS[attempt.method]} authentication: {attempt.reason.value}"
            if attempt.detail:
                line += f" ({attempt.detail})"
            lines.append(line)
            lines.append(f"  Hint: {_auth_hint(attempt.method, attempt.reason, exc.port)}")
        return "\n".join(lines)

    if isinstance(exc, CommandTimeout):
        return (
            f"Command timed out after {exc.timeout:g} seconds. "
            f"Pass a larger timeout (up to {MAX_TIMEOUT}) for long-running commands."
        )

    if isinstance(exc, ExecutionFailed):
        return f"Command execution failed: could not {exc.stage}: {exc.cause}"

    if isinstance(exc, ConfigurationInvalid):
        text = f"Configuration error: {exc.reason}"
        if exc.path is not None:
            text += f"\nConfig file: {exc.path}"
        return text + "\nUse the setup tool to fix the connection settings."

    if isinstance(exc, IOFailure):
        text = f"I/O error while trying to {exc.operation}: {exc.cause}"
        if exc.path is not None:
            text += f" ({exc.path})"
        return text

    return str(exc)


async def _run_command(command: str, timeout: int, read_only: bool) -> str:
    if manager is None:
        if config_error is not None:
            return f"ERROR: {format_error(config_error)}"
        return f"ERROR: {first_run_message(config_path)}"

    error = check_timeout(timeout)
    if error:
        return f"ERROR: {error}"

    if read_only and not is_read_only(command):
        return (
            f"ERROR: Command '{first_word(command)}' is not whitelisted as read-only. "
            "Use the execute tool instead."
        )

    try:
        result = await manager.execute(command, timeout)
    except AndroidSSHError as e:
        logger.warning("Command failed: %s", e)
        return f"ERROR: {format_error(e)}"

    return format_result(result)


@mcp.tool()
async def execute_read(command: str, timeout: int = DEFAULT_TIMEOUT) -> str:
    """
    Execute a safe read-only shell command on Android via SSH.

    Only whitelisted programs (file viewers, text filters, system and
    network introspection, checksums, ...) are accepted; use execute for
    anything that writes, modifies or deletes.

    Args:
        command: The shell command to execute, e.g. "ls -la /sdcard"
        timeout: Command timeout in seconds (1-300, default: 30)

    Returns:
        stdout, stderr (if any) and a success/failure status line
    """
    return await _run_command(command, timeout, read_only=True)


@mcp.tool()
async def execute(command: str, timeout: int = DEFAULT_TIMEOUT) -> str:
    """
    Execute any shell command on Android via SSH.

    Use for commands that write, modify or delete: rm, mv, mkdir, pkg
    install, curl, git, dumpsys, echo > file. Prefer execute_read for
    read-only commands.

    Args:
        command: The shell command to execute
        timeout: Command timeout in seconds (1-300, default: 30)

    Returns:
        stdout, stderr (if any) and a success/failure status line
    """
    return await _run_command(command, timeout, read_only=False)


def _missing_message(
    missing: list[str],
    host: Optional[str],
    username: Optional[str],
    key_path: Optional[str],
    password: Optional[str],
) -> str:
    msg = "Setup incomplete. Missing:\n\n"
    if "host" in missing:
        msg += "• host - Your Android device IP\n"
        msg += "  Find it: Run 'ip -4 addr show wlan0' in Termux\n\n"
    if "username" in missing:
        msg += "• username - Your Termux username\n"
        msg += "  Find it: Run 'whoami' in Termux\n\n"
    if "key_path or password" in missing:
        msg += "• Authentication - Choose one:\n"
        msg += "  SSH key (recommended):\n"
        msg += "    Generate: ssh-keygen -t ed25519 -f ~/.ssh/id_ed25519\n"
        msg += (
            f"    Copy to device: ssh-copy-id -p {DEFAULT_PORT} "
            "-i ~/.ssh/id_ed25519.pub USER@HOST\n"
        )
        msg += '    Then provide: key_path = "~/.ssh/id_ed25519"\n\n'
        msg += "  OR password (less secure):\n"
        msg += "    Set Termux password: Run 'passwd' in Termux\n"
        msg += '    Then provide: password = "your_password"\n\n'

    if host:
        msg += f'Current: host = "{host}"\n'
    if username:
        msg += f'Current: username = "{username}"\n'
    if key_path:
        msg += f'Current: key_path = "{key_path}"\n'
    if password:
        msg += 'Current: password = "***"\n'
    return msg


@mcp.tool()
async def setup(
    host: str = None,
    port: int = None,
    username: str = None,
    key_path: str = None,
    password: str = None,
) -> str:
    """
    Configure the Android SSH connection.

    All parameters are optional; values not given are kept from the
    existing config file. Missing information is reported back. The new
    settings are saved and used from the next command on.

    Args:
        host: Android device IP address (e.g. 192.168.1.100)
        port: SSH port (default: 8022 for Termux)
        username: Termux username (run 'whoami' in Termux)
        key_path: Path to SSH private key (recommended, e.g. ~/.ssh/id_ed25519)
        password: SSH password (alternative to key_path)

    Returns:
        Saved connection details, or what is still missing
    """
    global manager, config_error

    try:
        existing = load_existing(config_path)
    except AndroidSSHError as e:
        logger.warning("Ignoring unreadable config file: %s", e)
        existing = {}

    def pick(value, key):
        if value is not None:
            return value
        stored = existing.get(key)
        return str(stored) if stored is not None and key != "port" else stored

    host = pick(host, "host")
    port = pick(port, "port")
    username = pick(username, "username")
    key_path = pick(key_path, "key_path")
    password = pick(password, "password")

    missing = []
    if not host:
        missing.append("host")
    if not username:
        missing.append("username")
    if not key_path and not password:
        missing.append("key_path or password")
    if missing:
        return "ERROR: " + _missing_message(missing, host, username, key_path, password)

    try:
        descriptor = ConnectionDescriptor(
            host=host,
            port=port if port is not None else DEFAULT_PORT,
            username=username,
            key_path=key_path or None,
            password=password or None,
        )
    except ValidationError as e:
        return f"ERROR: Invalid setup values: {format_validation_error(e)}"

    try:
        validate_descriptor(descriptor, config_path)
        path = save_config(descriptor, config_path)
    except AndroidSSHError as e:
        return f"ERROR: {format_error(e)}"

    previous, manager = manager, SessionManager(descriptor)
    config_error = None
    if previous is not None:
        await previous.disconnect()

    details = (
        f"Configuration saved to: {path}\n\n"
        "Connection details:\n"
        f"• Host: {descriptor.host}:{descriptor.port}\n"
        f"• User: {descriptor.username}\n"
        f"• Auth: {descriptor.auth_summary}\n\n"
    )
    try:
        await manager.verify()
    except AndroidSSHError as e:
        logger.warning("Setup saved but connection failed: %s", e)
        return f"ERROR: {details}Connection test failed:\n{format_error(e)}"

    return f"✓ {details}Connected. Try: \"list files in /sdcard\""


def main():
    """Run the MCP server."""
    global manager, config_path, config_error

    parser = argparse.ArgumentParser(
        description="MCP server for shell access to an Android device over SSH"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: ~/.config/android-ssh-mcp/config.yaml)",
    )
    parser.add_argument(
        "--connect-on-start",
        action="store_true",
        help="Connect before serving and exit if that fails "
        "(default: connect on the first command)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: $ANDROID_SSH_LOG_LEVEL or INFO)",
    )
    args = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("Android SSH MCP server starting")

    if args.config is not None:
        config_path = args.config

    descriptor = None
    try:
        descriptor = load_config(config_path)
    except AndroidSSHError as e:
        config_error = e
        logger.error("%s", format_error(e))

    if descriptor is not None:
        manager = SessionManager(descriptor)
    elif config_error is None:
        logger.info("No connection configured yet, waiting for setup")

    if args.connect_on_start:
        if manager is None:
            logger.error("--connect-on-start needs a complete configuration")
            sys.exit(1)
        try:
            asyncio.run(manager.connect())
        except (ConnectionFailed, AuthenticationFailed) as e:
            logger.error("%s", format_error(e))
            sys.exit(1)

    logger.info("Starting MCP server on stdio")
    try:
        mcp.run()
    finally:
        if manager is not None:
            asyncio.run(manager.disconnect())
        logger.info("Android SSH MCP server shutting down")


if __name__ == "__main__":
    main()
