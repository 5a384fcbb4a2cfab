"""Configuration loading: YAML file with environment variable overrides.

Priority: env vars > config file. A missing config file is replaced by a
commented template so the user has something to edit.
"""

import logging
import os
import stat
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from .errors import ConfigurationInvalid, IOFailure
from .models import DEFAULT_PORT, ConnectionDescriptor

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = "android-ssh-mcp"
CONFIG_FILE_NAME = "config.yaml"

ENV_OVERRIDES = {
    "ANDROID_SSH_HOST": "host",
    "ANDROID_SSH_PORT": "port",
    "ANDROID_SSH_USER": "username",
    "ANDROID_SSH_PASSWORD": "password",
    "ANDROID_SSH_KEY_PATH": "key_path",
}

CONFIG_TEMPLATE = f"""\
# Android SSH MCP server configuration
# Edit with your Android device credentials, then restart the server
# (or call the `setup` tool instead of editing this file).

# host: 192.168.1.100        # Find with: ip -4 addr show wlan0 (in Termux)
# port: {DEFAULT_PORT}                 # Termux sshd default
# username: u0_a555          # Find with: whoami (in Termux)

# Authentication (at least one):
# key_path: ~/.ssh/id_ed25519   # Recommended: SSH key auth
# password: your_password       # Alternative: password auth

# Quick setup:
# 1. Find your device IP: run 'ip -4 addr show wlan0' in Termux
# 2. Find your username: run 'whoami' in Termux
# 3. Generate an SSH key: ssh-keygen -t ed25519 -f ~/.ssh/id_ed25519 -N ""
# 4. Copy it to the device: ssh-copy-id -p {DEFAULT_PORT} -i ~/.ssh/id_ed25519.pub USER@HOST
# 5. Fill in host, username and key_path above
"""


def default_config_path() -> Path:
    """~/.config/android-ssh-mcp/config.yaml, honouring XDG_CONFIG_HOME."""
    base = os.environ.get("XDG_CONFIG_HOME") or "~/.config"
    return Path(base).expanduser() / CONFIG_DIR_NAME / CONFIG_FILE_NAME


def ensure_config_exists(config_path: Path) -> bool:
    """Write the template if the file is missing.

    Returns:
        True if the file already existed, False if the template was just created
    """
    if config_path.exists():
        return True
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(CONFIG_TEMPLATE)
    except OSError as e:
        raise IOFailure("create config template", e, path=config_path) from e
    logger.info("Created config template at %s", config_path)
    return False


def load_existing(config_path: Path) -> dict:
    """Raw values from the config file, without env overrides. {} if absent."""
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise IOFailure("read config file", e, path=config_path) from e
    except yaml.YAMLError as e:
        raise ConfigurationInvalid(f"Failed to parse config file: {e}", config_path) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationInvalid("Config file must contain a mapping", config_path)
    return data


def format_validation_error(error: ValidationError) -> str:
    """One line per invalid field, e.g. ``port: Input should be ...``."""
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
        for err in error.errors()
    )


def _apply_env_overrides(data: dict) -> None:
    """Apply ANDROID_SSH_* environment variables over file values."""
    for env_name, key in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is None:
            continue
        if key == "port":
            try:
                value = int(value)
            except ValueError:
                raise ConfigurationInvalid(
                    f"Invalid {env_name}: {value!r} is not a port number"
                ) from None
        data[key] = value


def load_config(config_path: Optional[Path] = None) -> Optional[ConnectionDescriptor]:
    """Load the connection descriptor.

    Returns:
        The validated descriptor, or None if host and username are not
        configured yet (first run)

    Raises:
        ConfigurationInvalid: the file or an override is invalid
    """
    if config_path is None:
        config_path = default_config_path()

    ensure_config_exists(config_path)
    data = load_existing(config_path)
    _apply_env_overrides(data)

    if not data.get("host") and not data.get("username"):
        return None

    # YAML reads unquoted values like `password: 1234` as numbers
    for key in ("username", "password", "key_path"):
        if data.get(key) is not None and not isinstance(data[key], str):
            data[key] = str(data[key])

    try:
        descriptor = ConnectionDescriptor(**data)
    except ValidationError as e:
        raise ConfigurationInvalid(
            f"Invalid configuration: {format_validation_error(e)}", config_path
        ) from e

    validate_descriptor(descriptor, config_path)
    logger.info(
        "Loaded config: host=%s:%d, user=%s",
        descriptor.host, descriptor.port, descriptor.username,
    )
    return descriptor


def validate_descriptor(
    descriptor: ConnectionDescriptor, config_path: Optional[Path] = None
) -> None:
    """Check credentials are present and the key file exists.

    A key file readable by group or others only produces a warning.
    """
    if not descriptor.has_credentials:
        raise ConfigurationInvalid(
            "Must provide either 'password' or 'key_path' for authentication",
            config_path,
        )

    key_path = descriptor.expanded_key_path
    if key_path is None:
        return
    if not key_path.exists():
        raise ConfigurationInvalid(f"SSH key file not found: {key_path}", config_path)

    mode = stat.S_IMODE(key_path.stat().st_mode)
    if mode != 0o600:
        logger.warning(
            "SSH key file has permissions %o, recommended 600: %s", mode, key_path
        )


def save_config(descriptor: ConnectionDescriptor, config_path: Path) -> Path:
    """Write the descriptor to ``config_path`` readable by the owner only."""
    data: dict = {
        "host": descriptor.host,
        "port": descriptor.port,
        "username": descriptor.username,
    }
    if descriptor.key_path:
        data["key_path"] = descriptor.key_path
    if descriptor.password is not None:
        data["password"] = descriptor.password.get_secret_value()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(config_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            f.write("# Android SSH MCP server configuration (written by setup)\n")
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(config_path, 0o600)
    except OSError as e:
        raise IOFailure("save config file", e, path=config_path) from e

    logger.info("Saved config to %s", config_path)
    return config_path


def first_run_message(config_path: Optional[Path] = None) -> str:
    """Guidance shown by every tool until the connection is configured."""
    if config_path is None:
        config_path = default_config_path()
    return (
        "Configuration Setup Required\n\n"
        f"Config file: {config_path}\n\n"
        "Call the setup tool, or edit this file with your Android device credentials:\n"
        "- host: Your device IP (run 'ip -4 addr show wlan0' in Termux)\n"
        "- username: Your Termux username (run 'whoami' in Termux)\n"
        "- key_path: Path to SSH key (recommended: ~/.ssh/id_ed25519)\n"
        "- password: Only if not using key auth\n\n"
        "Quick SSH key setup:\n"
        '1. ssh-keygen -t ed25519 -f ~/.ssh/id_ed25519 -N ""\n'
        f"2. ssh-copy-id -p {DEFAULT_PORT} -i ~/.ssh/id_ed25519.pub USER@HOST\n"
        "3. Update the config file with your credentials\n\n"
        "Alternatively, set environment variables:\n"
        + ", ".join(ENV_OVERRIDES)
    )
