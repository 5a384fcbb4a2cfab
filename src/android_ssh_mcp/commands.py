"""Read-only command whitelist and request checks."""

from typing import Optional

DEFAULT_TIMEOUT = 30
MIN_TIMEOUT = 1
MAX_TIMEOUT = 300

READ_ONLY_CATEGORIES: dict[str, tuple[str, ...]] = {
    "File viewing": (
        "ls", "cat", "head", "tail", "less", "more", "grep", "rg", "find",
        "fd", "tree", "bat", "eza", "exa", "locate",
    ),
    "Path operations": ("cd", "pwd", "readlink", "realpath", "basename", "dirname"),
    "System info": (
        "whoami", "id", "groups", "which", "whereis", "type", "hostname",
        "uname", "date", "uptime",
    ),
    "Display": ("echo", "printf"),
    "Process monitoring": ("ps", "top", "htop", "btop", "lsof"),
    "Disk/filesystem": ("df", "du", "lsblk", "blkid", "stat", "file"),
    "Memory/performance": ("free", "vmstat", "iostat", "iotop", "lsmem", "lshw", "lscpu"),
    "Network monitoring": ("netstat", "ss", "ping", "traceroute", "nslookup", "dig", "host"),
    "Text processing": ("wc", "sort", "uniq", "cut", "paste", "tr", "column"),
    "Comparison": ("diff", "cmp", "comm"),
    "Checksums": ("md5sum", "sha1sum", "sha256sum", "sha512sum"),
    "Environment": ("env", "printenv", "getent", "getconf"),
    "Binary viewers": ("xxd", "hexdump", "od", "strings"),
    "Compressed viewers": ("zcat", "bzcat", "xzcat", "gunzip", "bunzip2", "unxz"),
    "Data parsers": ("jq", "yq", "xmllint"),
    "Logs": ("journalctl",),
    "Hardware": ("lsmod", "modinfo", "lspci", "lsusb"),
    "Shell": ("history", "alias"),
    "Fonts": ("fc-list", "fc-match"),
    "Test": ("test", "true", "false"),
}

READ_ONLY_COMMANDS: frozenset[str] = frozenset(
    name for names in READ_ONLY_CATEGORIES.values() for name in names
)


def first_word(command: str) -> str:
    """Return the first whitespace-delimited token, or '' for a blank command."""
    parts = command.split(maxsplit=1)
    return parts[0] if parts else ""


def is_read_only(command: str) -> bool:
    """Check whether the command's program name is on the read-only whitelist.

    Only the program name is checked. Arguments, redirections and chained
    commands are not inspected, so this is a convention, not a sandbox.
    """
    return first_word(command) in READ_ONLY_COMMANDS


def check_timeout(timeout: int) -> Optional[str]:
    """Return an error message if the timeout is out of range, else None."""
    if isinstance(timeout, bool) or not isinstance(timeout, int):
        return "Timeout must be a whole number of seconds"
    if not MIN_TIMEOUT <= timeout <= MAX_TIMEOUT:
        return f"Timeout must be between {MIN_TIMEOUT} and {MAX_TIMEOUT} seconds"
    return None
