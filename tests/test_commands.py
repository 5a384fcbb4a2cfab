"""Tests for the read-only whitelist and timeout checks."""

import pytest

from android_ssh_mcp.commands import (
    READ_ONLY_CATEGORIES,
    READ_ONLY_COMMANDS,
    check_timeout,
    first_word,
    is_read_only,
)


class TestIsReadOnly:
    def test_whitelisted_command(self):
        assert is_read_only("ls -la /sdcard")

    def test_destructive_command(self):
        assert not is_read_only("rm -rf /sdcard")

    def test_empty_command(self):
        assert not is_read_only("")
        assert not is_read_only("   ")

    def test_leading_whitespace_and_tabs(self):
        assert is_read_only("  \tcat ~/.bashrc")

    @pytest.mark.parametrize("command", ["pkg install git", "dumpsys battery", "curl -O x"])
    def test_not_whitelisted(self, command):
        assert not is_read_only(command)

    def test_only_program_name_is_checked(self):
        # chaining is not inspected; the gate is a naming convention
        assert is_read_only("echo hi; rm -rf ~")

    def test_path_to_whitelisted_program_rejected(self):
        assert not is_read_only("/system/bin/ls")

    def test_hyphenated_names(self):
        assert is_read_only("fc-list : family")


class TestWhitelistTable:
    def test_categories_flatten_without_duplicates(self):
        total = sum(len(names) for names in READ_ONLY_CATEGORIES.values())
        assert total == len(READ_ONLY_COMMANDS) == 101

    def test_no_writers(self):
        for name in ("rm", "mv", "cp", "mkdir", "chmod", "touch", "dd", "sh", "bash"):
            assert name not in READ_ONLY_COMMANDS


class TestFirstWord:
    def test_first_word(self):
        assert first_word("uname -a") == "uname"
        assert first_word("") == ""


class TestCheckTimeout:
    @pytest.mark.parametrize("timeout", [1, 30, 300])
    def test_in_range(self, timeout):
        assert check_timeout(timeout) is None

    @pytest.mark.parametrize("timeout", [0, -5, 301, 10_000])
    def test_out_of_range_rejected(self, timeout):
        assert check_timeout(timeout) == "Timeout must be between 1 and 300 seconds"

    def test_bool_rejected(self):
        assert check_timeout(True) is not None
