"""Tests for the append-only credential store."""

import os
import stat

import pytest

from provisioner import CredentialStore, CredentialWriteFailure


def _mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


def test_ensure_creates_directory_and_private_file(tmp_path):
    path = tmp_path / "secure" / "user_passwords.csv"

    CredentialStore(str(path)).ensure()

    assert path.exists()
    assert path.read_text() == ""
    assert _mode(path) == 0o600
    assert _mode(path.parent) & 0o077 == 0


def test_ensure_tightens_existing_file(tmp_path):
    path = tmp_path / "user_passwords.csv"
    path.write_text("old,entry\n")
    os.chmod(path, 0o644)

    CredentialStore(str(path)).ensure()

    assert _mode(path) == 0o600
    assert path.read_text() == "old,entry\n"


def test_append_accumulates_lines(tmp_path):
    path = tmp_path / "secure" / "user_passwords.csv"
    creds = CredentialStore(str(path))

    creds.append("alice", "Abc123Def456")
    creds.append("bob", "Zyx987Wvu654")

    assert path.read_text() == "alice,Abc123Def456\nbob,Zyx987Wvu654\n"
    assert _mode(path) == 0o600


def test_append_refuses_symlink(tmp_path):
    target = tmp_path / "elsewhere.txt"
    target.write_text("")
    link = tmp_path / "user_passwords.csv"
    link.symlink_to(target)

    with pytest.raises(CredentialWriteFailure):
        CredentialStore(str(link)).append("alice", "Abc123Def456")

    assert target.read_text() == ""


def test_append_to_directory_fails(tmp_path):
    with pytest.raises(CredentialWriteFailure):
        CredentialStore(str(tmp_path)).append("alice", "Abc123Def456")
