"""Tests for password generation."""

import string

from provisioner import PASSWORD_LENGTH, fncGeneratePassword

ALNUM = set(string.ascii_letters + string.digits)


def test_default_length_is_twelve():
    assert PASSWORD_LENGTH == 12
    assert len(fncGeneratePassword()) == 12


def test_only_alphanumeric_characters():
    for _ in range(200):
        assert set(fncGeneratePassword()) <= ALNUM


def test_consecutive_passwords_differ():
    passwords = {fncGeneratePassword() for _ in range(50)}
    assert len(passwords) == 50


def test_custom_length():
    assert len(fncGeneratePassword(32)) == 32


def test_uses_secrets_module(monkeypatch):
    """Characters come from secrets.choice, not the random module."""
    import provisioner

    calls = []

    def fake_choice(seq):
        calls.append(seq)
        return "x"

    monkeypatch.setattr(provisioner.secrets, "choice", fake_choice)

    assert fncGeneratePassword() == "x" * 12
    assert len(calls) == 12
    assert calls[0] == string.ascii_letters + string.digits
