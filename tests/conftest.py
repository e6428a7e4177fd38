"""
Pytest configuration and fixtures for userforge tests.
"""

import pytest

import userforge
from identitystore import (
    AlreadyExists,
    AssignmentFailure,
    CreationFailure,
    IdentityStore,
)
from provisioner import ProvisionerConfig


class FakeIdentityStore(IdentityStore):
    """In-memory identity database. Every mutation is recorded in `mutations`."""

    def __init__(self, users=(), groups=()):
        self.members = {u: set() for u in users}
        self.groups = set(groups) | set(users)
        self.shells = {}
        self.passwords = {}
        self.mutations = []
        # failure injection
        self.fail_create_user = set()
        self.race_create_user = set()
        self.fail_create_group = set()
        self.race_create_group = set()
        self.fail_add_member = set()
        self.fail_set_password = set()
        self.fail_detail = "boom"

    def user_exists(self, name):
        return name in self.members

    def group_exists(self, name):
        return name in self.groups

    def create_user(self, name, shell):
        if name in self.fail_create_user:
            raise CreationFailure(f"useradd {name} exited 1", self.fail_detail)
        if name in self.race_create_user or name in self.members:
            raise AlreadyExists(f"user {name} already exists")
        if name in self.groups:
            # useradd -U refuses when the personal group name is taken
            raise CreationFailure(f"useradd {name} exited 9", f"useradd: group {name} exists")
        self.members[name] = set()
        self.groups.add(name)
        self.shells[name] = shell
        self.mutations.append(("create_user", name))

    def create_group(self, name):
        if name in self.fail_create_group:
            raise CreationFailure(f"groupadd {name} exited 1", "boom")
        if name in self.race_create_group:
            self.groups.add(name)
            raise AlreadyExists(f"group {name} already exists")
        self.groups.add(name)
        self.mutations.append(("create_group", name))

    def add_member(self, user, group):
        if group in self.fail_add_member or group not in self.groups:
            raise AssignmentFailure(f"usermod -aG {group} {user} exited 6")
        self.members[user].add(group)
        self.mutations.append(("add_member", user, group))

    def set_password(self, user, password):
        if user in self.fail_set_password:
            raise AssignmentFailure(f"chpasswd for {user} exited 1")
        self.passwords[user] = password
        self.mutations.append(("set_password", user))


@pytest.fixture
def store():
    return FakeIdentityStore(groups={"sudo"})


@pytest.fixture
def config(tmp_path):
    return ProvisionerConfig(
        log_file=str(tmp_path / "log" / "user_management.log"),
        password_file=str(tmp_path / "secure" / "user_passwords.csv"),
    )


@pytest.fixture
def dry_config(config):
    config.dry_run = True
    return config


@pytest.fixture
def action_log(config):
    """Send the action log to the config's log file and return its path."""
    userforge.fncSetupLogging(config.log_file)
    return config.log_file


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    userforge.fncSetupLogging(None)


@pytest.fixture
def input_file(tmp_path):
    def _write(text):
        path = tmp_path / "users.txt"
        path.write_text(text, encoding="utf-8")
        return str(path)
    return _write
