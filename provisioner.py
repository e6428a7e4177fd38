# Script: provisioner.py
#
# What this does:
# - Reads "username; group1,group2" lines
# - For each new user: create account + personal group, create/assign the
#   supplementary groups, set a random password, append it to the credential store
# - Every step is logged and echoed; a failed step never stops the batch
# - Dry-run still reads the identity database but changes nothing on disk

import logging
import os
import secrets
import stat
import string
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from console import fncPrintMessage
from identitystore import AlreadyExists, IdentityError, IdentityStore

log = logging.getLogger("userforge")

PASSWORD_LENGTH = 12
PASSWORD_ALPHABET = string.ascii_letters + string.digits
DEFAULT_SHELL = "/bin/bash"
DRY_RUN_PREFIX = "(DRY-RUN) "

#==============#
# Data model   #
#==============#

@dataclass
class ProvisionRecord:
    username: str
    groups: list[str] = field(default_factory=list)

class Outcome(Enum):
    SKIPPED = "skipped"
    CREATED = "created"
    PARTIAL_FAILURE = "partial"
    FAILED = "failed"

@dataclass
class ProvisionResult:
    username: str
    outcome: Outcome
    reason: str = ""
    failed_steps: list[str] = field(default_factory=list)
    simulated: bool = False

@dataclass
class ProvisionerConfig:
    log_file: str
    password_file: str
    default_shell: str = DEFAULT_SHELL
    password_length: int = PASSWORD_LENGTH
    dry_run: bool = False

@dataclass
class RunSummary:
    created: int = 0
    partial: int = 0
    skipped: int = 0
    failed: int = 0

    @classmethod
    def from_results(cls, results):
        counts = Counter(r.outcome for r in results)
        return cls(
            created=counts[Outcome.CREATED],
            partial=counts[Outcome.PARTIAL_FAILURE],
            skipped=counts[Outcome.SKIPPED],
            failed=counts[Outcome.FAILED],
        )

    def __str__(self):
        return (f"created={self.created} partial={self.partial} "
                f"skipped={self.skipped} failed={self.failed}")

class CredentialWriteFailure(Exception):
    pass

#=================#
# Input parsing   #
#=================#

# Function: fncParseRecord
# Purpose : Turn one input line into a ProvisionRecord.
# Notes   : Splits on the first ';' then on ','. Returns None for blank lines,
#           '#' comments and lines with an empty username. Duplicate groups are kept.
def fncParseRecord(line: str) -> ProvisionRecord | None:
    if line.lstrip().startswith("#"):
        return None
    username, _, raw_groups = line.partition(";")
    username = username.strip()
    if not username:
        return None
    groups = [g.strip() for g in raw_groups.split(",") if g.strip()]
    return ProvisionRecord(username, groups)

def fncReadRecords(path: str):
    """Yield ProvisionRecords from `path` in file order, skipping unusable lines."""
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        for lineno, line in enumerate(f, start=1):
            record = fncParseRecord(line)
            if record is None:
                log.debug("Skipping line %d of %s", lineno, path)
                continue
            yield record

#=================#
# Passwords       #
#=================#

# Function: fncGeneratePassword
# Purpose : Generate a random initial password.
# Notes   : secrets.choice over [A-Za-z0-9]; each character drawn independently.
def fncGeneratePassword(length: int = PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))

#=====================#
# Credential store    #
#=====================#

class CredentialStore:
    """Append-only `username,password` file, readable by its owner only."""

    def __init__(self, path: str):
        self.path = path

    def _open_append(self) -> int:
        d = os.path.dirname(self.path)
        if d:
            os.makedirs(d, mode=0o700, exist_ok=True)
        # O_NOFOLLOW: refuse to write through a symlink
        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT | os.O_NOFOLLOW, 0o600)
        try:
            if not stat.S_ISREG(os.fstat(fd).st_mode):
                raise CredentialWriteFailure(f"{self.path} is not a regular file")
            os.fchmod(fd, 0o600)
        except BaseException:
            os.close(fd)
            raise
        return fd

    def ensure(self):
        """Create the store (and its directory) if missing and lock down its mode."""
        try:
            os.close(self._open_append())
        except OSError as e:
            raise CredentialWriteFailure(f"cannot prepare {self.path}: {e}") from e

    def append(self, username: str, password: str):
        try:
            with os.fdopen(self._open_append(), "a", encoding="utf-8") as f:
                f.write(f"{username},{password}\n")
        except OSError as e:
            raise CredentialWriteFailure(f"cannot append to {self.path}: {e}") from e

#=================#
# Provisioner     #
#=================#

class Provisioner:
    """Runs the per-record provisioning pipeline against an IdentityStore."""

    def __init__(self, config: ProvisionerConfig, store: IdentityStore,
                 credentials: CredentialStore | None = None):
        self.config = config
        self.store = store
        self.credentials = credentials or CredentialStore(config.password_file)

    # Function: _report
    # Purpose : Log a step decision and echo it to the console.
    # Notes   : Dry-run prefixes every message; console gets an extra hint on skips.
    def _report(self, msg_type: str, message: str, console_suffix: str = ""):
        if self.config.dry_run:
            message = DRY_RUN_PREFIX + message
            if msg_type in ("info", "success"):
                msg_type = "dryrun"
        if msg_type == "error":
            log.error("%s", message)
        else:
            log.info("%s", message)
        fncPrintMessage(message + console_suffix, msg_type)

    def run(self, input_path: str) -> list[ProvisionResult]:
        results = []
        for record in fncReadRecords(input_path):
            results.append(self.provision(record))
        return results

    def provision(self, record: ProvisionRecord) -> ProvisionResult:
        user = record.username
        dry_run = self.config.dry_run

        # Read-only; runs in dry-run too so the report matches reality
        if self.store.user_exists(user):
            self._report("warning", f"User {user} already exists.", " Skipping...")
            return ProvisionResult(user, Outcome.SKIPPED, "already exists", simulated=dry_run)

        if dry_run:
            self._report("info", f"Would create user {user} with personal group.")
        else:
            try:
                self.store.create_user(user, self.config.default_shell)
            except AlreadyExists:
                self._report("warning", f"User {user} already exists.", " Skipping...")
                return ProvisionResult(user, Outcome.SKIPPED, "already exists")
            except IdentityError as e:
                self._report("error", f"Failed to create user {user}. ({e})")
                return ProvisionResult(user, Outcome.FAILED, str(e))
            self._report("success", f"Created user {user} with personal group.")

        failed_steps = []
        for group in record.groups:
            failed_steps.extend(self._assign_group(user, group))

        if dry_run:
            self._report("info", f"Would set password for user {user}.")
            self._report("info", f"Would store password for user {user}.")
            return ProvisionResult(user, Outcome.CREATED, simulated=True)

        password = fncGeneratePassword(self.config.password_length)
        try:
            self.store.set_password(user, password)
            self._report("success", f"Set password for user {user}.")
        except IdentityError as e:
            self._report("error", f"Failed to set password for user {user}. ({e})")
            failed_steps.append("password")

        # Stored even when chpasswd failed; see DESIGN.md
        try:
            self.credentials.append(user, password)
            self._report("success", f"Stored password for user {user}.")
        except CredentialWriteFailure as e:
            self._report("error", f"Failed to store password for user {user}. ({e})")
            failed_steps.append("credentials")

        if failed_steps:
            return ProvisionResult(user, Outcome.PARTIAL_FAILURE,
                                   "some steps failed", failed_steps=failed_steps)
        return ProvisionResult(user, Outcome.CREATED)

    # Function: _assign_group
    # Purpose : Ensure `group` exists, then add `user` to it.
    # Notes   : Returns the failed step names (empty list on success).
    def _assign_group(self, user: str, group: str) -> list[str]:
        if not self.store.group_exists(group):
            if self.config.dry_run:
                self._report("info", f"Would create group {group}.")
            else:
                try:
                    self.store.create_group(group)
                    self._report("success", f"Created group {group}.")
                except AlreadyExists:
                    log.debug("Group %s appeared before groupadd; using it", group)
                except IdentityError as e:
                    self._report("error", f"Failed to create group {group}. ({e})")
                    return [f"group:{group}"]

        if self.config.dry_run:
            self._report("info", f"Would add user {user} to group {group}.")
            return []
        try:
            self.store.add_member(user, group)
        except IdentityError as e:
            self._report("error", f"Failed to add user {user} to group {group}. ({e})")
            return [f"membership:{group}"]
        self._report("success", f"Added user {user} to group {group}.")
        return []
