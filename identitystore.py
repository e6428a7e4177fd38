# Script: identitystore.py
#
# What this does:
# - Wraps the host's user/group database behind a small interface
# - SystemIdentityStore shells out to pinned binaries (no pwd/grp imports,
#   so what we see is exactly what the shadow tools see)
# - Lookups return bools; mutations raise IdentityError subclasses

import logging
import os
import subprocess

log = logging.getLogger("userforge")

#------------------------------#
# Pinned binaries for exec     #
#------------------------------#
BIN = {
  "useradd":  "/usr/sbin/useradd",
  "usermod":  "/usr/sbin/usermod",
  "groupadd": "/usr/sbin/groupadd",
  "chpasswd": "/usr/sbin/chpasswd",
  "id":       "/usr/bin/id",
  "getent":   "/usr/bin/getent",
}

RC_NOT_FOUND = 127
RC_NAME_IN_USE = 9      # useradd(8)/groupadd(8): user or group name already in use

#==============#
# Error types  #
#==============#

class IdentityError(Exception):
    """Base for failures reported by the identity database tools."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        # tool stderr is often several lines; the action log is one line per entry
        self.detail = " ".join(detail.split())

    def __str__(self):
        base = super().__str__()
        return f"{base}: {self.detail}" if self.detail else base

class AlreadyExists(IdentityError):
    pass

class CreationFailure(IdentityError):
    pass

class AssignmentFailure(IdentityError):
    pass

#===================#
# Command execution #
#===================#

# Function: fncRun
# Purpose : Execute a pinned binary by logical key; capture rc/stdout/stderr.
# Notes   : Returns (returncode, stdout, stderr). Forces LC_ALL=C so tool
#           output doesn't depend on the operator's locale.
def fncRun(cmdkey: str, args: list[str] | None = None, input: str | None = None) -> tuple[int, str, str]:
    exe = BIN.get(cmdkey)
    if not exe or not os.path.exists(exe):
        return RC_NOT_FOUND, "", f"binary not found: {cmdkey} -> {exe}"
    env = dict(os.environ, LC_ALL="C")
    try:
        p = subprocess.run([exe] + (args or []), input=input, capture_output=True,
                           text=True, check=False, env=env)
        return p.returncode, p.stdout.strip(), p.stderr.strip()
    except FileNotFoundError as e:
        return RC_NOT_FOUND, "", str(e)

#===================#
# Store interface   #
#===================#

class IdentityStore:
    """Capability interface over the host identity database."""

    def user_exists(self, name: str) -> bool:
        raise NotImplementedError

    def group_exists(self, name: str) -> bool:
        raise NotImplementedError

    def create_user(self, name: str, shell: str) -> None:
        """Create `name` with a home directory, `shell`, and a same-named primary group."""
        raise NotImplementedError

    def create_group(self, name: str) -> None:
        raise NotImplementedError

    def add_member(self, user: str, group: str) -> None:
        """Add `user` to supplementary `group`. Adding an existing member is not an error."""
        raise NotImplementedError

    def set_password(self, user: str, password: str) -> None:
        raise NotImplementedError

class SystemIdentityStore(IdentityStore):
    """IdentityStore backed by the shadow-utils binaries in BIN."""

    def user_exists(self, name: str) -> bool:
        rc, _, _ = fncRun("id", ["-u", name])
        return rc == 0

    def group_exists(self, name: str) -> bool:
        rc, _, _ = fncRun("getent", ["group", name])
        return rc == 0

    def create_user(self, name: str, shell: str) -> None:
        # -U: personal group named after the account becomes its primary group
        rc, _, err = fncRun("useradd", ["-m", "-s", shell, "-U", name])
        # 9 is also returned when only a same-named group exists (-U can't create it)
        if rc == RC_NAME_IN_USE and self.user_exists(name):
            raise AlreadyExists(f"user {name} already exists", err)
        if rc != 0:
            raise CreationFailure(f"useradd {name} exited {rc}", err)
        log.debug("useradd ok for %s (shell=%s)", name, shell)

    def create_group(self, name: str) -> None:
        rc, _, err = fncRun("groupadd", [name])
        if rc == RC_NAME_IN_USE:
            raise AlreadyExists(f"group {name} already exists", err)
        if rc != 0:
            raise CreationFailure(f"groupadd {name} exited {rc}", err)

    def add_member(self, user: str, group: str) -> None:
        rc, _, err = fncRun("usermod", ["-aG", group, user])
        if rc != 0:
            raise AssignmentFailure(f"usermod -aG {group} {user} exited {rc}", err)

    def set_password(self, user: str, password: str) -> None:
        # chpasswd reads user:password from stdin so the secret never hits argv
        rc, _, err = fncRun("chpasswd", [], input=f"{user}:{password}\n")
        if rc != 0:
            raise AssignmentFailure(f"chpasswd for {user} exited {rc}", err)
