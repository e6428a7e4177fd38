#!/usr/bin/env python3
# Script: userforge.py
#
# What this does (for my future self):
# - Reads a list of "username; group1,group2" lines
# - Creates each missing user with a home, a shell and a personal group
# - Creates/assigns the supplementary groups, sets a random 12 char password
# - Appends username,password to a root-only CSV
# - Logs every step to /var/log/user_management.log
# - --dry-run shows what would happen and touches nothing

# ==============================
# Imports
# ==============================

# Standard library
import argparse
import logging
import os
import sys

# Local
from console import fncPrintMessage, fncSetColorMode
from identitystore import SystemIdentityStore
from provisioner import (
    CredentialStore,
    CredentialWriteFailure,
    PASSWORD_LENGTH,
    Provisioner,
    ProvisionerConfig,
    RunSummary,
)

#=================#
# Global Settings #
#=================#

VERSION = "1.0.0"
MIN_PYTHON_VERSION = (3, 11)
ADMIN_REQUIRED = True   # useradd & friends need root

#-----------------------------#
# Defaults (env-overridable)  #
#-----------------------------#
LOG_FILE = "/var/log/user_management.log"
PASSWORD_FILE = "/var/secure/user_passwords.csv"
DEFAULT_SHELL = "/bin/bash"

LOG_FORMAT = "%(asctime)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

log = logging.getLogger("userforge")

#==============#
# Error types  #
#==============#

class PrivilegeError(Exception):
    pass

class UsageError(Exception):
    pass

#===========================#
# Environment Overlay Utils #
#===========================#

# Function: _env_str
# Purpose : Return stripped string from env with default fallback.
# Notes   : Empty -> default.
def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return v.strip() if v is not None and v.strip() else default

LOG_FILE        = _env_str("LOG_FILE", LOG_FILE)
PASSWORD_FILE   = _env_str("PASSWORD_FILE", PASSWORD_FILE)
DEFAULT_SHELL   = _env_str("DEFAULT_SHELL", DEFAULT_SHELL)

#===================#
# Utility / Logging #
#===================#

# Function: fncSetupLogging
# Purpose : Point the action log at `log_file` (or nowhere when None).
# Notes   : Safe to call repeatedly; old handlers are closed first.
#           --verbose mirrors everything to stderr with level names.
def fncSetupLogging(log_file: str | None, verbose: bool = False) -> logging.Logger:
    for h in list(log.handlers):
        log.removeHandler(h)
        h.close()
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    log.propagate = False

    if verbose:
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        log.addHandler(sh)

    if log_file is None:
        log.addHandler(logging.NullHandler())
        return log

    try:
        d = os.path.dirname(log_file)
        if d:
            os.makedirs(d, exist_ok=True)
        fh = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    except OSError as e:
        fncPrintMessage(f"Couldn't open log file {log_file}: {e}", "warning")
        log.addHandler(logging.NullHandler())
        return log
    fh.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    log.addHandler(fh)
    return log

# Function: fncBootstrapPaths
# Purpose : Create the credential store (0600, dir 0700) before the first record.
# Notes   : Never called in dry-run. Failure is a warning; each record will
#           report its own credential write failure.
def fncBootstrapPaths(config: ProvisionerConfig):
    try:
        CredentialStore(config.password_file).ensure()
    except CredentialWriteFailure as e:
        fncPrintMessage(str(e), "warning")

# Function: fncCheckPyVersion
# Purpose : Fail fast on unsupported Python versions.
# Notes   : Returns False (after saying why) when the interpreter is too old.
def fncCheckPyVersion() -> bool:
    if sys.version_info < MIN_PYTHON_VERSION:
        wanted = ".".join(str(p) for p in MIN_PYTHON_VERSION)
        fncPrintMessage(f"This script requires Python {wanted} or higher. Please upgrade.", "error")
        return False
    return True

# Function: fncAdminCheck
# Purpose : Ensure the process runs as root when ADMIN_REQUIRED is True.
def fncAdminCheck():
    if ADMIN_REQUIRED and os.geteuid() != 0:
        raise PrivilegeError("This script must be run as root")

# Function: fncInputCheck
# Purpose : Validate the input file argument before any record is touched.
def fncInputCheck(input_file: str | None) -> str:
    if not input_file:
        raise UsageError("Usage: userforge <name-of-text-file> [--dry-run]")
    if not os.path.isfile(input_file):
        raise UsageError(f"Input file not found: {input_file}")
    return input_file

#=================#
# CLI             #
#=================#

def fncParseArgs(argv=None):
    parser = argparse.ArgumentParser(
        prog="userforge",
        description="Create local users and groups from a 'username; group1,group2' list",
    )
    # Optional here so a missing file gets our exit code (1), not argparse's (2)
    parser.add_argument("input_file", nargs="?", help="Text file with one 'username; groups' per line")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be done without changing anything")
    parser.add_argument("--log-file", default=LOG_FILE, help=f"Action log (default: {LOG_FILE})")
    parser.add_argument("--password-file", default=PASSWORD_FILE, help=f"Credential store (default: {PASSWORD_FILE})")
    parser.add_argument("--shell", default=DEFAULT_SHELL, help=f"Login shell for new users (default: {DEFAULT_SHELL})")
    parser.add_argument("--no-color", action="store_true", help="Plain console output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Mirror the log to stderr, with debug detail")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)

def fncBuildConfig(args) -> ProvisionerConfig:
    return ProvisionerConfig(
        log_file=args.log_file,
        password_file=args.password_file,
        default_shell=args.shell,
        password_length=PASSWORD_LENGTH,
        dry_run=args.dry_run,
    )

# Function: fncFinish
# Purpose : Log and print the per-outcome tally plus the closing notice.
def fncFinish(config: ProvisionerConfig, results) -> RunSummary:
    summary = RunSummary.from_results(results)
    log.info("Run complete: %s", summary)
    fncPrintMessage(f"Summary: {summary}", "info")
    if config.dry_run:
        fncPrintMessage("(DRY-RUN) User creation process simulated. No changes were made.", "dryrun")
    else:
        fncPrintMessage(
            f"User creation process completed. Check {config.log_file} and {config.password_file} for details.",
            "info",
        )
    return summary

#=================#
# Script harness  #
#=================#

# Function: fncMain
# Purpose : Program entrypoint; preflight checks, logging, the provisioning pass.
# Notes   : Returns the exit code. Uses umask(077) to protect any new files.
def fncMain(argv=None) -> int:
    if not fncCheckPyVersion():
        return 1
    args = fncParseArgs(argv)
    fncSetColorMode(args.no_color)
    try:
        os.umask(0o077)
        fncAdminCheck()
        input_path = fncInputCheck(args.input_file)
        config = fncBuildConfig(args)

        if config.dry_run:
            fncPrintMessage("Running in dry-run mode. No changes will be made.", "dryrun")
            fncSetupLogging(None, args.verbose)
        else:
            fncBootstrapPaths(config)
            fncSetupLogging(config.log_file, args.verbose)
        log.info("---- Run start: %s ----", input_path)

        provisioner = Provisioner(config, SystemIdentityStore())
        results = provisioner.run(input_path)
        fncFinish(config, results)
        return 0
    except PrivilegeError as e:
        fncPrintMessage(str(e), "error")
        return 1
    except UsageError as e:
        fncPrintMessage(str(e), "warning")
        return 1
    except KeyboardInterrupt:
        fncPrintMessage("Bye then...", "error")
        return 0
    except Exception as e:
        log.exception("Unhandled exception: %s", e)
        fncPrintMessage(f"Unhandled exception: {e}", "error")
        return 1

if __name__ == "__main__":
    sys.exit(fncMain())
