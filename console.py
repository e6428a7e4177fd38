# Script: console.py
# Coloured console markers for userforge.
#
# The log file gets the plain message; the console gets the same message
# behind a coloured marker so an operator can eyeball a run.

import os
import sys

# Third-party
from colorama import init as _cinit, Fore, Style

_COLOR_MONO = False

STYLES = {
    "info":    (Fore.CYAN,   "{~} "),
    "success": (Fore.GREEN,  "{=]} "),
    "warning": (Fore.YELLOW, "{!} "),
    "error":   (Fore.RED,    "{!} "),
    "dryrun":  (Fore.BLUE,   "{?} "),
}

# Function: fncInitColor
# Purpose : Wrap stdout with colorama.
# Notes   : colorama strips ANSI codes on a non-TTY; FORCE_COLOR keeps them.
def fncInitColor():
    _cinit(autoreset=True, strip=False if os.environ.get("FORCE_COLOR") else None)

def fncSetColorMode(monochrome: bool):
    """Call once after parsing args; --no-color wins over everything else."""
    global _COLOR_MONO
    _COLOR_MONO = bool(monochrome)

# Function: fncPrintMessage
# Purpose : Human-friendly coloured console messages.
# Notes   : Marker is always printed. Colour is off for --no-color or NO_COLOR,
#           forced by FORCE_COLOR, otherwise follows whether stdout is a TTY.
def fncPrintMessage(message, msg_type="info"):
    color, marker = STYLES.get(msg_type, (Fore.WHITE, ""))
    if _COLOR_MONO or os.environ.get("NO_COLOR"):
        use_color = False
    elif os.environ.get("FORCE_COLOR"):
        use_color = True
    else:
        use_color = getattr(sys.stdout, "isatty", lambda: False)()
    if use_color:
        print(f"{color}{marker}{message}{Style.RESET_ALL}")
    else:
        print(f"{marker}{message}")

fncInitColor()
