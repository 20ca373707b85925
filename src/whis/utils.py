"""
Utility functions for whis.

Includes logging, clipboard access, and small helpers.
"""

from datetime import datetime

import pyperclip

from .errors import WhisError

# Console colors
C_RESET = "\033[0m"
C_BOLD = "\033[1m"
C_DIM = "\033[2m"
C_RED = "\033[91m"
C_GREEN = "\033[92m"
C_YELLOW = "\033[93m"
C_CYAN = "\033[96m"

# Log level styles
LOG_STYLES = {
    "INFO": (C_DIM, "›"),
    "OK": (C_GREEN, "✓"),
    "WARN": (C_YELLOW, "⚠"),
    "ERR": (C_RED, "✗"),
    "REC": (C_RED + C_BOLD, "●"),
}

# Display truncation
LOG_TRUNCATE = 60
PREVIEW_TRUNCATE = 70


def log(msg: str, level: str = "INFO"):
    """Print a timestamped, colored log message."""
    ts = datetime.now().strftime("%H:%M:%S")
    color, sym = LOG_STYLES.get(level, (C_DIM, "›"))
    print(f"  {C_DIM}{ts}{C_RESET}  {color}{sym}{C_RESET}  {msg}", flush=True)


def truncate(text: str, length: int = LOG_TRUNCATE) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) > length:
        return text[:length] + "..."
    return text


def copy_to_clipboard(text: str):
    """Copy text to the system clipboard. Raises WhisError on failure."""
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        raise WhisError(f"Clipboard copy failed: {e}") from e
