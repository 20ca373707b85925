"""
whis - voice to clipboard with the OpenAI transcription API

Record -> compress -> transcribe (chunked and in parallel for long recordings)
-> text copied to clipboard. Run once from the terminal, or as a background
service toggled by a global hotkey.
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("whis")
except PackageNotFoundError:
    __version__ = "0.0.0"  # Not installed

__all__ = ["__version__"]
