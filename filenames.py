"""Output and palette filename derivation."""
import os
from datetime import datetime

from config import GIF_EXTENSION, PALETTE_EXTENSION, TIMESTAMP_FORMAT


def timestamp_string(now: datetime = None) -> str:
    """Return the run stamp, e.g. 20261017_214500"""
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def strip_gif_extension(base: str) -> str:
    if base.lower().endswith(GIF_EXTENSION):
        return base[:-len(GIF_EXTENSION)]
    return base


def output_filename(base: str, timestamp: str = None) -> str:
    """Build the GIF name for a base name.

    A trailing ``.gif`` on the base is dropped so that ``-o clip.gif`` does
    not turn into ``clip.gif.gif``. With a timestamp the name becomes
    ``<base>_<timestamp>.gif``.
    """
    base = strip_gif_extension(base)
    if timestamp:
        return f"{base}_{timestamp}{GIF_EXTENSION}"
    return f"{base}{GIF_EXTENSION}"


def palette_filename(output_path: str, timestamp: str) -> str:
    """Hidden palette scratch file next to the output GIF"""
    directory, name = os.path.split(output_path)
    stem = os.path.splitext(name)[0]
    return os.path.join(directory, f".{stem}_palette_{timestamp}{PALETTE_EXTENSION}")


def palette_glob(timestamp: str) -> str:
    """Pattern matching every palette file created during one run"""
    return f".*_palette_{timestamp}{PALETTE_EXTENSION}"
