"""Path utilities for consistent path handling across packages."""

import posixpath
import re
import unicodedata
from pathlib import Path

# "C:", "c:foo" and the like
_DRIVE_PREFIX = re.compile(r'^[A-Za-z]:')


def normalize_path(path: Path | str) -> str:
    """
    Normalize a path for consistent storage and comparison across all packages.

    Applies:
    - Unicode NFC normalization (canonical composition) for consistent Unicode handling
    - Forward slash conversion for cross-platform consistency

    Args:
        path: Path object or string to normalize

    Returns:
        Normalized path string with forward slashes and NFC Unicode normalization

    Examples:
        >>> normalize_path(Path("café/résumé.txt"))
        'café/résumé.txt'
        >>> normalize_path(r"C:\\Users\\test\\mods")
        'C:/Users/test/mods'
    """
    path_str = str(path)

    # Normalize Unicode to NFC (Canonical Composition)
    normalized = unicodedata.normalize('NFC', path_str)

    # Convert backslashes to forward slashes for cross-platform consistency
    return normalized.replace('\\', '/')


def normalize_entry_path(path: str) -> str:
    """
    Normalize a container entry path without touching the filesystem.

    Converts separators, applies NFC and drops empty and ``.`` segments.
    ``..`` segments and a leading root are kept as-is so callers can
    still detect them with :func:`is_escaping_path`.

    Args:
        path: Entry path as stored in the container

    Returns:
        Normalized forward-slash path, ``""`` if nothing remains

    Examples:
        >>> normalize_entry_path("Content\\\\Items//./Sword.png")
        'Content/Items/Sword.png'
        >>> normalize_entry_path("a/../b")
        'a/../b'
    """
    normalized = normalize_path(path)
    root = "/" if normalized.startswith("/") else ""
    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    if not parts:
        return ""
    return root + "/".join(parts)


def is_escaping_path(path: str) -> bool:
    """
    Check whether an entry path could land outside its extraction root.

    True for absolute paths, drive or UNC prefixes, and any path with a
    ``..`` segment, wherever the segment appears.

    Args:
        path: Entry path as stored in the container

    Returns:
        True if the path must not be extracted
    """
    normalized = normalize_path(path)

    if normalized.startswith("/") or _DRIVE_PREFIX.match(normalized):
        return True
    if posixpath.isabs(normalized):
        return True

    return ".." in normalized.split("/")
