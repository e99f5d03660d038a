"""Utility functions."""

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import unquote, urlparse


FILETYPES_BY_SUFFIX = {
    ".txt": "text",
    ".md": "markdown",
    ".markdown": "markdown",
    ".lua": "lua",
    ".py": "python",
    ".pyi": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
}


def deep_merge(base: Mapping[str, Any], override: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge ``override`` into a copy of ``base``.

    Nested mappings are merged key by key; any other value in ``override``
    replaces the one in ``base``. Neither argument is modified.

    Args:
        base: Mapping providing defaults.
        override: Mapping whose values win.

    Returns:
        A new merged dict.
    """
    result = copy.deepcopy(dict(base))
    if not override:
        return result

    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            result[key] = deep_merge(current, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def path_to_uri(path: str) -> str:
    """Convert a filesystem path to a file:// URI."""
    return Path(path).resolve().as_uri()


def uri_to_path(uri: str) -> Optional[str]:
    """Convert a file:// URI back to a path, or None for other schemes."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return None
    return str(Path(unquote(parsed.path)).resolve())


def filetype_for(path: Optional[str]) -> str:
    """
    Guess the editor file type for a path from its suffix.

    Untitled buffers are "text"; an unknown suffix yields the bare suffix
    (empty when there is none) so it never matches an enabled file type by
    accident.
    """
    if not path:
        return "text"
    suffix = Path(path).suffix.lower()
    return FILETYPES_BY_SUFFIX.get(suffix, suffix.lstrip("."))
