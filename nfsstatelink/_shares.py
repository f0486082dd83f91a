"""Exported share paths, for monitoring.

The NFS server configuration is scanned line by line for export paths::

    EXPORT {
        Export_Id = 1;
        Path = "/gpfs/fs1/share";
        Pseudo = "/share";
    }

Only the ``Path`` keyword matches (``Pseudo_Path`` and comments do not).
"""

from __future__ import annotations

import re
from pathlib import Path

from nfsstatelink._errors import ConfigurationError

_PATH_RE = re.compile(r'(?<![\w])Path\s*=?\s*"([^"]*)"', re.IGNORECASE)


def _strip_comment(line: str) -> str:
    # '#' starts a comment unless it is inside a quoted value
    in_quotes = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "#" and not in_quotes:
            return line[:i]
    return line


def parse_share_paths(text: str) -> list[str]:
    """Return the sorted, de-duplicated export paths found in *text*."""
    paths = set()
    for line in text.splitlines():
        for m in _PATH_RE.finditer(_strip_comment(line)):
            if m.group(1):
                paths.add(m.group(1))
    return sorted(paths)


def list_share_paths(exports_file: str | Path) -> list[str]:
    """Read *exports_file* and return its export paths."""
    try:
        text = Path(exports_file).read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigurationError(
            f"cannot read exports file {exports_file}: {err.strerror or err}"
        ) from err
    return parse_share_paths(text)
