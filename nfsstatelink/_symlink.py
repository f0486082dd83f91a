"""Idempotent symbolic-link reconciliation on a shared filesystem.

Every link this package manages goes through :func:`reconcile_link`.  Nodes
run it independently and concurrently against the same clustered filesystem,
so it never takes a lock; instead every step is idempotent and the final
step is an atomic rename.

Protocol
--------
1. If the link path holds something that is not a symlink (a regular file,
   or a directory left behind by an unclustered install), remove it.
2. If the link path is a symlink that already points at the target, stop.
3. Create the new symlink under a unique temporary name next to the link
   path.  The name carries hostname, PID and a random suffix so that two
   nodes never collide.
4. ``rename()`` the temporary symlink over the link path.
   - rename() is atomic on POSIX filesystems: other nodes see either the
     old target or the new one, never a missing link.
   - If two nodes repoint the same link at once, the last rename wins.

Removals that find the path already gone are fine (another node got there
first).  Any other ``OSError`` becomes a :class:`FilesystemError`.
"""

from __future__ import annotations

import logging
import os
import random
import shutil
import socket
import sys
from pathlib import Path

from nfsstatelink._errors import FilesystemError

log = logging.getLogger(__name__)

TEMP_PREFIX = "."


def _temp_name(link_path: Path) -> Path:
    """Unique sibling name for a link that is about to be renamed into place."""
    suffix = f"{socket.gethostname()}.{os.getpid()}.{random.randrange(1 << 32):08x}"
    return link_path.with_name(f"{TEMP_PREFIX}{link_path.name}.{suffix}")


def _skip_missing(func, path, exc) -> None:
    # rmtree error hook; entries another node removed first are not errors
    err = exc[1] if isinstance(exc, tuple) else exc
    if not isinstance(err, FileNotFoundError):
        raise err


def _rmtree(path: Path) -> None:
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_skip_missing)
    else:
        shutil.rmtree(path, onerror=_skip_missing)


def _discard(path: Path) -> None:
    """Remove a non-link object occupying *path*."""
    log.warning("discarding non-link %s", path)
    try:
        if path.is_dir() and not path.is_symlink():
            _rmtree(path)
        else:
            os.unlink(path)
    except FileNotFoundError:
        pass


def _current_target(link_path: Path) -> str | None:
    """Target of the symlink at *link_path*, or *None* once the path is clear."""
    if not os.path.lexists(link_path):
        return None
    if not link_path.is_symlink():
        _discard(link_path)
        return None
    try:
        return os.readlink(link_path)
    except FileNotFoundError:
        return None


def reconcile_link(target: str | Path, link_path: str | Path) -> bool:
    """Make *link_path* a symbolic link to *target*.

    Parameters
    ----------
    target : str or Path
        Desired link target.  Stored verbatim; it does not need to exist.
    link_path : str or Path
        Where the link lives.  Its parent directory must exist.

    Returns
    -------
    bool
        *True* if the filesystem was changed, *False* if the link was
        already correct.

    Raises
    ------
    FilesystemError
        On any filesystem failure other than a concurrent removal.
    """
    target = str(target)
    link_path = Path(link_path)

    try:
        if _current_target(link_path) == target:
            log.debug("link %s -> %s already in place", link_path, target)
            return False

        tmp_path = _temp_name(link_path)
        os.symlink(target, tmp_path)
        try:
            os.replace(tmp_path, link_path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
    except OSError as err:
        raise FilesystemError(
            f"cannot link {link_path} -> {target}: {err.strerror or err}",
            path=str(link_path),
        ) from err

    log.info("linked %s -> %s", link_path, target)
    return True
