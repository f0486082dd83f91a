"""Per-node NFS state directory inside the shared filesystem.

Each node owns ``{state_root}/<address>``.  The NFS daemon writes its lock
and recovery records there; this module only builds the skeleton and binds
the daemon's legacy, cluster-unaware state path to it.  Nothing here ever
truncates or deletes a file inside the node directory.

Layout::

    <address>/
        state               marker
        ganesha/v4recov/
        ganesha/v4old/
        statd/state         marker
        statd/sm/
        statd/sm.bak/
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from nfsstatelink._errors import FilesystemError
from nfsstatelink._symlink import reconcile_link

log = logging.getLogger(__name__)

DEFAULT_LEGACY_PATH = "/var/lib/nfs"
BACKUP_SUFFIX = ".backup"

_DIRECTORIES = (
    "ganesha/v4recov",
    "ganesha/v4old",
    "statd/sm",
    "statd/sm.bak",
)
_MARKERS = (
    "state",
    "statd/state",
)


class NodeStateStore:
    """State directory of one cluster node.

    Parameters
    ----------
    state_root : str or Path
        Root of the NFS state tree on the shared filesystem.
    address : str
        This node's cluster address; names the node directory.
    legacy_path : str or Path
        Path the NFS daemon uses for its state (``/var/lib/nfs``).
    """

    def __init__(
        self,
        state_root: str | Path,
        address: str,
        legacy_path: str | Path = DEFAULT_LEGACY_PATH,
    ) -> None:
        self.state_root = Path(state_root)
        self.address = address
        self.legacy_path = Path(legacy_path)

    @property
    def node_dir(self) -> Path:
        return self.state_root / self.address

    @property
    def ganesha_dir(self) -> Path:
        return self.node_dir / "ganesha"

    @property
    def statd_dir(self) -> Path:
        return self.node_dir / "statd"

    @property
    def backup_path(self) -> Path:
        return self.legacy_path.with_name(self.legacy_path.name + BACKUP_SUFFIX)

    # ------------------------------------------------------------------
    # Skeleton
    # ------------------------------------------------------------------

    def ensure_node_state(self) -> Path:
        """Create the node directory skeleton if any part is missing.

        Existing files are left untouched (``touch`` never truncates), so
        this is safe to call while the daemon is running.
        """
        try:
            for rel in _DIRECTORIES:
                (self.node_dir / rel).mkdir(parents=True, exist_ok=True)
            for rel in _MARKERS:
                (self.node_dir / rel).touch(exist_ok=True)
        except OSError as err:
            raise FilesystemError(
                f"cannot initialize node state in {self.node_dir}: {err.strerror or err}",
                path=str(self.node_dir),
            ) from err
        log.debug("node state for %s present in %s", self.address, self.node_dir)
        return self.node_dir

    def is_initialized(self) -> bool:
        """Whether both marker files exist."""
        return all((self.node_dir / rel).is_file() for rel in _MARKERS)

    # ------------------------------------------------------------------
    # Legacy path
    # ------------------------------------------------------------------

    def bind_legacy_path(self) -> Optional[Path]:
        """Point the legacy state path at this node's directory.

        The first time this finds a real directory at the legacy path it is
        renamed to ``<legacy>.backup``.  Later runs never touch an existing
        backup.

        Returns
        -------
        Path or None
            The backup path if a backup was taken by this call.
        """
        backup = None
        legacy = self.legacy_path
        if legacy.is_dir() and not legacy.is_symlink() and not os.path.lexists(self.backup_path):
            try:
                os.rename(legacy, self.backup_path)
            except OSError as err:
                raise FilesystemError(
                    f"cannot back up {legacy} to {self.backup_path}: {err.strerror or err}",
                    path=str(legacy),
                ) from err
            log.info("backed up %s to %s", legacy, self.backup_path)
            backup = self.backup_path

        reconcile_link(self.node_dir, legacy)
        return backup

    def __repr__(self) -> str:
        return f"NodeStateStore(node_dir={str(self.node_dir)!r})"
