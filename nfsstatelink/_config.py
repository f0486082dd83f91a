"""Callout configuration.

Everything is read once, from ``CTDB_NFS_*`` environment variables set by
the cluster manager, into a :class:`CalloutConfig`.  The filesystem variant
decides where the state tree lives:

- ``gpfs``       state root is ``$CTDB_NFS_STATE_MNT/.ganesha-state``;
  the mount variable is required.
- ``glusterfs``  state root is fixed under the gluster shared-storage
  volume, ``/run/gluster/shared_storage/nfs-ganesha``.
"""

from __future__ import annotations

import enum
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from nfsstatelink._errors import ConfigurationError
from nfsstatelink._nodestate import DEFAULT_LEGACY_PATH

GLUSTER_SHARED_STORAGE = "/run/gluster/shared_storage"
GPFS_STATE_SUBDIR = ".ganesha-state"
GLUSTER_STATE_SUBDIR = "nfs-ganesha"

DEFAULT_EXPORTS_FILE = "/etc/ganesha/ganesha.conf"
DEFAULT_SERVICE = "nfs-ganesha"
DEFAULT_DAEMON_BINARY = "/usr/bin/ganesha.nfsd"
DEFAULT_MOUNTS_FILE = "/proc/mounts"


class FsVariant(str, enum.Enum):
    """Supported clustered filesystems."""

    GPFS = "gpfs"
    GLUSTERFS = "glusterfs"

    @property
    def fstype(self) -> str:
        """Filesystem type as it appears in the mount table."""
        if self is FsVariant.GLUSTERFS:
            return "fuse.glusterfs"
        return "gpfs"

    def mount_point(self, shared_mount: Optional[str]) -> Path:
        if self is FsVariant.GLUSTERFS:
            return Path(GLUSTER_SHARED_STORAGE)
        if not shared_mount:
            raise ConfigurationError(
                "CTDB_NFS_STATE_MNT must be set for the gpfs state filesystem"
            )
        return Path(shared_mount)

    def state_root(self, shared_mount: Optional[str]) -> Path:
        mount = self.mount_point(shared_mount)
        if self is FsVariant.GLUSTERFS:
            return mount / GLUSTER_STATE_SUBDIR
        return mount / GPFS_STATE_SUBDIR

    @classmethod
    def parse(cls, value: str) -> "FsVariant":
        try:
            return cls(value.strip().lower())
        except ValueError:
            supported = ", ".join(v.value for v in cls)
            raise ConfigurationError(
                f"unsupported state filesystem {value!r} (supported: {supported})"
            ) from None


def validate_address(address: str) -> str:
    """Reject addresses that cannot be used as a single path component."""
    if not address or "/" in address or address.startswith(".") or "\0" in address:
        raise ConfigurationError(f"invalid cluster address: {address!r}")
    return address


def exports_file_from_env(environ: Optional[Mapping[str, str]] = None) -> Path:
    """The NFS server configuration file to scan for export paths."""
    env = os.environ if environ is None else environ
    return Path(env.get("CTDB_NFS_EXPORTS_FILE", DEFAULT_EXPORTS_FILE))


def _local_address() -> str:
    """Address of the local hostname, used when none is configured."""
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError as err:
        raise ConfigurationError(
            f"CTDB_NFS_NODE_ADDRESS is not set and the local address is unknown: {err}"
        ) from err


@dataclass
class CalloutConfig:
    """Resolved callout settings.  Build with :meth:`from_env`."""

    variant: FsVariant
    mount_point: Path
    state_root: Path
    address: str
    legacy_path: Path = Path(DEFAULT_LEGACY_PATH)
    exports_file: Path = Path(DEFAULT_EXPORTS_FILE)
    service: str = DEFAULT_SERVICE
    daemon_binary: str = DEFAULT_DAEMON_BINARY
    takeip_cmd: str = ""
    releaseip_cmd: str = ""
    mounts_file: Path = Path(DEFAULT_MOUNTS_FILE)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        address: Optional[str] = None,
        fs_type: Optional[str] = None,
    ) -> "CalloutConfig":
        """Read the configuration from *environ* (default ``os.environ``).

        *address* and *fs_type* take precedence over their variables.
        """
        env = os.environ if environ is None else environ

        variant = FsVariant.parse(fs_type or env.get("CTDB_NFS_STATE_FS_TYPE", "gpfs"))
        shared_mount = env.get("CTDB_NFS_STATE_MNT")
        node_address = address or env.get("CTDB_NFS_NODE_ADDRESS") or _local_address()

        return cls(
            variant=variant,
            mount_point=variant.mount_point(shared_mount),
            state_root=variant.state_root(shared_mount),
            address=validate_address(node_address),
            legacy_path=Path(env.get("CTDB_NFS_LEGACY_STATE_DIR", DEFAULT_LEGACY_PATH)),
            exports_file=exports_file_from_env(env),
            service=env.get("CTDB_NFS_SERVICE", DEFAULT_SERVICE),
            daemon_binary=env.get("CTDB_NFS_DAEMON_BINARY", DEFAULT_DAEMON_BINARY),
            takeip_cmd=env.get("CTDB_NFS_TAKEIP_CMD", ""),
            releaseip_cmd=env.get("CTDB_NFS_RELEASEIP_CMD", ""),
            mounts_file=Path(env.get("CTDB_NFS_MOUNTS_FILE", DEFAULT_MOUNTS_FILE)),
        )


# ----------------------------------------------------------------------
# Mount detection
# ----------------------------------------------------------------------


def _unescape_mount_field(field: str) -> str:
    # /proc/mounts encodes space, tab, newline and backslash as octal;
    # other bytes are raw and need not be valid UTF-8
    return (
        field.replace("\\040", " ")
        .replace("\\011", "\t")
        .replace("\\012", "\n")
        .replace("\\134", "\\")
    )


def is_mounted(
    mount_point: str | Path,
    fstype: str,
    mounts_file: str | Path = DEFAULT_MOUNTS_FILE,
) -> bool:
    """Whether *mount_point* is mounted with filesystem type *fstype*.

    Parses the kernel mount table; an unreadable table counts as not mounted.
    """
    wanted = os.path.normpath(str(mount_point))
    try:
        with open(mounts_file, encoding="utf-8", errors="surrogateescape") as f:
            for line in f:
                fields = line.split()
                if len(fields) < 3:
                    continue
                mnt = os.path.normpath(_unescape_mount_field(fields[1]))
                if mnt == wanted and fields[2] == fstype:
                    return True
    except OSError:
        return False
    return False
