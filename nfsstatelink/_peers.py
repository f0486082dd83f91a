"""Shared index of node state directories (``.noderefs``).

Every node publishes ``.noderefs/<address> -> {state_root}/<address>``.
When a virtual IP moves, the new owner repoints the entry named after that
IP at its own state directory.  Entries are only ever added or overwritten,
never removed.

Each node also mirrors the index into its own state directory
(``ganesha/<peer>`` and ``statd/<peer>``) so that the NFS daemon finds the
recovery records of every peer by name after a failover.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from nfsstatelink._errors import FilesystemError
from nfsstatelink._symlink import TEMP_PREFIX, reconcile_link

log = logging.getLogger(__name__)

NODEREFS_DIR = ".noderefs"

# Subtrees of a node directory that are cross-linked per peer.
PEER_SUBTREES = ("ganesha", "statd")


class PeerDirectory:
    """The ``.noderefs`` directory under a state root."""

    def __init__(self, state_root: str | Path) -> None:
        self.state_root = Path(state_root)
        self.refs_dir = self.state_root / NODEREFS_DIR

    def entry(self, address: str) -> Path:
        return self.refs_dir / address

    def _ensure_refs_dir(self) -> None:
        try:
            self.refs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise FilesystemError(
                f"cannot create {self.refs_dir}: {err.strerror or err}",
                path=str(self.refs_dir),
            ) from err

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def publish_self(self, address: str) -> bool:
        """Publish ``.noderefs/<address>`` pointing at the node's own directory."""
        return self.repoint(address, self.state_root / address)

    def repoint(self, address: str, node_dir: str | Path) -> bool:
        """Point ``.noderefs/<address>`` at *node_dir*, whatever it pointed at before."""
        self._ensure_refs_dir()
        return reconcile_link(node_dir, self.entry(address))

    def repair_peer_references(self, self_address: str, node_dir: str | Path) -> list[str]:
        """Link every known peer's state into *node_dir*.

        For each peer ``P`` other than *self_address*, ``<node_dir>/ganesha/P``
        and ``<node_dir>/statd/P`` are pointed at ``.noderefs/P/ganesha`` and
        ``.noderefs/P/statd``.

        Returns the peers processed, in the order they were handled.
        """
        node_dir = Path(node_dir)
        done: list[str] = []
        for peer in self.peers():
            if peer == self_address:
                continue
            for subtree in PEER_SUBTREES:
                reconcile_link(self.entry(peer) / subtree, node_dir / subtree / peer)
            done.append(peer)
        if done:
            log.info("peer references in %s: %s", node_dir, ", ".join(done))
        return done

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def peers(self) -> list[str]:
        """Addresses with an entry in ``.noderefs``; empty if there is none yet."""
        try:
            names = os.listdir(self.refs_dir)
        except FileNotFoundError:
            return []
        except OSError as err:
            raise FilesystemError(
                f"cannot list {self.refs_dir}: {err.strerror or err}",
                path=str(self.refs_dir),
            ) from err
        # Temporaries of an in-flight repoint on another node start with a dot.
        return sorted(n for n in names if not n.startswith(TEMP_PREFIX))

    def resolve(self, address: str) -> Optional[str]:
        """Current target of ``.noderefs/<address>``, or *None*."""
        try:
            return os.readlink(self.entry(address))
        except OSError:
            return None

    def __repr__(self) -> str:
        return f"PeerDirectory(refs_dir={str(self.refs_dir)!r})"
