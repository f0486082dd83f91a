"""nfsstatelink — clustered NFS lock/recovery state for a failover cluster.

Designed to run as the NFS callout of a cluster manager (CTDB style) on
every node of a cluster that shares a clustered filesystem.  Each node keeps
its NFS daemon state in its own directory on the shared filesystem and
publishes it under ``.noderefs``; when a virtual IP moves, the new owner
repoints the entry for that IP at itself.

There is no distributed lock.  Every step is an idempotent reconciliation,
so nodes may run the same events concurrently and in any order.

Usage
-----
::

    from nfsstatelink import CalloutConfig, FailoverCoordinator, ReconcileStatus

    coordinator = FailoverCoordinator.from_config(CalloutConfig.from_env())

    if coordinator.startup() is ReconcileStatus.RECONCILED:
        coordinator.start_service()

    coordinator.take_ip("192.168.1.50")
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from nfsstatelink._config import (
    DEFAULT_MOUNTS_FILE,
    CalloutConfig,
    is_mounted,
    validate_address,
)
from nfsstatelink._nodestate import DEFAULT_LEGACY_PATH, NodeStateStore
from nfsstatelink._peers import PeerDirectory
from nfsstatelink._service import (
    CommandIpHandler,
    IpHandler,
    ServiceLifecycle,
    SystemdService,
)

log = logging.getLogger(__name__)


class CoordinatorState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    RECONCILED = "reconciled"
    TAKING_IP = "taking-ip"
    RELEASING_IP = "releasing-ip"


class ReconcileStatus(enum.Enum):
    RECONCILED = "reconciled"
    NOT_READY = "not-ready"


@dataclass
class HealthReport:
    """Returned by :meth:`FailoverCoordinator.health_check`."""

    healthy: bool
    reason: str = ""
    pid: Optional[int] = None
    reconcile: ReconcileStatus = ReconcileStatus.RECONCILED


class FailoverCoordinator:
    """Drives the state tree in response to cluster events.

    Parameters
    ----------
    state_root : str or Path
        Root of the NFS state tree on the shared filesystem.
    address : str
        This node's permanent cluster address.
    mount_point : str or Path
        Mount point of the shared filesystem.
    fstype : str
        Filesystem type expected at *mount_point* in the mount table.
    service : ServiceLifecycle
        NFS daemon lifecycle collaborator.
    ip_handler : IpHandler
        Notified after a virtual IP has been taken or released.
    legacy_path : str or Path
        The daemon's cluster-unaware state path.
    daemon_binary : str
        Executable the running daemon must report for a healthy check.
    mounts_file : str or Path
        Kernel mount table to consult.
    """

    def __init__(
        self,
        state_root: str | Path,
        address: str,
        mount_point: str | Path,
        fstype: str,
        service: ServiceLifecycle,
        ip_handler: IpHandler,
        legacy_path: str | Path = DEFAULT_LEGACY_PATH,
        daemon_binary: str = "",
        mounts_file: str | Path = DEFAULT_MOUNTS_FILE,
    ) -> None:
        self.address = validate_address(address)
        self.mount_point = Path(mount_point)
        self.fstype = fstype
        self.service = service
        self.ip_handler = ip_handler
        self.daemon_binary = daemon_binary
        self.mounts_file = Path(mounts_file)

        self.node_state = NodeStateStore(state_root, address, legacy_path)
        self.peers = PeerDirectory(state_root)
        self.state = CoordinatorState.UNINITIALIZED

    @classmethod
    def from_config(
        cls,
        config: CalloutConfig,
        service: Optional[ServiceLifecycle] = None,
        ip_handler: Optional[IpHandler] = None,
    ) -> "FailoverCoordinator":
        """Build a coordinator with the system collaborators for *config*."""
        return cls(
            state_root=config.state_root,
            address=config.address,
            mount_point=config.mount_point,
            fstype=config.variant.fstype,
            service=service or SystemdService(config.service, config.daemon_binary),
            ip_handler=ip_handler or CommandIpHandler(config.takeip_cmd, config.releaseip_cmd),
            legacy_path=config.legacy_path,
            daemon_binary=config.daemon_binary,
            mounts_file=config.mounts_file,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def is_ready(self) -> bool:
        """Whether the shared filesystem is mounted."""
        return is_mounted(self.mount_point, self.fstype, self.mounts_file)

    def startup(self) -> ReconcileStatus:
        """Bring this node's part of the state tree up to date.

        Returns :attr:`ReconcileStatus.NOT_READY` without touching anything
        when the shared filesystem is not mounted yet; the cluster manager
        retries later.  Filesystem failures propagate.
        """
        if not self.is_ready():
            log.info(
                "%s (%s) not mounted yet, deferring reconciliation",
                self.mount_point,
                self.fstype,
            )
            return ReconcileStatus.NOT_READY

        self.node_state.ensure_node_state()
        backup = self.node_state.bind_legacy_path()
        if backup is not None:
            log.warning("previous NFS state preserved in %s", backup)
        self.peers.publish_self(self.address)
        self.peers.repair_peer_references(self.address, self.node_state.node_dir)

        self.state = CoordinatorState.RECONCILED
        return ReconcileStatus.RECONCILED

    def health_check(self) -> HealthReport:
        """Reconcile once, then check that the right daemon is running."""
        status = self.startup()

        try:
            pid, running = self.service.is_running()
        except Exception as err:
            log.warning("cannot query NFS daemon: %s", err)
            return HealthReport(False, f"cannot query NFS daemon: {err}", reconcile=status)
        if not running or pid is None:
            return HealthReport(False, "NFS daemon is not running", reconcile=status)

        if self.daemon_binary:
            try:
                binary = self.service.binary_path(pid)
            except Exception as err:
                return HealthReport(False, f"cannot inspect pid {pid}: {err}", pid, status)
            if binary != self.daemon_binary:
                return HealthReport(
                    False,
                    f"pid {pid} runs {binary}, expected {self.daemon_binary}",
                    pid,
                    status,
                )

        return HealthReport(True, pid=pid, reconcile=status)

    # ------------------------------------------------------------------
    # Virtual IP events
    # ------------------------------------------------------------------

    def take_ip(self, address: str) -> ReconcileStatus:
        """Make this node the owner of *address*'s lock state.

        ``.noderefs/<address>`` is repointed at this node's state directory
        before the IP handler runs, so that any node scanning the index
        afterwards resolves the IP's state here.

        Precondition: the cluster manager assigns a virtual IP to one node
        at a time.  If two nodes take the same address concurrently, the
        entry ends up pointing at whichever repoint ran last.
        """
        validate_address(address)
        if self.state is CoordinatorState.UNINITIALIZED:
            if self.startup() is ReconcileStatus.NOT_READY:
                return ReconcileStatus.NOT_READY

        self.state = CoordinatorState.TAKING_IP
        try:
            self.peers.repoint(address, self.node_state.node_dir)
            log.info("took over state for %s", address)
            self.ip_handler.take_ip(address)
        finally:
            self.state = CoordinatorState.RECONCILED
        return ReconcileStatus.RECONCILED

    def release_ip(self, address: str) -> None:
        """Hand *address* back to the IP handler; the reference stays as is."""
        validate_address(address)
        previous = self.state
        self.state = CoordinatorState.RELEASING_IP
        try:
            self.ip_handler.release_ip(address)
        finally:
            self.state = previous

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------

    def start_service(self) -> None:
        self.service.start()

    def shutdown(self) -> None:
        self.service.stop()

    def __repr__(self) -> str:
        return (
            f"FailoverCoordinator(address={self.address!r}, "
            f"state_root={str(self.node_state.state_root)!r}, "
            f"state={self.state.value})"
        )
