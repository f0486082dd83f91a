"""nfsstatelink — clustered NFS lock/recovery state reconciliation."""

from nfsstatelink._config import CalloutConfig, FsVariant
from nfsstatelink._errors import (
    ConfigurationError,
    FilesystemError,
    NotReady,
    ServiceError,
    StateLinkError,
)
from nfsstatelink._nodestate import NodeStateStore
from nfsstatelink._peers import PeerDirectory
from nfsstatelink._shares import list_share_paths
from nfsstatelink._symlink import reconcile_link
from nfsstatelink.nfsstatelink import (
    CoordinatorState,
    FailoverCoordinator,
    HealthReport,
    ReconcileStatus,
)

__all__ = [
    "FailoverCoordinator",
    "CoordinatorState",
    "ReconcileStatus",
    "HealthReport",
    "CalloutConfig",
    "FsVariant",
    "NodeStateStore",
    "PeerDirectory",
    "reconcile_link",
    "list_share_paths",
    "StateLinkError",
    "NotReady",
    "ConfigurationError",
    "FilesystemError",
    "ServiceError",
]
