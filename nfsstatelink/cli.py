"""Command-line entry point invoked by the cluster manager.

Usage::

    nfs-statelink [--address ADDR] [--fs-type gpfs|glusterfs] [-v] [--syslog] EVENT

    EVENT is one of: startup, shutdown, check, take-ip ADDR,
    release-ip ADDR, list-shares

Exit status is 0 on success (including "shared filesystem not mounted
yet"), 1 on any failure.
"""

from __future__ import annotations

import argparse
import logging
import logging.handlers
import sys
from typing import Mapping, Optional, Sequence

from nfsstatelink._config import CalloutConfig, exports_file_from_env
from nfsstatelink._errors import NotReady, StateLinkError
from nfsstatelink._shares import list_share_paths
from nfsstatelink.nfsstatelink import FailoverCoordinator, ReconcileStatus

log = logging.getLogger("nfsstatelink")


def _setup_logging(verbose: bool, syslog: bool) -> None:
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    log.handlers.clear()

    stderr = logging.StreamHandler(sys.stderr)
    stderr.setFormatter(logging.Formatter("nfs-statelink: %(levelname)s: %(message)s"))
    log.addHandler(stderr)

    if syslog:
        handler = logging.handlers.SysLogHandler(address="/dev/log")
        handler.setFormatter(logging.Formatter("nfs-statelink[%(process)d]: %(message)s"))
        log.addHandler(handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nfs-statelink",
        description="Clustered NFS state callout",
    )
    parser.add_argument("--address", help="this node's cluster address")
    parser.add_argument("--fs-type", help="state filesystem: gpfs or glusterfs")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--syslog", action="store_true", help="also log to syslog")

    sub = parser.add_subparsers(dest="event", required=True)
    sub.add_parser("startup", help="reconcile state and start the NFS daemon")
    sub.add_parser("shutdown", help="stop the NFS daemon")
    sub.add_parser("check", help="reconcile state and check the NFS daemon")
    take = sub.add_parser("take-ip", help="take over a virtual IP's state")
    take.add_argument("ip")
    release = sub.add_parser("release-ip", help="release a virtual IP")
    release.add_argument("ip")
    sub.add_parser("list-shares", help="print exported share paths")
    return parser


def _not_ready(coordinator: FailoverCoordinator) -> int:
    print(f"{coordinator.mount_point} not mounted yet; nothing to do")
    return 0


def run(
    args: argparse.Namespace,
    environ: Optional[Mapping[str, str]] = None,
    coordinator: Optional[FailoverCoordinator] = None,
) -> int:
    """Dispatch one event; returns the exit status.

    *environ* defaults to ``os.environ``.  A ready-made *coordinator*
    replaces the one built from the environment.
    """
    if args.event == "list-shares":
        for path in list_share_paths(exports_file_from_env(environ)):
            print(path)
        return 0

    if coordinator is None:
        config = CalloutConfig.from_env(environ, address=args.address, fs_type=args.fs_type)
        coordinator = FailoverCoordinator.from_config(config)

    if args.event == "startup":
        if coordinator.startup() is ReconcileStatus.NOT_READY:
            return _not_ready(coordinator)
        coordinator.start_service()
        return 0

    if args.event == "shutdown":
        coordinator.shutdown()
        return 0

    if args.event == "check":
        report = coordinator.health_check()
        if not report.healthy:
            print(f"ERROR: {report.reason}", file=sys.stderr)
            return 1
        return 0

    if args.event == "take-ip":
        if coordinator.take_ip(args.ip) is ReconcileStatus.NOT_READY:
            return _not_ready(coordinator)
        return 0

    if args.event == "release-ip":
        coordinator.release_ip(args.ip)
        return 0

    raise AssertionError(f"unhandled event {args.event!r}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose, args.syslog)

    try:
        return run(args)
    except NotReady as err:
        print(err)
        return 0
    except StateLinkError as err:
        print(f"ERROR: {err}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
