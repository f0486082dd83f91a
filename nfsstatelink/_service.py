"""Collaborators the callout drives but does not own.

:class:`ServiceLifecycle` starts, stops and inspects the NFS daemon;
:class:`IpHandler` is told when a virtual IP arrives or leaves.  The
coordinator only depends on the protocols, so tests pass in fakes.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import Optional, Protocol, Sequence

from nfsstatelink._errors import ServiceError

log = logging.getLogger(__name__)


class ServiceLifecycle(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...

    def is_running(self) -> tuple[Optional[int], bool]: ...

    def binary_path(self, pid: int) -> str: ...


class IpHandler(Protocol):
    def take_ip(self, address: str) -> None: ...

    def release_ip(self, address: str) -> None: ...


def _run(argv: Sequence[str]) -> subprocess.CompletedProcess:
    log.debug("running %s", " ".join(argv))
    try:
        return subprocess.run(
            list(argv), capture_output=True, text=True, check=True
        )
    except subprocess.CalledProcessError as err:
        detail = (err.stderr or err.stdout or "").strip()
        raise ServiceError(
            f"{' '.join(argv)} exited with status {err.returncode}"
            + (f": {detail}" if detail else "")
        ) from err
    except OSError as err:
        raise ServiceError(f"cannot run {argv[0]}: {err}") from err


class SystemdService:
    """NFS daemon managed by systemd.

    Parameters
    ----------
    unit : str
        systemd unit name (``nfs-ganesha``).
    daemon_binary : str
        Executable of the daemon; its basename is looked up with ``pidof``.
    proc_root : str
        Mount point of procfs.
    """

    def __init__(
        self,
        unit: str,
        daemon_binary: str,
        proc_root: str = "/proc",
    ) -> None:
        self.unit = unit
        self.daemon_binary = daemon_binary
        self.proc_root = proc_root

    def start(self) -> None:
        _run(["systemctl", "start", self.unit])
        log.info("started %s", self.unit)

    def stop(self) -> None:
        _run(["systemctl", "stop", self.unit])
        log.info("stopped %s", self.unit)

    def is_running(self) -> tuple[Optional[int], bool]:
        """Return ``(pid, True)`` for a live daemon, ``(None, False)`` otherwise."""
        name = os.path.basename(self.daemon_binary)
        try:
            proc = subprocess.run(
                ["pidof", "-s", name], capture_output=True, text=True
            )
        except OSError as err:
            raise ServiceError(f"cannot run pidof: {err}") from err
        out = proc.stdout.strip()
        if proc.returncode != 0 or not out:
            return None, False
        return int(out.split()[0]), True

    def binary_path(self, pid: int) -> str:
        try:
            return os.readlink(os.path.join(self.proc_root, str(pid), "exe"))
        except OSError as err:
            raise ServiceError(f"cannot inspect pid {pid}: {err}") from err


class CommandIpHandler:
    """Runs an optional command when a virtual IP is taken or released.

    Each command is a shell-style string; ``{ip}`` is replaced with the
    address.  An empty command only logs the event.
    """

    def __init__(self, takeip_cmd: str = "", releaseip_cmd: str = "") -> None:
        self.takeip_cmd = takeip_cmd
        self.releaseip_cmd = releaseip_cmd

    def _dispatch(self, template: str, event: str, address: str) -> None:
        if not template:
            log.info("%s %s: no command configured", event, address)
            return
        argv = [arg.replace("{ip}", address) for arg in shlex.split(template)]
        _run(argv)
        log.info("%s %s: ran %s", event, address, argv[0])

    def take_ip(self, address: str) -> None:
        self._dispatch(self.takeip_cmd, "take-ip", address)

    def release_ip(self, address: str) -> None:
        self._dispatch(self.releaseip_cmd, "release-ip", address)
