"""Shared fixtures: a fake clustered filesystem and fake collaborators."""

from __future__ import annotations

import logging

import pytest

from nfsstatelink import FailoverCoordinator

DAEMON = "/usr/bin/ganesha.nfsd"


class FakeService:
    """In-memory stand-in for the NFS daemon lifecycle."""

    def __init__(self, pid=4242, running=True, binary=DAEMON, error=None):
        self.pid = pid
        self.running = running
        self.binary = binary
        self.error = error
        self.calls = []

    def start(self):
        self.calls.append("start")
        self.running = True

    def stop(self):
        self.calls.append("stop")
        self.running = False

    def is_running(self):
        if self.error is not None:
            raise self.error
        return (self.pid if self.running else None), self.running

    def binary_path(self, pid):
        return self.binary


class RecordingIpHandler:
    def __init__(self):
        self.events = []

    def take_ip(self, address):
        self.events.append(("take", address))

    def release_ip(self, address):
        self.events.append(("release", address))


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    """Drop handlers installed by ``cli.main`` so they do not outlive capsys."""
    yield
    logger = logging.getLogger("nfsstatelink")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def shared_mount(tmp_path):
    mount = tmp_path / "gpfs0"
    mount.mkdir()
    return mount


@pytest.fixture
def state_root(shared_mount):
    return shared_mount / ".ganesha-state"


@pytest.fixture
def mounts_file(tmp_path, shared_mount):
    """A kernel mount table in which the shared filesystem is mounted."""
    path = tmp_path / "mounts"
    path.write_text(
        "proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0\n"
        f"gpfs0 {shared_mount} gpfs rw,relatime 0 0\n"
    )
    return path


@pytest.fixture
def make_node(tmp_path, shared_mount, state_root, mounts_file):
    """Factory for coordinators of distinct nodes sharing one state root.

    Every node gets its own private legacy path under ``tmp_path/<address>``.
    """

    def factory(address, service=None, ip_handler=None, mounts=None):
        local = tmp_path / "nodes" / address
        local.mkdir(parents=True, exist_ok=True)
        return FailoverCoordinator(
            state_root=state_root,
            address=address,
            mount_point=shared_mount,
            fstype="gpfs",
            service=service or FakeService(),
            ip_handler=ip_handler or RecordingIpHandler(),
            legacy_path=local / "nfs",
            daemon_binary=DAEMON,
            mounts_file=mounts or mounts_file,
        )

    return factory
