"""Tests for the systemd service wrapper and the IP handler."""

import subprocess
from unittest import mock

import pytest

from nfsstatelink._errors import ServiceError
from nfsstatelink._service import CommandIpHandler, SystemdService


def _completed(argv, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(argv, returncode, stdout, stderr)


def test_start_and_stop_call_systemctl():
    svc = SystemdService("nfs-ganesha", "/usr/bin/ganesha.nfsd")
    with mock.patch("subprocess.run", return_value=_completed([])) as run:
        svc.start()
        svc.stop()
    assert run.call_args_list[0].args[0] == ["systemctl", "start", "nfs-ganesha"]
    assert run.call_args_list[1].args[0] == ["systemctl", "stop", "nfs-ganesha"]


def test_start_failure_raises():
    svc = SystemdService("nfs-ganesha", "/usr/bin/ganesha.nfsd")
    err = subprocess.CalledProcessError(5, ["systemctl"], stderr="Unit not found.")
    with mock.patch("subprocess.run", side_effect=err):
        with pytest.raises(ServiceError, match="Unit not found"):
            svc.start()


def test_missing_systemctl_raises():
    svc = SystemdService("nfs-ganesha", "/usr/bin/ganesha.nfsd")
    with mock.patch("subprocess.run", side_effect=FileNotFoundError("systemctl")):
        with pytest.raises(ServiceError):
            svc.stop()


def test_is_running():
    svc = SystemdService("nfs-ganesha", "/usr/bin/ganesha.nfsd")
    with mock.patch("subprocess.run", return_value=_completed([], stdout="1234\n")) as run:
        assert svc.is_running() == (1234, True)
    assert run.call_args.args[0] == ["pidof", "-s", "ganesha.nfsd"]


def test_is_not_running():
    svc = SystemdService("nfs-ganesha", "/usr/bin/ganesha.nfsd")
    with mock.patch("subprocess.run", return_value=_completed([], returncode=1)):
        assert svc.is_running() == (None, False)


def test_binary_path(tmp_path):
    (tmp_path / "77").mkdir()
    (tmp_path / "77" / "exe").symlink_to("/usr/bin/ganesha.nfsd")
    svc = SystemdService("nfs-ganesha", "/usr/bin/ganesha.nfsd", proc_root=str(tmp_path))
    assert svc.binary_path(77) == "/usr/bin/ganesha.nfsd"
    with pytest.raises(ServiceError):
        svc.binary_path(78)


# ------------------------------------------------------------------
# IP handler
# ------------------------------------------------------------------


def test_ip_handler_without_command_runs_nothing():
    handler = CommandIpHandler()
    with mock.patch("subprocess.run") as run:
        handler.take_ip("192.168.1.50")
        handler.release_ip("192.168.1.50")
    run.assert_not_called()


def test_ip_handler_substitutes_address():
    handler = CommandIpHandler(
        takeip_cmd="ganesha_mgr grace 2:{ip}",
        releaseip_cmd="/usr/local/bin/notify --released {ip}",
    )
    with mock.patch("subprocess.run", return_value=_completed([])) as run:
        handler.take_ip("192.168.1.50")
        handler.release_ip("192.168.1.51")
    assert run.call_args_list[0].args[0] == ["ganesha_mgr", "grace", "2:192.168.1.50"]
    assert run.call_args_list[1].args[0] == [
        "/usr/local/bin/notify",
        "--released",
        "192.168.1.51",
    ]


def test_ip_handler_failure_raises():
    handler = CommandIpHandler(takeip_cmd="false {ip}")
    err = subprocess.CalledProcessError(1, ["false"])
    with mock.patch("subprocess.run", side_effect=err):
        with pytest.raises(ServiceError, match="exited with status 1"):
            handler.take_ip("192.168.1.50")
