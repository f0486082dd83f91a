"""Tests for the shared .noderefs index."""

import os

from nfsstatelink._nodestate import NodeStateStore
from nfsstatelink._peers import PeerDirectory


def _node(root, address):
    store = NodeStateStore(root, address, root / f"legacy-{address}")
    store.ensure_node_state()
    return store


def _tree(directory):
    return sorted(
        (str(p.relative_to(directory)), os.readlink(p) if p.is_symlink() else None)
        for p in directory.rglob("*")
    )


def test_publish_self(tmp_path):
    peers = PeerDirectory(tmp_path)
    assert peers.publish_self("10.0.0.1")

    entry = tmp_path / ".noderefs" / "10.0.0.1"
    assert entry.is_symlink()
    assert os.readlink(entry) == str(tmp_path / "10.0.0.1")
    assert peers.resolve("10.0.0.1") == str(tmp_path / "10.0.0.1")


def test_publish_self_is_idempotent(tmp_path):
    peers = PeerDirectory(tmp_path)
    peers.publish_self("10.0.0.1")
    assert not peers.publish_self("10.0.0.1")
    assert peers.peers() == ["10.0.0.1"]


def test_repoint_overrides_previous_owner(tmp_path):
    peers = PeerDirectory(tmp_path)
    peers.publish_self("10.0.0.1")
    peers.repoint("10.0.0.1", tmp_path / "10.0.0.2")
    assert peers.resolve("10.0.0.1") == str(tmp_path / "10.0.0.2")


def test_peers_without_index(tmp_path):
    peers = PeerDirectory(tmp_path)
    assert peers.peers() == []
    assert peers.resolve("10.0.0.1") is None


def test_peers_skips_temporaries(tmp_path):
    peers = PeerDirectory(tmp_path)
    peers.publish_self("10.0.0.2")
    peers.publish_self("10.0.0.1")
    os.symlink("/x", tmp_path / ".noderefs" / ".10.0.0.3.host.1.deadbeef")

    assert peers.peers() == ["10.0.0.1", "10.0.0.2"]


def test_repair_links_peer_subtrees(tmp_path):
    a = _node(tmp_path, "10.0.0.1")
    _node(tmp_path, "10.0.0.2")
    peers = PeerDirectory(tmp_path)
    peers.publish_self("10.0.0.1")
    peers.publish_self("10.0.0.2")

    assert peers.repair_peer_references("10.0.0.1", a.node_dir) == ["10.0.0.2"]

    ganesha_link = a.ganesha_dir / "10.0.0.2"
    statd_link = a.statd_dir / "10.0.0.2"
    assert os.readlink(ganesha_link) == str(tmp_path / ".noderefs" / "10.0.0.2" / "ganesha")
    assert os.readlink(statd_link) == str(tmp_path / ".noderefs" / "10.0.0.2" / "statd")
    # The peer's recovery directories are reachable through the links
    assert (ganesha_link / "v4recov").is_dir()
    assert (statd_link / "sm").is_dir()
    # No self-reference
    assert not os.path.lexists(a.ganesha_dir / "10.0.0.1")


def test_repair_with_no_peers_is_noop(tmp_path):
    a = _node(tmp_path, "10.0.0.1")
    peers = PeerDirectory(tmp_path)
    before = _tree(a.node_dir)

    assert peers.repair_peer_references("10.0.0.1", a.node_dir) == []
    peers.publish_self("10.0.0.1")
    assert peers.repair_peer_references("10.0.0.1", a.node_dir) == []

    assert _tree(a.node_dir) == before


def test_repair_fixes_stale_peer_link(tmp_path):
    a = _node(tmp_path, "10.0.0.1")
    peers = PeerDirectory(tmp_path)
    peers.publish_self("10.0.0.2")
    os.symlink("/stale/target", a.ganesha_dir / "10.0.0.2")
    (a.statd_dir / "10.0.0.2").mkdir()

    peers.repair_peer_references("10.0.0.1", a.node_dir)

    assert os.readlink(a.ganesha_dir / "10.0.0.2") == str(peers.entry("10.0.0.2") / "ganesha")
    assert os.readlink(a.statd_dir / "10.0.0.2") == str(peers.entry("10.0.0.2") / "statd")


def test_repair_follows_virtual_ip_entries(tmp_path):
    """An entry for a virtual IP is linked like any node entry."""
    a = _node(tmp_path, "10.0.0.1")
    _node(tmp_path, "10.0.0.2")
    peers = PeerDirectory(tmp_path)
    peers.publish_self("10.0.0.1")
    peers.repoint("192.168.1.50", tmp_path / "10.0.0.2")

    assert peers.repair_peer_references("10.0.0.1", a.node_dir) == ["192.168.1.50"]
    assert (a.ganesha_dir / "192.168.1.50" / "v4recov").is_dir()
