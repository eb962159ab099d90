from typing import Dict, List

import pytest

from strata.errors import AgentError
from strata.operator.store import MemorySecretStore, MemoryStore


class FakeAgent:
    """In-memory stand-in for the storage executor client."""

    def __init__(self):
        self.pools: Dict[str, list] = {}
        self.datasets: Dict[str, dict] = {}
        self.snapshots: List[str] = []
        self.exports: Dict[str, tuple] = {}
        self.mounts: List[tuple] = []
        self.sssd: List[tuple] = []
        self.calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}
        self.health = "ONLINE"

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        if method in self.failures:
            raise self.failures[method]

    def called(self, method):
        return [c[1:] for c in self.calls if c[0] == method]

    def list_pools(self):
        self._call("list_pools")
        return list(self.pools)

    def create_pool(self, name, vdevs, properties=None):
        self._call("create_pool", name, vdevs, properties)
        self.pools[name] = vdevs
        return {"ok": True}

    def pool_status(self, name):
        self._call("pool_status", name)
        if name not in self.pools:
            raise AgentError(f"pool {name}: no such pool", status_code=404)
        return {"name": name, "state": self.health, "status": "one device is faulted",
                "usage": {"total": 1000, "used": 250, "available": 750}}

    def ensure_dataset(self, full_name, mountpoint=None, properties=None):
        self._call("ensure_dataset", full_name, mountpoint, properties)
        self.datasets[full_name] = {"mountpoint": mountpoint, "properties": properties or {}}
        return {"ok": True}

    def mount_dataset(self, dataset, mountpoint=None, mode=None, recursive=False):
        self._call("mount_dataset", dataset, mountpoint, mode, recursive)
        self.mounts.append((dataset, mountpoint, mode, recursive))
        return {"ok": True}

    def list_snapshots(self, dataset=None):
        self._call("list_snapshots", dataset)
        if dataset is None:
            return list(self.snapshots)
        return [s for s in self.snapshots if s.startswith(f"{dataset}@") or s.startswith(f"{dataset}/")]

    def create_snapshot(self, dataset, name, recursive=False):
        self._call("create_snapshot", dataset, name, recursive)
        full = f"{dataset}@{name}"
        if full not in self.snapshots:
            self.snapshots.append(full)
        return {"ok": True}

    def destroy_snapshot(self, snapshot):
        self._call("destroy_snapshot", snapshot)
        if snapshot in self.snapshots:
            self.snapshots.remove(snapshot)
        return {"ok": True}

    def clone_snapshot(self, snapshot, target):
        self._call("clone_snapshot", snapshot, target)
        self.datasets[target] = {"origin": snapshot}
        return {"ok": True}

    def rollback_snapshot(self, snapshot, force=False):
        self._call("rollback_snapshot", snapshot, force)
        return {"ok": True}

    def ensure_export(self, path, clients, options):
        self._call("ensure_export", path, clients, options)
        self.exports[path] = (clients, options)
        return {"ok": True}

    def delete_export(self, path):
        self._call("delete_export", path)
        self.exports.pop(path, None)
        return {"ok": True}

    def apply_sssd(self, conf, ca_bundle=None):
        self._call("apply_sssd", conf, ca_bundle)
        self.sssd.append((conf, ca_bundle))
        return {"ok": True}


@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def secrets():
    return MemorySecretStore()


@pytest.fixture
def agents(agent):
    nodes = []

    def factory(node):
        nodes.append(node)
        return agent
    factory.nodes = nodes
    return factory
