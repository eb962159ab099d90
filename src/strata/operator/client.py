import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from strata.config.settings import config
from strata.errors import AgentError, AgentTimeout, SpecError

logger = logging.getLogger(__name__)


class NodeAgentClient:
    """
    HTTP client for the storage executor on one node.

    A `{node}` placeholder in the base URL is replaced with the node name,
    so one template can address a per-node agent service.
    """

    def __init__(self, base_url: Optional[str] = None, node: str = "",
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        base_url = base_url or config.agent_base_url
        self.base_url = base_url.replace("{node}", node).rstrip("/")
        self.timeout = timeout if timeout is not None else config.agent_timeout
        self.session = session or requests.Session()
        if config.agent_auth_header and config.agent_auth_value:
            self.session.headers[config.agent_auth_header] = config.agent_auth_value

    @classmethod
    def for_node(cls, node: str = "") -> "NodeAgentClient":
        return cls(node=node)

    def _do(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
            params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, json=body, params=params, timeout=self.timeout)
        except requests.Timeout as e:
            raise AgentTimeout(f"timeout: {method} {path} after {self.timeout}s: {e}")
        except requests.RequestException as e:
            raise AgentError(f"{method} {path}: {e}")

        try:
            data = resp.json()
        except ValueError:
            data = {"error": resp.text}
        if not isinstance(data, dict):
            data = {"items": data}

        if resp.status_code >= 300 or data.get("ok") is False:
            message = data.get("error") or data.get("detail") or resp.reason
            output = data.get("output") or ""
            error_cls = AgentTimeout if resp.status_code == 504 else AgentError
            prefix = "timeout: " if error_cls is AgentTimeout else ""
            raise error_cls(f"{prefix}{method} {path}: {resp.status_code}: {message}",
                            output=output, status_code=resp.status_code)
        return data

    # Pools

    def list_pools(self) -> List[str]:
        return self._do("GET", "/v1/zfs/pool/list").get("pools", [])

    def create_pool(self, name: str, vdevs: List[Tuple[str, List[str]]],
                    properties: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        body = {
            "name": name,
            "vdevs": [{"type": t, "devices": d} for t, d in vdevs],
            "properties": properties or {},
        }
        return self._do("POST", "/v1/zfs/zpools/create", body)

    def pool_status(self, name: str) -> Dict[str, Any]:
        return self._do("GET", "/v1/zfs/zpools/status", params={"name": name})

    # Datasets

    def ensure_dataset(self, full_name: str, mountpoint: Optional[str] = None,
                       properties: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        pool, _, name = full_name.strip().strip("/").partition("/")
        if not pool or not name:
            raise SpecError(f"dataset name must be pool-qualified: {full_name!r}")
        body = {"pool": pool, "name": name, "properties": properties or {}}
        if mountpoint:
            body["mountpoint"] = mountpoint
        return self._do("POST", "/v1/zfs/zdatasets/ensure", body)

    def mount_dataset(self, dataset: str, mountpoint: Optional[str] = None,
                      mode: Optional[str] = None, recursive: bool = False) -> Dict[str, Any]:
        body: Dict[str, Any] = {"dataset": dataset}
        if mountpoint:
            body["mountpoint"] = mountpoint
        if mode:
            body["mode"] = mode
        if recursive:
            body["recursive"] = True
        return self._do("POST", "/v1/zfs/dataset/mount", body)

    # Snapshots

    def list_snapshots(self, dataset: Optional[str] = None) -> List[str]:
        params = {"dataset": dataset} if dataset else None
        return self._do("GET", "/v1/zfs/snapshot/list", params=params).get("items", [])

    def create_snapshot(self, dataset: str, name: str, recursive: bool = False) -> Dict[str, Any]:
        return self._do("POST", "/v1/zfs/snapshot/create",
                        {"dataset": dataset, "name": name, "recursive": recursive})

    def destroy_snapshot(self, snapshot: str) -> Dict[str, Any]:
        return self._do("POST", "/v1/zfs/snapshot/destroy", {"snapshot": snapshot})

    def clone_snapshot(self, snapshot: str, target: str) -> Dict[str, Any]:
        return self._do("POST", "/v1/zfs/snapshot/clone",
                        {"sourceSnapshot": snapshot, "targetDataset": target})

    def rollback_snapshot(self, snapshot: str, force: bool = False) -> Dict[str, Any]:
        return self._do("POST", "/v1/zfs/snapshot/rollback", {"snapshot": snapshot, "force": force})

    # NFS and identity cache

    def ensure_export(self, path: str, clients: List[str], options: str) -> Dict[str, Any]:
        return self._do("POST", "/v1/nfs/export/ensure", {"path": path, "clients": clients, "options": options})

    def delete_export(self, path: str) -> Dict[str, Any]:
        return self._do("POST", "/v1/nfs/export/delete", {"path": path})

    def apply_sssd(self, conf: str, ca_bundle: Optional[str] = None) -> Dict[str, Any]:
        body = {"config": conf}
        if ca_bundle:
            body["caBundle"] = ca_bundle
        return self._do("POST", "/v1/nfs/sssd/apply", body)
