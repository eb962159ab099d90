import glob
import json
import logging
import os
import re
import threading
from typing import Dict, List, Optional

from strata.agent.models import Disk
from strata.agent.runner import run
from strata.errors import CommandError

logger = logging.getLogger(__name__)

PERSISTENT_DIRS = ["/dev/disk/by-id", "/dev/disk/by-path"]

_WHOLE_DISK_PATTERNS = [
    re.compile(r"^(sd|vd|xvd|hd)[a-z]+$"),
    re.compile(r"^nvme\d+n\d+$"),
    re.compile(r"^mmcblk\d+$"),
]


def get_block_devices() -> List[dict]:
    """Whole-disk entries reported by lsblk (sizes in bytes)."""
    cmd = ["lsblk", "-b", "-J", "-o", "NAME,TYPE,SIZE,ROTA,MODEL"]
    data = json.loads(run(cmd, timeout=15))
    return [d for d in data.get("blockdevices", []) if d.get("type") == "disk"]


def block_device_index() -> Dict[str, dict]:
    try:
        return {d["name"]: d for d in get_block_devices()}
    except (CommandError, ValueError, KeyError) as e:
        logger.warning(f"lsblk unavailable: {e}")
        return {}


def _to_disk(disk_id: str, path: str, meta: Optional[dict]) -> Disk:
    disk = Disk(id=disk_id, path=path)
    if meta:
        disk.size = int(meta.get("size") or 0)
        disk.model = (meta.get("model") or "").strip() or None
        rota = meta.get("rota")
        disk.rotational = rota in (True, 1, "1")
    return disk


def list_disks() -> List[Disk]:
    """
    Lists whole disks by stable identifier.

    Persistent symlinks are preferred (by-id, then by-path); partition links
    are skipped and each kernel device appears once. When neither namespace is
    populated the lsblk enumeration is used directly.
    """
    index = block_device_index()
    seen = set()
    disks = []

    for directory in PERSISTENT_DIRS:
        for link in sorted(glob.glob(os.path.join(directory, "*"))):
            name = os.path.basename(link)
            if "part" in name:
                continue
            target = os.path.basename(os.path.realpath(link))
            if target in seen:
                continue
            if index and target not in index:
                continue
            seen.add(target)
            disks.append(_to_disk(name, link, index.get(target)))

    if disks:
        return disks

    return [_to_disk(name, f"/dev/{name}", index[name]) for name in sorted(index)]


def resolve_disk_path(ref: str) -> str:
    """Map a bare identifier to a device path, preferring persistent namespaces."""
    ref = ref.strip()
    if ref.startswith("/dev/"):
        return ref
    for directory in PERSISTENT_DIRS:
        candidate = os.path.join(directory, ref)
        if os.path.exists(candidate):
            return candidate
    return f"/dev/{ref}"


def is_whole_disk(path: str, block_devices: Optional[Dict[str, dict]] = None) -> bool:
    """
    True when path resolves to a whole disk rather than a partition.

    lsblk's TYPE column is authoritative when available; otherwise kernel
    naming conventions are used (sdX, vdX, xvdX, hdX, nvmeXnY, mmcblkX).
    """
    name = os.path.basename(os.path.realpath(path))
    if block_devices:
        return name in block_devices
    return any(p.match(name) for p in _WHOLE_DISK_PATTERNS)


def partition_path(disk: str, number: int = 1) -> str:
    """Kernel naming of partition `number` on `disk` (sdb -> sdb1, nvme0n1 -> nvme0n1p1)."""
    if disk[-1:].isdigit():
        return f"{disk}p{number}"
    return f"{disk}{number}"


class DiskCache:
    """Caches the last disk listing; refresh() re-reads the host."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(DiskCache, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._lock = threading.Lock()
        self._disks: Optional[List[Disk]] = None
        self._initialized = True

    def get(self) -> List[Disk]:
        with self._lock:
            if self._disks is None:
                self._disks = list_disks()
            return list(self._disks)

    def refresh(self) -> List[Disk]:
        with self._lock:
            self._disks = list_disks()
            return list(self._disks)
