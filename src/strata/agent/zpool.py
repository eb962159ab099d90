import logging
import os
import re
from typing import Dict, List, Optional, Tuple

from strata.agent.disks import block_device_index, is_whole_disk, partition_path, resolve_disk_path
from strata.agent.models import PoolStatus, PoolUsage
from strata.agent.runner import run, run_quiet
from strata.agent.status import parse_zpool_status
from strata.config.settings import config
from strata.errors import CommandError, SpecError

logger = logging.getLogger(__name__)

VDEV_KEYWORDS = {
    "": None,
    "stripe": None,
    "mirror": "mirror",
    "raidz1": "raidz1",
    "raidz2": "raidz2",
    "log": "log",
    "cache": "cache",
    "spare": "spare",
}
AUXILIARY = {"log", "cache", "spare"}
CREATE_TIMEOUT = 180
_POOL_NAME = re.compile(r"^[A-Za-z][\w.:-]*$")


def validate_pool_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise SpecError("pool name is required")
    if not _POOL_NAME.match(name):
        raise SpecError(f"invalid pool name: {name!r}")
    return name


def vdev_groups(layout: str = "", devices: Optional[List[str]] = None,
                vdevs: Optional[List[Tuple[str, List[str]]]] = None) -> List[Tuple[str, List[str]]]:
    """
    Normalize the requested layout into ordered (type, devices) groups.

    Plain stripe devices come first, then redundant groups, then log/cache/
    spare groups, which is the order `zpool create` parses them in.
    """
    groups = [((t or "").strip().lower(), [d.strip() for d in devs if d and d.strip()])
              for t, devs in (vdevs or [])]
    if devices:
        groups.insert(0, ((layout or "").strip().lower(), [d.strip() for d in devices if d and d.strip()]))

    if not groups:
        raise SpecError("at least one device is required")
    for vtype, group_devices in groups:
        if vtype not in VDEV_KEYWORDS:
            raise SpecError(f"unsupported layout: {vtype}")
        if not group_devices:
            raise SpecError(f"vdev group {vtype or 'stripe'} has no devices")
    if all(vtype in AUXILIARY for vtype, _ in groups):
        raise SpecError("at least one data vdev is required")

    def order(group):
        vtype = group[0]
        if vtype in AUXILIARY:
            return 2
        return 1 if VDEV_KEYWORDS[vtype] else 0

    return sorted(groups, key=order)


def settle() -> str:
    return run_quiet(["udevadm", "settle", "--timeout=5"], timeout=15)


class PoolManager:
    """Drives `zpool` on the local host. Every operation is safe to repeat."""

    def list_pools(self) -> List[str]:
        output = run(["zpool", "list", "-H", "-o", "name"], timeout=30)
        return [line.strip() for line in output.splitlines() if line.strip()]

    def pool_status(self, name: str) -> PoolStatus:
        output = run(["zpool", "status", name], timeout=30)
        status = parse_zpool_status(output, name=name)
        status.usage = self.pool_usage(name)
        return status

    def all_pool_status(self) -> List[PoolStatus]:
        pools = []
        for name in self.list_pools():
            try:
                pools.append(self.pool_status(name))
            except CommandError as e:
                logger.warning(f"status failed for pool {name}: {e}")
                pools.append(PoolStatus(name=name, state="UNKNOWN", message=e.output.strip()))
        return pools

    def pool_usage(self, name: str) -> Optional[PoolUsage]:
        try:
            output = run(["zpool", "list", "-H", "-p", "-o", "size,allocated,free", name], timeout=30)
        except CommandError as e:
            logger.warning(f"usage unavailable for pool {name}: {e}")
            return None
        fields = output.split()
        if len(fields) < 3 or not all(f.isdigit() for f in fields[:3]):
            return None
        return PoolUsage(total=int(fields[0]), used=int(fields[1]), available=int(fields[2]))

    def prepare_device(self, device: str, block_devices: Dict[str, dict]) -> str:
        """
        Returns the path to hand to `zpool create` for `device`.

        A whole disk gets a single ZFS partition spanning it (wiping whatever
        was there). If that partition already exists the disk is left alone.
        """
        path = resolve_disk_path(device)
        if not is_whole_disk(path, block_devices):
            return path

        disk = os.path.realpath(path)
        part = partition_path(disk)
        if os.path.exists(part):
            logger.info(f"{disk}: partition {part} already present")
            return part

        logger.warning(f"{disk}: wiping and partitioning for ZFS")
        run_quiet(["wipefs", "-a", disk])
        run_quiet(["sgdisk", "--zap-all", disk])
        run(["sgdisk", "-n", "1:1MiB:0", "-t", "1:BF01", "-c", f"1:{config.partition_label}", disk])
        run_quiet(["partprobe", disk])
        settle()
        if not os.path.exists(part):
            raise CommandError(["sgdisk", disk], output=f"partition {part} did not appear", returncode=1)
        return part

    def create_pool(self, name: str, layout: str = "", devices: Optional[List[str]] = None,
                    properties: Optional[Dict[str, str]] = None,
                    vdevs: Optional[List[Tuple[str, List[str]]]] = None) -> str:
        """
        Creates pool `name` and normalizes it onto persistent device paths.

        Either a single `layout` over `devices` or a list of (type, devices)
        vdev groups may be given. Returns the combined command output; a pool
        that already exists is left as it is.
        """
        name = validate_pool_name(name)
        groups = vdev_groups(layout, devices, vdevs)
        properties = {k.strip().lower(): str(v).strip() for k, v in (properties or {}).items()}

        if name in self.list_pools():
            logger.info(f"pool {name} already exists")
            return f"pool {name} already exists\n"

        block_devices = block_device_index()
        cmd = ["zpool", "create", "-f", "-o", f"ashift={properties.get('ashift') or '12'}", "-m", "none", name]
        for vtype, group_devices in groups:
            if VDEV_KEYWORDS[vtype]:
                cmd.append(VDEV_KEYWORDS[vtype])
            cmd.extend(self.prepare_device(d, block_devices) for d in group_devices)

        output = settle()
        try:
            output += run(cmd, timeout=CREATE_TIMEOUT)
        except CommandError as e:
            logger.warning(f"zpool create {name} failed, retrying after settle: {e}")
            output += e.output + settle()
            output += run(cmd, timeout=CREATE_TIMEOUT)

        if properties.get("autoexpand") == "on":
            output += run_quiet(["zpool", "set", "autoexpand=on", name])

        output += self.normalize_pool(name)
        return output

    def normalize_pool(self, name: str) -> str:
        """Re-import the pool by persistent device paths and pin its cache file."""
        output = run(["zpool", "export", name], timeout=60)
        output += settle()
        output += run(
            ["zpool", "import", "-d", "/dev/disk/by-id", "-d", "/dev/disk/by-path", name],
            timeout=CREATE_TIMEOUT,
        )
        output += run(["zpool", "set", f"cachefile={config.zpool_cache_file}", name])
        return output

    def destroy_pool(self, name: str) -> str:
        name = validate_pool_name(name)
        if name not in self.list_pools():
            return f"pool {name} not found\n"
        return run(["zpool", "destroy", "-f", name], timeout=120)
