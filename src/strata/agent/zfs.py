import logging
import re
from typing import Dict, List, Optional, Tuple

from strata.agent.runner import run
from strata.errors import CommandError, SpecError

logger = logging.getLogger(__name__)

SNAPSHOT_TIMEOUT = 120
_MODE = re.compile(r"^[0-7]{3,4}$")
_UNMOUNTABLE = {"", "-", "none", "legacy"}


def normalize_properties(properties: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Lower-case and trim keys, trim values, drop empty entries."""
    result = {}
    for key, value in (properties or {}).items():
        key = str(key).strip().lower()
        value = "" if value is None else str(value).strip()
        if key and value:
            result[key] = value
    return result


def _check_dataset(name: str) -> str:
    name = (name or "").strip()
    if not name or "@" in name or name.startswith("/") or any(c.isspace() for c in name):
        raise SpecError(f"invalid dataset name: {name!r}")
    return name


def split_snapshot(full_name: str) -> Tuple[str, str]:
    dataset, sep, name = (full_name or "").strip().partition("@")
    if not sep or not dataset or not name or "@" in name:
        raise SpecError(f"invalid snapshot name: {full_name!r}")
    return _check_dataset(dataset), name


class DatasetManager:
    """Dataset and snapshot operations through the `zfs` command."""

    def ensure_dataset(self, full_name: str, mountpoint: Optional[str] = None,
                       properties: Optional[Dict[str, str]] = None) -> str:
        """
        Creates the dataset if missing, then re-applies every property and
        the mountpoint so out-of-band drift is corrected on each call.
        """
        full_name = _check_dataset(full_name)
        props = normalize_properties(properties)
        mountpoint = (mountpoint or "").strip()

        cmd = ["zfs", "create"]
        if mountpoint:
            cmd.extend(["-o", f"mountpoint={mountpoint}"])
        for key, value in props.items():
            cmd.extend(["-o", f"{key}={value}"])
        cmd.append(full_name)

        try:
            output = run(cmd)
        except CommandError as e:
            if "already exists" not in e.output:
                raise
            output = e.output

        for key, value in props.items():
            output += run(["zfs", "set", f"{key}={value}", full_name])
        if mountpoint:
            output += run(["zfs", "set", f"mountpoint={mountpoint}", full_name])
        return output

    def get_property(self, full_name: str, prop: str) -> str:
        return run(["zfs", "get", "-H", "-o", "value", prop, full_name]).strip()

    def mount_dataset(self, full_name: str, mountpoint: Optional[str] = None,
                      mode: Optional[str] = None, recursive: bool = False) -> str:
        full_name = _check_dataset(full_name)
        mode = (mode or "").strip()
        if mode and not _MODE.match(mode):
            raise SpecError(f"invalid mode {mode!r}: expected 3-4 octal digits")

        output = ""
        if mountpoint:
            output += run(["zfs", "set", f"mountpoint={mountpoint}", full_name])

        if self.get_property(full_name, "mounted") != "yes":
            try:
                output += run(["zfs", "mount", full_name])
            except CommandError as e:
                if "already mounted" not in e.output:
                    raise
                output += e.output

        if mode:
            resolved = mountpoint or self.get_property(full_name, "mountpoint")
            if resolved in _UNMOUNTABLE:
                raise SpecError(f"dataset {full_name} has no usable mountpoint ({resolved or 'unset'})")
            cmd = ["chmod"] + (["-R"] if recursive else []) + [mode, resolved]
            output += run(cmd)
        return output

    def list_snapshots(self, dataset: Optional[str] = None) -> List[str]:
        cmd = ["zfs", "list", "-H", "-t", "snapshot", "-o", "name"]
        if dataset:
            cmd.extend(["-r", _check_dataset(dataset)])
        try:
            output = run(cmd, timeout=SNAPSHOT_TIMEOUT)
        except CommandError as e:
            if "no datasets available" in e.output:
                return []
            raise
        return [line.strip() for line in output.splitlines() if line.strip()]

    def create_snapshot(self, dataset: str, name: str, recursive: bool = False) -> str:
        full = f"{_check_dataset(dataset)}@{(name or '').strip()}"
        split_snapshot(full)
        cmd = ["zfs", "snapshot"] + (["-r"] if recursive else []) + [full]
        try:
            return run(cmd, timeout=SNAPSHOT_TIMEOUT)
        except CommandError as e:
            if "dataset already exists" in e.output:
                return e.output
            raise

    def destroy_snapshot(self, snapshot: str) -> str:
        split_snapshot(snapshot)
        try:
            return run(["zfs", "destroy", snapshot], timeout=SNAPSHOT_TIMEOUT)
        except CommandError as e:
            if "could not find any snapshots" in e.output or "does not exist" in e.output:
                return e.output
            raise

    def clone_snapshot(self, snapshot: str, target: str) -> str:
        split_snapshot(snapshot)
        target = _check_dataset(target)
        try:
            return run(["zfs", "clone", snapshot, target], timeout=SNAPSHOT_TIMEOUT)
        except CommandError as e:
            if "already exists" in e.output:
                return e.output
            raise

    def rollback_snapshot(self, snapshot: str, force: bool = False) -> str:
        split_snapshot(snapshot)
        cmd = ["zfs", "rollback"] + (["-r"] if force else []) + [snapshot]
        return run(cmd, timeout=SNAPSHOT_TIMEOUT)
