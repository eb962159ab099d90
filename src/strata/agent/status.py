from typing import List, Optional

from strata.agent.models import PoolStatus, VdevStatus

_HEADER_FIELDS = {"state", "status", "action", "scan", "errors"}


def _counter(value: str) -> int:
    return int(value) if value.isdigit() else 0


def parse_zpool_status(text: str, name: Optional[str] = None) -> PoolStatus:
    """
    Parse the human-readable output of `zpool status <pool>`.

    Header lines (state/status/action/scan/errors) are captured verbatim,
    tab-indented continuation lines of a multi-line header are joined with a
    space. Rows after the `config:` marker become vdev entries; the column
    header row is skipped and counters that are not plain integers (e.g. "1.2K") read as 0.
    """
    pool = PoolStatus(name=name or "")
    vdevs: List[VdevStatus] = []
    in_config = False
    last_key = None

    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue

        key, sep, value = line.partition(":")
        key = key.strip()
        if sep and key == "pool":
            pool.name = value.strip()
            last_key = None
            continue
        if sep and key in _HEADER_FIELDS:
            setattr(pool, key, value.strip())
            last_key = key
            in_config = False
            continue
        if sep and key == "config" and not value.strip():
            in_config = True
            last_key = None
            continue

        if in_config:
            fields = line.split()
            if len(fields) < 2 or (fields[0] == "NAME" and fields[1] == "STATE"):
                continue
            vdev = VdevStatus(name=fields[0], state=fields[1])
            if len(fields) >= 5:
                vdev.read = _counter(fields[2])
                vdev.write = _counter(fields[3])
                vdev.cksum = _counter(fields[4])
            vdevs.append(vdev)
        elif last_key is not None and raw.startswith("\t"):
            setattr(pool, last_key, f"{getattr(pool, last_key)} {line}")

    pool.vdevs = vdevs
    if pool.state:
        pool.state = pool.state.upper()
    return pool
