import logging
import os
from typing import List, Optional

from strata.agent.models import NFSExport
from strata.agent.runner import require_binary, run
from strata.config.settings import config
from strata.errors import SpecError

logger = logging.getLogger(__name__)

DEFAULT_CLIENTS = ["*"]
DEFAULT_OPTIONS = "rw,sync,no_subtree_check"


def parse_export_line(line: str) -> Optional[NFSExport]:
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    fields = line.split()
    export = NFSExport(path=fields[0])
    for field in fields[1:]:
        client, _, rest = field.partition("(")
        export.clients.append(client)
        if rest:
            export.options = rest.rstrip(")")
    return export


class ExportsManager:
    """
    Keeps one exports line per path in a drop-in file and reloads the
    kernel export table after every change.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path or config.nfs_exports_path

    def _read_lines(self) -> List[str]:
        if not os.path.exists(self.path):
            return []
        with open(self.path, "r") as f:
            return f.read().splitlines()

    def _write_lines(self, lines: List[str]):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        tmp = f"{self.path}.tmp"
        with open(tmp, "w") as f:
            f.write("\n".join(lines) + ("\n" if lines else ""))
        os.replace(tmp, self.path)

    def list_exports(self) -> List[NFSExport]:
        exports = []
        for line in self._read_lines():
            export = parse_export_line(line)
            if export:
                exports.append(export)
        return exports

    def ensure_export(self, path: str, clients: Optional[List[str]] = None,
                      options: Optional[str] = None) -> bool:
        """Upserts the line for `path`. Returns True when the file changed."""
        path = (path or "").strip()
        if not path.startswith("/"):
            raise SpecError(f"export path must be absolute: {path!r}")
        require_binary("exportfs")

        clients = [c.strip() for c in (clients or []) if c and c.strip()] or DEFAULT_CLIENTS
        options = (options or "").strip() or DEFAULT_OPTIONS
        wanted = NFSExport(path=path, clients=clients, options=options).to_line()

        lines = self._read_lines()
        updated = []
        found = False
        for line in lines:
            export = parse_export_line(line)
            if export and export.path == path:
                if not found:
                    updated.append(wanted)
                found = True
                continue
            updated.append(line)
        if not found:
            updated.append(wanted)

        if updated == lines:
            return False
        self._write_lines(updated)
        run(["exportfs", "-ra"])
        logger.info(f"nfs export updated: {wanted}")
        return True

    def delete_export(self, path: str) -> bool:
        path = (path or "").strip()
        lines = self._read_lines()
        kept = []
        for line in lines:
            export = parse_export_line(line)
            if export and export.path == path:
                continue
            kept.append(line)
        if kept == lines:
            return False
        self._write_lines(kept)
        require_binary("exportfs")
        run(["exportfs", "-ra"])
        logger.info(f"nfs export removed: {path}")
        return True
