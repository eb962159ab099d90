from typing import List, Optional

from pydantic import BaseModel


class Disk(BaseModel):
    id: str
    path: str
    size: Optional[int] = None
    model: Optional[str] = None
    rotational: Optional[bool] = None


class VdevStatus(BaseModel):
    name: str
    state: str
    read: int = 0
    write: int = 0
    cksum: int = 0


class PoolUsage(BaseModel):
    total: int = 0
    used: int = 0
    available: int = 0


class PoolStatus(BaseModel):
    name: str
    state: str = "UNKNOWN"
    status: Optional[str] = None
    action: Optional[str] = None
    scan: Optional[str] = None
    errors: Optional[str] = None
    vdevs: List[VdevStatus] = []
    usage: Optional[PoolUsage] = None
    message: Optional[str] = None


class NFSExport(BaseModel):
    path: str
    clients: List[str] = []
    options: str = ""

    def to_line(self) -> str:
        return " ".join([self.path] + [f"{c}({self.options})" for c in self.clients])
