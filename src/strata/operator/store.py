import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel

from strata.errors import ConflictError, DependencyNotFound, NotFoundError
from strata.operator.models import RECORD_KINDS, Record, now_rfc3339

logger = logging.getLogger(__name__)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
STATUS = "STATUS"

Key = Tuple[str, str, str]
WatchCallback = Callable[[str, Record], None]
KindRef = Union[str, Type[Record]]


def _kind(kind: KindRef) -> str:
    return kind if isinstance(kind, str) else kind.kind


class RecordStore(ABC):
    """
    Desired-state records with optimistic concurrency.

    Every write carries the resource_version it was read at; a stale write
    raises ConflictError. Deleting a record that still has finalizers only
    stamps its deletion timestamp; it goes away once the last finalizer is
    removed.
    """

    @abstractmethod
    def get(self, kind: KindRef, namespace: str, name: str) -> Optional[Record]:
        pass

    @abstractmethod
    def list(self, kind: KindRef, namespace: Optional[str] = None) -> List[Record]:
        pass

    @abstractmethod
    def create(self, record: Record) -> Record:
        pass

    @abstractmethod
    def update(self, record: Record) -> Record:
        """Write metadata and spec. Status is left untouched."""

    @abstractmethod
    def update_status(self, record: Record) -> Record:
        pass

    @abstractmethod
    def delete(self, kind: KindRef, namespace: str, name: str) -> None:
        pass

    @abstractmethod
    def watch(self, callback: WatchCallback) -> None:
        pass

    def list_owned(self, owner: Record, kind: Optional[KindRef] = None) -> List[Record]:
        kinds = [_kind(kind)] if kind else self.kinds()
        owned = []
        for k in kinds:
            for record in self.list(k, owner.namespace):
                ref = record.metadata.owner_reference
                if ref and ref.kind == owner.kind and ref.name == owner.name:
                    owned.append(record)
        return owned

    def kinds(self) -> List[str]:
        return list(RECORD_KINDS)

    def upsert(self, record: Record) -> Record:
        """Create `record` or bring the stored copy's spec, labels and owner in line with it."""
        existing = self.get(record.kind, record.namespace, record.name)
        if existing is None:
            return self.create(record)
        meta = existing.metadata
        if (existing.spec == record.spec and meta.labels == record.metadata.labels
                and meta.annotations == record.metadata.annotations
                and meta.owner_reference == record.metadata.owner_reference):
            return existing
        existing.spec = record.spec
        meta.labels = dict(record.metadata.labels)
        meta.annotations = dict(record.metadata.annotations)
        meta.owner_reference = record.metadata.owner_reference
        return self.update(existing)


class MemoryStore(RecordStore):
    """In-process RecordStore. Records are copied in and out, like a remote store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[Key, Record] = {}
        self._version = 0
        self._watchers: List[WatchCallback] = []

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _notify(self, event: str, record: Record):
        for callback in list(self._watchers):
            try:
                callback(event, record.model_copy(deep=True))
            except Exception as e:
                logger.error(f"watch callback failed for {record.key}: {e}")

    def _current(self, record: Record) -> Record:
        current = self._records.get(record.key)
        if current is None:
            raise NotFoundError(f"{record.kind} {record.namespace}/{record.name} not found")
        if current.metadata.resource_version != record.metadata.resource_version:
            raise ConflictError(
                f"{record.kind} {record.namespace}/{record.name}: resource version "
                f"{record.metadata.resource_version} is stale (now {current.metadata.resource_version})"
            )
        return current

    def get(self, kind, namespace, name):
        with self._lock:
            record = self._records.get((_kind(kind), namespace, name))
            return record.model_copy(deep=True) if record else None

    def list(self, kind, namespace=None):
        with self._lock:
            return [
                r.model_copy(deep=True)
                for key, r in sorted(self._records.items())
                if key[0] == _kind(kind) and (namespace is None or key[1] == namespace)
            ]

    def create(self, record):
        with self._lock:
            if record.key in self._records:
                raise ConflictError(f"{record.kind} {record.namespace}/{record.name} already exists")
            stored = record.model_copy(deep=True)
            stored.metadata.resource_version = self._next_version()
            stored.metadata.generation = 1
            stored.metadata.deletion_timestamp = None
            self._records[stored.key] = stored
            self._notify(ADDED, stored)
            return stored.model_copy(deep=True)

    def update(self, record):
        with self._lock:
            current = self._current(record)
            stored = record.model_copy(deep=True)
            stored.status = copy.deepcopy(current.status)
            stored.metadata.deletion_timestamp = current.metadata.deletion_timestamp
            spec_changed = _dump(current.spec) != _dump(stored.spec)
            stored.metadata.generation = current.metadata.generation + (1 if spec_changed else 0)

            if stored.deleting and not stored.metadata.finalizers:
                del self._records[stored.key]
                self._notify(DELETED, stored)
                return stored.model_copy(deep=True)

            stored.metadata.resource_version = self._next_version()
            self._records[stored.key] = stored
            self._notify(MODIFIED, stored)
            return stored.model_copy(deep=True)

    def update_status(self, record):
        with self._lock:
            current = self._current(record)
            stored = current.model_copy(deep=True)
            stored.status = copy.deepcopy(record.status)
            stored.metadata.resource_version = self._next_version()
            self._records[stored.key] = stored
            self._notify(STATUS, stored)
            return stored.model_copy(deep=True)

    def delete(self, kind, namespace, name):
        with self._lock:
            key = (_kind(kind), namespace, name)
            current = self._records.get(key)
            if current is None:
                return
            if current.metadata.finalizers:
                if not current.deleting:
                    current.metadata.deletion_timestamp = now_rfc3339()
                    current.metadata.resource_version = self._next_version()
                    self._notify(MODIFIED, current)
                return
            del self._records[key]
            self._notify(DELETED, current)

    def watch(self, callback):
        with self._lock:
            self._watchers.append(callback)


def _dump(value):
    return value.model_dump() if isinstance(value, BaseModel) else value


class Secret(BaseModel):
    name: str
    namespace: str = "default"
    data: Dict[str, bytes] = {}
    version: int = 0

    def value(self, key: str) -> str:
        return self.data.get(key, b"").decode(errors="replace").strip()


class SecretStore(ABC):
    """Opaque secret blobs by key."""

    @abstractmethod
    def get(self, namespace: str, name: str) -> Optional[Secret]:
        pass

    def require(self, namespace: str, name: str) -> Secret:
        secret = self.get(namespace, name)
        if secret is None:
            raise DependencyNotFound(f"secret {namespace}/{name} not found")
        return secret

    def watch(self, callback: Callable[[Secret], None]) -> None:
        pass


class MemorySecretStore(SecretStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._secrets: Dict[Tuple[str, str], Secret] = {}
        self._version = 0
        self._watchers: List[Callable[[Secret], None]] = []

    def put(self, namespace: str, name: str, data: Dict[str, Union[bytes, str]]) -> Secret:
        with self._lock:
            self._version += 1
            secret = Secret(
                name=name,
                namespace=namespace,
                data={k: v.encode() if isinstance(v, str) else v for k, v in data.items()},
                version=self._version,
            )
            self._secrets[(namespace, name)] = secret
            watchers = list(self._watchers)
        for callback in watchers:
            callback(secret.model_copy(deep=True))
        return secret

    def get(self, namespace, name):
        with self._lock:
            secret = self._secrets.get((namespace, name))
            return secret.model_copy(deep=True) if secret else None

    def watch(self, callback):
        with self._lock:
            self._watchers.append(callback)
