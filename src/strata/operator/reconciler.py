import logging
from abc import ABC, abstractmethod
from typing import Callable, NamedTuple, Optional, Type

from strata.errors import (
    AgentError,
    AgentTimeout,
    ConflictError,
    DependencyNotFound,
    InvalidPhaseTransition,
    NotFoundError,
    SpecError,
)
from strata.operator.client import NodeAgentClient
from strata.operator.models import Phase, Record
from strata.operator.store import RecordStore, SecretStore

logger = logging.getLogger(__name__)

# Requeue policy, in seconds
REQUEUE_CONFLICT = 1.0
REQUEUE_POLL = 15.0
REQUEUE_VALIDATION = 20.0
REQUEUE_ERROR = 30.0
REQUEUE_POOL_STEADY = 5 * 60.0
REQUEUE_STEADY = 10 * 60.0
SCHEDULE_MIN = 5.0
SCHEDULE_MAX = 2 * 60.0

AgentFactory = Callable[[str], NodeAgentClient]


class Result(NamedTuple):
    requeue_after: Optional[float] = None


class Reconciler(ABC):
    """
    One reconcile pass for one record.

    reconcile() fetches the record (a missing record is a no-op), runs the
    finalizer for records being deleted, and otherwise delegates to
    reconcile_record(), which mutates record.status and returns the requeue
    delay. The status write is attempted whatever the outcome.
    """

    kind: Type[Record]
    finalizer: Optional[str] = None

    def __init__(self, store: RecordStore, secrets: Optional[SecretStore] = None,
                 agents: AgentFactory = NodeAgentClient.for_node):
        self.store = store
        self.secrets = secrets
        self.agents = agents

    @abstractmethod
    def reconcile_record(self, record: Record) -> Result:
        pass

    def finalize(self, record: Record):
        """External cleanup before the finalizer is released. Raise to retry."""

    def reconcile(self, namespace: str, name: str) -> Result:
        record = self.store.get(self.kind, namespace, name)
        if record is None:
            return Result()

        if record.deleting:
            if not self.finalizer or self.finalizer not in record.metadata.finalizers:
                return Result()
            try:
                self.finalize(record)
            except (AgentError, SpecError, DependencyNotFound) as e:
                logger.warning(f"{record.kind} {namespace}/{name}: cleanup failed: {e}")
                record.status.set_phase(Phase.ERROR, f"cleanup failed: {e}")
                self.write_status(record)
                return Result(REQUEUE_ERROR)
            try:
                self.remove_finalizer(record)
            except ConflictError as e:
                logger.info(f"{record.kind} {namespace}/{name}: finalizer release rejected, retrying: {e}")
                return Result(REQUEUE_CONFLICT)
            return Result()

        try:
            result = self.reconcile_record(record)
        except ConflictError as e:
            logger.info(f"{record.kind} {namespace}/{name}: update rejected, retrying: {e}")
            result = Result(REQUEUE_CONFLICT)
        except (AgentError, SpecError, DependencyNotFound, InvalidPhaseTransition) as e:
            result = self.fail(record, e)
        return self.write_status(record) or result

    def fail(self, record: Record, error: Exception, phase: Phase = Phase.ERROR,
             requeue: float = REQUEUE_ERROR) -> Result:
        message = str(error)
        if isinstance(error, AgentTimeout) and not message.startswith("timeout:"):
            message = f"timeout: {message}"
        logger.warning(f"{record.kind} {record.namespace}/{record.name}: {message}")
        record.status.set_phase(phase, message)
        return Result(requeue)

    def agent_for(self, node_name: str) -> NodeAgentClient:
        return self.agents(node_name)

    def write_status(self, record: Record) -> Optional[Result]:
        """Persist record.status. Returns a short requeue if the write was rejected."""
        record.status.observed_generation = record.metadata.generation
        try:
            updated = self.store.update_status(record)
        except ConflictError as e:
            logger.info(f"status write rejected, retrying: {e}")
            return Result(REQUEUE_CONFLICT)
        except NotFoundError:
            return None
        record.metadata = updated.metadata
        return None

    def ensure_finalizer(self, record: Record):
        if self.finalizer and self.finalizer not in record.metadata.finalizers:
            record.metadata.finalizers.append(self.finalizer)
            record.metadata = self.store.update(record).metadata

    def remove_finalizer(self, record: Record):
        if self.finalizer in record.metadata.finalizers:
            record.metadata.finalizers.remove(self.finalizer)
            record.metadata = self.store.update(record).metadata
