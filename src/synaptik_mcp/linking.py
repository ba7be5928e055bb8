"""
Dependency Link/Unlink Orchestration

Establishes or removes "depends-on" edges between one primary task and a set
of other tasks by issuing one remote call per edge. Calls run concurrently,
a failing edge never affects its siblings, and the final report lists every
edge in the order the caller supplied it.

Pipeline:
- decompose(): raw tool arguments -> ordered EdgeOperationRequest list
- FanOutExecutor.execute(): one asyncio task per request -> EdgeOutcome list
- aggregate(): EdgeOutcome list -> BatchReport with counts

"Unlink all" runs a separate prefetch phase (list current dependencies)
before the fan-out; see DependencyLinker.unlink().
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Protocol, Sequence, Tuple, Union

from .client import SynaptikApiClient
from .validation import is_valid_uuid, split_csv

logger = logging.getLogger(__name__)


class EdgeKind(str, Enum):
    LINK = "LINK"
    UNLINK = "UNLINK"

    @property
    def verb(self) -> str:
        return "link" if self is EdgeKind.LINK else "unlink"


class ErrorKind(str, Enum):
    """Why a single edge operation failed."""

    REMOTE_REJECTED = "RemoteRejected"
    TRANSPORT_FAILURE = "TransportFailure"


# ===== Batch-level errors (raised before any remote call) =====

class BatchRejected(Exception):
    """Base class for errors that reject a whole batch before dispatch."""


class InvalidIdentifier(BatchRejected):
    def __init__(self, identifiers: Sequence[str], role: str = "task"):
        self.identifiers = list(identifiers)
        self.role = role
        shown = ", ".join(repr(i) for i in self.identifiers) or "''"
        super().__init__(f"Invalid {role} ID format: {shown}. Please provide a valid UUID.")


class EmptyBatch(BatchRejected):
    def __init__(self, message: str = "At least one dependency task ID is required"):
        super().__init__(message)


class DependencyPrefetchError(Exception):
    """Listing current dependencies failed, so "unlink all" never reached the fan-out."""

    def __init__(self, task_id: str, cause: Exception):
        self.task_id = task_id
        self.cause = cause
        super().__init__(f"Failed to get task dependencies for: {task_id} ({cause})")


# ===== Records =====

@dataclass(frozen=True)
class DependencyRef:
    """One entry of a dependency snapshot: task id plus display title."""
    id: str
    label: Optional[str] = None


@dataclass(frozen=True)
class EdgeOperationRequest:
    primary_id: str
    other_id: str
    kind: EdgeKind
    label: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.label:
            return f"{self.label} ({self.other_id})"
        return self.other_id


@dataclass(frozen=True)
class EdgeOutcome:
    """Terminal result of one edge operation. Built only via the classmethods below."""
    request: EdgeOperationRequest
    succeeded: bool
    detail: str
    error_kind: Optional[ErrorKind] = None
    reason: Optional[str] = None
    status_code: Optional[int] = None

    @classmethod
    def success(cls, request: EdgeOperationRequest, status_code: int) -> "EdgeOutcome":
        return cls(request=request, succeeded=True, detail=request.display_name, status_code=status_code)

    @classmethod
    def rejected(cls, request: EdgeOperationRequest, status_code: int) -> "EdgeOutcome":
        return cls(
            request=request,
            succeeded=False,
            detail=request.display_name,
            error_kind=ErrorKind.REMOTE_REJECTED,
            reason=f"HTTP {status_code}",
            status_code=status_code,
        )

    @classmethod
    def transport_failure(cls, request: EdgeOperationRequest, reason: str) -> "EdgeOutcome":
        return cls(
            request=request,
            succeeded=False,
            detail=request.display_name,
            error_kind=ErrorKind.TRANSPORT_FAILURE,
            reason=reason,
        )


@dataclass(frozen=True)
class BatchReport:
    primary_id: str
    kind: EdgeKind
    outcomes: Tuple[EdgeOutcome, ...]
    succeeded_count: int
    failed_count: int
    all_dependencies: bool = False

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def is_empty(self) -> bool:
        """True when nothing was attempted (e.g. unlink-all on a task with no dependencies)."""
        return not self.outcomes

    @property
    def failures(self) -> List[EdgeOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]


# ===== Remote capability =====

@dataclass(frozen=True)
class EdgeCallResult:
    status_code: int

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class DependencyEdgeService(Protocol):
    """What the linker needs from the task service."""

    async def link_edge(self, primary_id: str, other_id: str) -> EdgeCallResult: ...

    async def unlink_edge(self, primary_id: str, other_id: str) -> EdgeCallResult: ...

    async def list_dependencies(self, primary_id: str) -> List[DependencyRef]: ...


class ApiEdgeService:
    """DependencyEdgeService backed by the Synaptik HTTP API."""

    def __init__(self, client: SynaptikApiClient):
        self.client = client

    async def link_edge(self, primary_id: str, other_id: str) -> EdgeCallResult:
        response = await self.client.link_tasks(primary_id, other_id)
        return EdgeCallResult(status_code=response.status_code)

    async def unlink_edge(self, primary_id: str, other_id: str) -> EdgeCallResult:
        response = await self.client.unlink_tasks(primary_id, other_id)
        return EdgeCallResult(status_code=response.status_code)

    async def list_dependencies(self, primary_id: str) -> List[DependencyRef]:
        tasks = await self.client.get_task_dependencies(primary_id)
        return [DependencyRef(id=task.id, label=task.title or None) for task in tasks]


# ===== Decomposer =====

def validate_identifier(value: Optional[str], role: str = "task") -> str:
    """Return the trimmed identifier or raise InvalidIdentifier."""
    if not is_valid_uuid(value):
        raise InvalidIdentifier([value or ""], role)
    return value.strip()


def decompose(
    primary_id: Optional[str],
    other_ids_raw: Optional[str],
    kind: EdgeKind,
    prefetched: Optional[Sequence[Union[str, DependencyRef]]] = None,
) -> List[EdgeOperationRequest]:
    """
    Turn raw tool arguments into one EdgeOperationRequest per target id.

    Entries of other_ids_raw are comma separated and trimmed; blank entries
    are skipped. Order and duplicates are preserved. For UNLINK with no
    explicit ids, the prefetched snapshot is used instead, and an empty
    snapshot gives an empty list.

    Raises:
        InvalidIdentifier: primary id or any explicit id is not a UUID
        EmptyBatch: no explicit ids and no prefetched snapshot
    """
    primary = validate_identifier(primary_id)
    explicit = split_csv(other_ids_raw)

    if explicit:
        malformed = [other for other in explicit if not is_valid_uuid(other)]
        if malformed:
            raise InvalidIdentifier(malformed, "dependency task")
        return [EdgeOperationRequest(primary, other, kind) for other in explicit]

    if prefetched is None:
        raise EmptyBatch()
    if kind is not EdgeKind.UNLINK:
        raise EmptyBatch()

    requests = []
    for ref in prefetched:
        if isinstance(ref, DependencyRef):
            requests.append(EdgeOperationRequest(primary, ref.id, kind, label=ref.label))
        else:
            requests.append(EdgeOperationRequest(primary, ref, kind))
    return requests


# ===== Fan-out executor =====

class FanOutExecutor:
    """
    Runs edge operations concurrently with per-request failure isolation.

    Each request gets its own asyncio task whose coroutine converts every
    outcome (2xx, non-2xx, raised exception) into an EdgeOutcome, so no task
    ever ends in an exception and no sibling is cancelled. Results are read
    back by position after all tasks finish.

    Args:
        max_concurrency: Ceiling on simultaneous remote calls; 0 is unbounded
        batch_timeout: Overall deadline in seconds; requests still in flight
            when it expires are cancelled and reported as TransportFailure
    """

    def __init__(self, max_concurrency: int = 0, batch_timeout: Optional[float] = None):
        if max_concurrency < 0:
            raise ValueError("max_concurrency must be >= 0")
        self.max_concurrency = max_concurrency
        self.batch_timeout = batch_timeout

    async def execute(
        self,
        requests: Sequence[EdgeOperationRequest],
        service: DependencyEdgeService,
    ) -> List[EdgeOutcome]:
        requests = list(requests)
        if not requests:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
        tasks = [asyncio.create_task(self._dispatch(request, service, semaphore)) for request in requests]

        try:
            _, pending = await asyncio.wait(tasks, timeout=self.batch_timeout)
        except asyncio.CancelledError:
            # Caller gave up on the whole batch: stop the children too
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        if pending:
            logger.warning(
                f"Batch deadline of {self.batch_timeout}s exceeded, "
                f"cancelling {len(pending)} of {len(tasks)} edge operations"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes = []
        for request, task in zip(requests, tasks):
            if task.cancelled():
                outcomes.append(EdgeOutcome.transport_failure(request, "cancelled: batch timeout exceeded"))
            else:
                outcomes.append(task.result())
        return outcomes

    async def _dispatch(
        self,
        request: EdgeOperationRequest,
        service: DependencyEdgeService,
        semaphore: Optional[asyncio.Semaphore],
    ) -> EdgeOutcome:
        call = service.link_edge if request.kind is EdgeKind.LINK else service.unlink_edge
        try:
            if semaphore is None:
                result = await call(request.primary_id, request.other_id)
            else:
                async with semaphore:
                    result = await call(request.primary_id, request.other_id)
        except Exception as e:
            logger.warning(
                f"Error during {request.kind.verb} {request.primary_id} -> {request.other_id}: {e!r}"
            )
            return EdgeOutcome.transport_failure(request, str(e) or type(e).__name__)

        if result.ok:
            return EdgeOutcome.success(request, result.status_code)

        logger.warning(
            f"Synaptik rejected {request.kind.verb} {request.primary_id} -> {request.other_id} "
            f"with HTTP {result.status_code}"
        )
        return EdgeOutcome.rejected(request, result.status_code)


# ===== Aggregator =====

def aggregate(
    primary_id: str,
    kind: EdgeKind,
    outcomes: Sequence[EdgeOutcome],
    all_dependencies: bool = False,
) -> BatchReport:
    """Package outcomes, in the order given, into a BatchReport with counts."""
    outcomes = tuple(outcomes)
    succeeded = sum(1 for outcome in outcomes if outcome.succeeded)
    return BatchReport(
        primary_id=primary_id,
        kind=kind,
        outcomes=outcomes,
        succeeded_count=succeeded,
        failed_count=len(outcomes) - succeeded,
        all_dependencies=all_dependencies,
    )


# ===== Orchestration =====

class DependencyLinker:
    """Validates, decomposes, fans out and aggregates link/unlink batches."""

    def __init__(self, service: DependencyEdgeService, executor: Optional[FanOutExecutor] = None):
        self.service = service
        self.executor = executor or FanOutExecutor()

    async def link(self, task_id: Optional[str], depends_on_task_ids: Optional[str]) -> BatchReport:
        """
        Make task_id depend on each id in the comma separated list.

        Raises:
            InvalidIdentifier, EmptyBatch: before any remote call
        """
        requests = decompose(task_id, depends_on_task_ids, EdgeKind.LINK)
        return await self._run(requests[0].primary_id, EdgeKind.LINK, requests)

    async def unlink(self, task_id: Optional[str], dependency_ids_to_remove: Optional[str] = None) -> BatchReport:
        """
        Remove the listed dependencies, or all current ones when none are listed.

        Raises:
            InvalidIdentifier, EmptyBatch: before any remote call
            DependencyPrefetchError: listing current dependencies failed
        """
        if dependency_ids_to_remove is not None and dependency_ids_to_remove.strip():
            requests = decompose(task_id, dependency_ids_to_remove, EdgeKind.UNLINK)
            return await self._run(requests[0].primary_id, EdgeKind.UNLINK, requests)

        primary_id = validate_identifier(task_id)
        snapshot = await self.prefetch_dependencies(primary_id)
        requests = decompose(primary_id, None, EdgeKind.UNLINK, prefetched=snapshot)
        if not requests:
            logger.info(f"Task {primary_id} has no dependencies to remove")
        return await self._run(primary_id, EdgeKind.UNLINK, requests, all_dependencies=True)

    async def prefetch_dependencies(self, primary_id: str) -> List[DependencyRef]:
        try:
            return await self.service.list_dependencies(primary_id)
        except Exception as e:
            logger.error(f"Failed to list dependencies of {primary_id}: {e!r}")
            raise DependencyPrefetchError(primary_id, e) from e

    async def _run(
        self,
        primary_id: str,
        kind: EdgeKind,
        requests: List[EdgeOperationRequest],
        all_dependencies: bool = False,
    ) -> BatchReport:
        outcomes = await self.executor.execute(requests, self.service)
        report = aggregate(primary_id, kind, outcomes, all_dependencies=all_dependencies)
        logger.info(
            f"{kind.verb.capitalize()} batch for task {primary_id}: "
            f"{report.succeeded_count} succeeded, {report.failed_count} failed"
        )
        return report
