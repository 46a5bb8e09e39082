# batching.py
# SPDX-License-Identifier: MIT
"""Coalesce fine-grained requests from many tasks into bulk handler calls.

Each task body is an ordinary function that receives a ``load`` callable.
Calling ``load(value)`` parks the task until the batch handler resolves
that request; meanwhile other tasks keep running and add their own
requests to the same open batch. Once every live task is parked (or the
batch reaches ``max_batch_size``) the coordinator hands the whole batch to
the handler in one call, and the resolved values flow back to the tasks
that asked for them.

Task bodies run on worker threads from a ``ThreadPoolExecutor``; the thread
that calls :meth:`BatchProcessor.run` acts as the coordinator and is the
only thread that invokes the handler. A task may call ``load`` any number
of times, including zero.

Examples:
    >>> def handler(batch):
    ...     for value, completion in batch:
    ...         completion.complete(value * 2)
    >>> futures = batch(handler, [lambda load, i=i: load(i) for i in range(3)])
    >>> [f.result() for f in futures]
    [0, 2, 4]

Invariants:
    * Every request is resolved exactly once; a second resolution raises
      :class:`RequestAlreadyResolvedError`.
    * A batch is handed to the handler before the next batch starts
      accumulating; batches never share requests.
    * The runnable counter is raised before a resolved task wakes up, so a
      task that immediately issues its next request cannot trigger a flush
      while other resolved tasks are still waking.
"""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Callable, Iterable, Iterator
from concurrent import futures
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from .config import BatchConfig
from .interfaces import BatchHandler
from .log import get_logger

log = get_logger(__name__)

In = TypeVar("In")
Out = TypeVar("Out")
R = TypeVar("R")

Loader = Callable[[In], Out]
TaskBody = Callable[[Loader], R]

__all__ = [
    "BatchError",
    "BatchHandlerError",
    "BatchTimeoutError",
    "RequestAlreadyResolvedError",
    "LoaderClosedError",
    "Completion",
    "BatchRequest",
    "TaskState",
    "BatchStats",
    "BatchProcessor",
    "Outcome",
    "batch",
    "outcomes",
]


class BatchError(RuntimeError):
    """Base class for batch engine errors."""


class BatchHandlerError(BatchError):
    """A request failed because the batch handler raised.

    The handler's exception is available as ``__cause__``.
    """


class BatchTimeoutError(BatchError, TimeoutError):
    """A request was not resolved within ``request_timeout`` seconds."""


class RequestAlreadyResolvedError(BatchError):
    """A completion handle was resolved twice."""


class LoaderClosedError(BatchError):
    """A loader was used after its task finished or from another thread."""


class TaskState(Enum):
    CREATED = "created"
    RUNNING = "running"
    AWAITING_BATCH = "awaiting_batch"
    COMPLETED = "completed"
    FAILED = "failed"


class Completion(Generic[Out]):
    """Write-once result slot for a single request.

    The handler calls exactly one of :meth:`complete` or :meth:`fail`.
    Resolution may happen on any thread, during or after the handler call.
    """

    __slots__ = ("_future", "_processor", "_timed_out")

    def __init__(self, processor: BatchProcessor) -> None:
        self._future: Future = Future()
        self._processor = processor
        self._timed_out = False

    @property
    def done(self) -> bool:
        return self._future.done()

    def complete(self, value: Out) -> bool:
        """Resolve the request with ``value``.

        Returns:
            bool: False when the request had already timed out and the
            value was dropped.

        Raises:
            RequestAlreadyResolvedError: If the request was already resolved.
        """
        return self._settle(self._future.set_result, value, strict=True)

    def fail(self, error: BaseException) -> bool:
        """Resolve the request with ``error``; the requesting task sees it raised."""
        if not isinstance(error, BaseException):
            raise TypeError(f"fail() expects an exception instance, got {type(error).__name__}")
        return self._settle(self._future.set_exception, error, strict=True)

    def _settle(self, setter: Callable[[Any], None], payload: Any, *, strict: bool) -> bool:
        with self._processor._cond:
            if self._future.done():
                if self._timed_out or not strict:
                    return False
                raise RequestAlreadyResolvedError("Request has already been resolved")
            self._processor._on_resolved()
            setter(payload)
        return True

    def _wait(self, timeout: float | None) -> Out:
        try:
            return self._future.result(timeout=timeout)
        except futures.TimeoutError:
            if self._future.done():
                # The handler resolved the request with a TimeoutError of its own.
                raise
        with self._processor._cond:
            if not self._future.done():
                self._timed_out = True
                self._processor._discard(self)
                self._processor._on_resolved()
                self._future.set_exception(
                    BatchTimeoutError(f"Request was not resolved within {timeout} seconds")
                )
        return self._future.result()


@dataclass(frozen=True, slots=True)
class BatchRequest(Generic[In, Out]):
    """One outstanding ask: the input value and its completion handle.

    Unpacks as ``value, completion``.
    """

    value: In
    completion: Completion[Out] = field(repr=False)

    def __iter__(self) -> Iterator[Any]:
        yield self.value
        yield self.completion

    @property
    def done(self) -> bool:
        return self.completion.done

    def complete(self, value: Out) -> bool:
        return self.completion.complete(value)

    def fail(self, error: BaseException) -> bool:
        return self.completion.fail(error)


@dataclass(slots=True)
class BatchStats:
    """Counters collected during one :meth:`BatchProcessor.run`."""

    batches: int = 0
    requests: int = 0
    batch_sizes: list[int] = field(default_factory=list)
    handler_failures: int = 0
    tasks_completed: int = 0
    tasks_failed: int = 0

    def as_dict(self) -> dict[str, object]:
        return {
            "batches": int(self.batches),
            "requests": int(self.requests),
            "batch_sizes": list(self.batch_sizes),
            "handler_failures": int(self.handler_failures),
            "tasks_completed": int(self.tasks_completed),
            "tasks_failed": int(self.tasks_failed),
        }


class _Task:
    __slots__ = ("index", "body", "future", "state", "thread_id")

    def __init__(self, index: int, body: TaskBody) -> None:
        self.index = index
        self.body = body
        self.future: Future = Future()
        self.state = TaskState.CREATED
        self.thread_id: int | None = None


class _TaskLoader:
    """The ``load`` callable handed to one task body."""

    __slots__ = ("_processor", "_task")

    def __init__(self, processor: BatchProcessor, task: _Task) -> None:
        self._processor = processor
        self._task = task

    def __call__(self, value: Any) -> Any:
        return self._processor._request(self._task, value)


class BatchProcessor(Generic[In, Out, R]):
    """Run task bodies and serve their requests through one batch handler.

    Register a handler with :meth:`handle_batch` and task bodies with
    :meth:`task` (both work as decorators), then call :meth:`run` once.

    Attributes:
        config (BatchConfig): Batch size, worker and timeout settings.
        stats (BatchStats): Counters for the run.
    """

    def __init__(self, handler: BatchHandler | None = None, *, config: BatchConfig | None = None) -> None:
        self.config = config if config is not None else BatchConfig()
        self.config.validate()
        self.stats = BatchStats()
        self._handler = handler
        self._bodies: list[TaskBody] = []
        self._tasks: list[_Task] = []
        self._cond = threading.Condition()
        self._open: list[BatchRequest] = []
        self._runnable = 0
        self._live = 0
        self._started = False

    def handle_batch(self, handler: BatchHandler) -> BatchHandler:
        """Register the batch handler; returns it for decorator use."""
        if self._started:
            raise BatchError("Cannot change the batch handler after run() started")
        self._handler = handler
        return handler

    def task(self, body: TaskBody) -> TaskBody:
        """Register a task body ``body(load) -> result``; returns it."""
        if self._started:
            raise BatchError("Cannot add tasks after run() started")
        if not callable(body):
            raise TypeError(f"Task body must be callable, got {type(body).__name__}")
        self._bodies.append(body)
        return body

    @property
    def task_states(self) -> list[TaskState]:
        with self._cond:
            return [t.state for t in self._tasks]

    def run(self) -> list[Future]:
        """Run every registered task to completion.

        Returns:
            list[Future]: One resolved future per task, in registration
            order, holding the task's result or the exception it raised.

        Raises:
            BatchError: If called twice or if tasks exist without a handler.
        """
        if self._started:
            raise BatchError("BatchProcessor.run() may only be called once")
        if self._bodies and self._handler is None:
            raise BatchError("No batch handler registered; call handle_batch() first")
        self._started = True
        self._tasks = [_Task(i, body) for i, body in enumerate(self._bodies)]
        if not self._tasks:
            return []

        queue = deque(self._tasks)
        workers = min(self.config.max_workers or len(self._tasks), len(self._tasks))
        with self._cond:
            self._live = len(self._tasks)
            # Workers count as runnable before their threads start.
            self._runnable = workers
        log.debug("Starting %d task(s) on %d worker(s)", len(self._tasks), workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="spdxflow-batch") as pool:
            for _ in range(workers):
                pool.submit(self._worker, queue)
            self._coordinate()

        log.debug("Batch run finished: %s", self.stats.as_dict())
        return [t.future for t in self._tasks]

    # -- coordinator side -------------------------------------------------

    def _coordinate(self) -> None:
        max_size = self.config.max_batch_size
        while True:
            with self._cond:
                while True:
                    if self._live == 0:
                        return
                    if self._open and (
                        self._runnable == 0 or (max_size is not None and len(self._open) >= max_size)
                    ):
                        break
                    self._cond.wait()
                if max_size is not None:
                    pending = self._open[:max_size]
                    self._open = self._open[max_size:]
                else:
                    pending, self._open = self._open, []
                self.stats.batches += 1
                self.stats.batch_sizes.append(len(pending))
            self._dispatch(tuple(pending))

    def _dispatch(self, requests: tuple[BatchRequest, ...]) -> None:
        log.debug("Flushing batch of %d request(s)", len(requests))
        handler = self._handler
        if handler is None:
            raise BatchError("No batch handler registered; call handle_batch() first")
        try:
            handler(requests)
        except Exception as exc:  # noqa: BLE001
            with self._cond:
                self.stats.handler_failures += 1
            log.warning(
                "Batch handler failed for a batch of %d request(s): %s", len(requests), exc, exc_info=True
            )
            for request in requests:
                error = BatchHandlerError(f"Batch handler failed: {exc}")
                error.__cause__ = exc
                request.completion._settle(request.completion._future.set_exception, error, strict=False)
            return
        unresolved = sum(1 for r in requests if not r.done)
        if unresolved:
            log.warning(
                "Batch handler returned with %d of %d request(s) unresolved; "
                "their tasks stay suspended until resolved",
                unresolved,
                len(requests),
            )

    def _on_resolved(self) -> None:
        # Caller holds self._cond.
        self._runnable += 1
        self._cond.notify_all()

    def _discard(self, completion: Completion) -> None:
        # Caller holds self._cond.
        self._open = [r for r in self._open if r.completion is not completion]

    # -- worker side ------------------------------------------------------

    def _worker(self, queue: deque) -> None:
        try:
            while True:
                with self._cond:
                    if not queue:
                        return
                    task = queue.popleft()
                    task.state = TaskState.RUNNING
                    task.thread_id = threading.get_ident()
                self._run_task(task)
        finally:
            with self._cond:
                self._runnable -= 1
                self._cond.notify_all()

    def _run_task(self, task: _Task) -> None:
        loader = _TaskLoader(self, task)
        # fail() accepts any BaseException; it settles this task, not the worker.
        try:
            value = task.body(loader)
        except BaseException as exc:  # noqa: BLE001
            outcome_state = TaskState.FAILED
            task.future.set_exception(exc)
        else:
            outcome_state = TaskState.COMPLETED
            task.future.set_result(value)
        with self._cond:
            task.state = outcome_state
            if outcome_state is TaskState.COMPLETED:
                self.stats.tasks_completed += 1
            else:
                self.stats.tasks_failed += 1
            self._live -= 1
            self._cond.notify_all()

    def _request(self, task: _Task, value: Any) -> Any:
        completion: Completion = Completion(self)
        with self._cond:
            if task.state is not TaskState.RUNNING:
                raise LoaderClosedError(f"Loader of task {task.index} is not usable in state {task.state.value}")
            if task.thread_id != threading.get_ident():
                raise LoaderClosedError(f"Loader of task {task.index} may only be called from that task")
            task.state = TaskState.AWAITING_BATCH
            self._open.append(BatchRequest(value, completion))
            self.stats.requests += 1
            self._runnable -= 1
            self._cond.notify_all()
        try:
            return completion._wait(self.config.request_timeout)
        finally:
            with self._cond:
                task.state = TaskState.RUNNING


@dataclass(frozen=True, slots=True)
class Outcome(Generic[R]):
    """Value-or-error view of one task's future."""

    value: R | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> R:
        """Return the value or raise the stored error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def outcomes(results: Iterable[Future]) -> list[Outcome]:
    """Convert finished task futures into :class:`Outcome` records."""
    converted = []
    for fut in results:
        error = fut.exception()
        if error is not None:
            converted.append(Outcome(error=error))
        else:
            converted.append(Outcome(value=fut.result()))
    return converted


def batch(
    handler: BatchHandler,
    tasks: Iterable[TaskBody],
    *,
    config: BatchConfig | None = None,
) -> list[Future]:
    """Run ``tasks`` against ``handler`` and return one future per task.

    Args:
        handler (Callable[[Sequence[BatchRequest]], Any]): Resolves every
            request of a batch via ``complete``/``fail``.
        tasks (Iterable[Callable[[load], R]]): Task bodies; each receives a
            ``load(value) -> Out`` callable.
        config (BatchConfig | None): Optional batching limits.

    Returns:
        list[Future]: Futures in task order, all finished.
    """
    processor: BatchProcessor = BatchProcessor(handler, config=config)
    for body in tasks:
        processor.task(body)
    return processor.run()
