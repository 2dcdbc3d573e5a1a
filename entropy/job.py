"""Jobs for asynchronous processing and the queue interface that holds them."""

from __future__ import annotations

import abc
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

MIN_RETRY_BACKOFF = timedelta(seconds=5)

_PROPAGATE = (KeyboardInterrupt, SystemExit, GeneratorExit)


class JobStatus(str, Enum):
    """Progress of a job."""

    DONE = "DONE"
    PANIC = "PANIC"
    FAILED = "FAILED"
    PENDING = "PENDING"


class _JobError(Exception):
    default_message = ""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        text = f"{self.default_message}: {detail}" if detail else self.default_message
        super().__init__(text)


class JobExistsError(_JobError):
    """A job with the same id is already queued."""

    default_message = "job with id exists"


class InvalidJobError(_JobError):
    """The job specification is not valid."""

    default_message = "job is not valid"


class KindExistsError(_JobError):
    """A handler for the kind is already registered."""

    default_message = "handler for given kind exists"


class UnknownKindError(_JobError):
    """No handler is registered for the kind."""

    default_message = "job kind is invalid"


class CancelToken:
    """A cancellation signal shared by cooperating threads.

    Cancelling a token cancels every token created with it as parent.
    """

    def __init__(self, parent: CancelToken | None = None) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._reason = ""
        self._children: list[CancelToken] = []
        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: CancelToken) -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
            reason = self._reason
        child.cancel(reason)

    def cancel(self, reason: str = "context canceled") -> None:
        """Cancel this token and its children; later calls do nothing."""
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            children, self._children = self._children, []
        for child in children:
            child.cancel(reason)

    def is_cancelled(self) -> bool:
        """True once the token has been cancelled."""
        return self._event.is_set()

    @property
    def reason(self) -> str:
        """Why the token was cancelled, or an empty string."""
        return self._reason

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or the timeout passes; True if cancelled."""
        return self._event.wait(timeout)


class RetryableError(Exception):
    """Raised by a job function to ask for another attempt after a delay.

    The delay is never shorter than five seconds.
    """

    def __init__(
        self,
        cause: BaseException | None = None,
        retry_after: timedelta = timedelta(0),
    ) -> None:
        super().__init__(cause, retry_after)
        self.cause = cause
        self.retry_after = retry_after

    def __str__(self) -> str:
        return f"retryable-error: {'<nil>' if self.cause is None else self.cause}"

    def with_cause(self, cause: BaseException) -> RetryableError:
        """Return a copy with the cause set."""
        return RetryableError(cause, self.retry_after)

    def backoff(self) -> timedelta:
        """The delay to wait before the next attempt."""
        return max(self.retry_after, MIN_RETRY_BACKOFF)


JobFn = Callable[[CancelToken | None, "Job"], Any]


@dataclass
class Job:
    """The specification of an asynchronous job and its progress so far."""

    id: str = ""
    kind: str = ""
    run_at: datetime | None = None
    payload: bytes = b""

    status: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    result: bytes | None = None
    attempts_done: int = 0
    last_attempt_at: datetime | None = None
    last_error: str = ""

    def sanitise(self) -> None:
        """Normalise the id and kind and reset the progress for a new job."""
        now = datetime.now(timezone.utc)

        self.id = self.id.strip()
        self.kind = self.kind.lower().strip()

        if not self.id:
            raise InvalidJobError("job id must be set")
        if not self.kind:
            raise InvalidJobError("job kind must be set")

        self.status = JobStatus.PENDING
        self.created_at = now
        self.updated_at = now
        if self.run_at is None:
            self.run_at = now

        self.attempts_done = 0
        self.last_attempt_at = None
        self.last_error = ""

    def attempt(self, ctx: CancelToken | None, now: datetime, fn: JobFn) -> None:
        """Call fn for this job once and record the outcome in place.

        fn is called with the token and a copy of the job and returns the
        result. A RetryableError keeps the job pending; any other Exception
        fails it. Anything raised outside the Exception hierarchy is treated
        as a crash and marks the job PANIC.
        """
        try:
            if ctx is not None and ctx.is_cancelled():
                self.status = JobStatus.PENDING
                self.run_at = now + MIN_RETRY_BACKOFF
                self.last_error = f"cancelled: {ctx.reason}"
            else:
                try:
                    result = fn(ctx, replace(self))
                except RetryableError as retry:
                    self.run_at = now + retry.backoff()
                    self.last_error = str(retry)
                    self.status = JobStatus.PENDING
                except Exception as exc:
                    self.last_error = str(exc)
                    self.status = JobStatus.FAILED
                else:
                    self.result = result
                    self.status = JobStatus.DONE
        except _PROPAGATE:
            raise
        except BaseException as crash:
            self.last_error = f"panic: {crash}"
            self.status = JobStatus.PANIC
        finally:
            self.attempts_done += 1
            self.last_attempt_at = now
            self.updated_at = now


DequeueFn = Callable[[CancelToken | None, Job], Job]


class JobQueue(abc.ABC):
    """A queue that releases jobs only once their run time has come."""

    @abc.abstractmethod
    def enqueue(self, ctx: CancelToken | None, jobs: Sequence[Job]) -> None:
        """Add all the jobs, or none of them."""

    @abc.abstractmethod
    def dequeue(self, ctx: CancelToken | None, kinds: Sequence[str], fn: DequeueFn) -> None:
        """Take one ready job of the given kinds and hand it to fn.

        The job stays locked until fn returns the updated job.
        """