"""Asynchronous job processing on top of a job queue."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from entropy.job import (
    CancelToken,
    Job,
    JobFn,
    JobQueue,
    KindExistsError,
    RetryableError,
    UnknownKindError,
)

MIN_POLL_INTERVAL = timedelta(milliseconds=100)
DEFAULT_POLL_INTERVAL = timedelta(seconds=1)
_INVALID_KIND_BACKOFF = timedelta(minutes=5)

Option = Callable[["Worker"], None]


def _nop_logger() -> logging.Logger:
    logger = logging.getLogger("entropy.worker.nop")
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger


def with_job_kind(kind: str, fn: JobFn | None) -> Option:
    """Option that registers fn as the handler for kind."""

    def apply(worker: Worker) -> None:
        worker.register(kind, fn)

    return apply


def with_logger(logger: logging.Logger | None) -> Option:
    """Option that sets the logger; None silences logging."""

    def apply(worker: Worker) -> None:
        worker.logger = logger if logger is not None else _nop_logger()

    return apply


def with_run_config(workers: int, poll_interval: timedelta | float) -> Option:
    """Option that sets the number of worker threads and the poll interval.

    Zero workers means one; the poll interval is at least 100ms. A plain
    number is taken as seconds.
    """
    if not isinstance(poll_interval, timedelta):
        poll_interval = timedelta(seconds=poll_interval)

    def apply(worker: Worker) -> None:
        worker.workers = workers or 1
        worker.poll_interval = max(poll_interval, MIN_POLL_INTERVAL)

    return apply


class Worker:
    """Runs registered job handlers for jobs taken from a queue."""

    def __init__(self, queue: JobQueue, *args: Option) -> None:
        self.queue = queue
        self.workers = 1
        self.poll_interval = DEFAULT_POLL_INTERVAL
        self.logger: logging.Logger = _nop_logger()
        self._lock = threading.RLock()
        self._handlers: dict[str, JobFn | None] = {}
        for option in (with_logger(None), with_run_config(1, DEFAULT_POLL_INTERVAL), *args):
            option(self)

    def register(self, kind: str, fn: JobFn | None) -> None:
        """Register the handler for a job kind; a kind can be registered once."""
        with self._lock:
            if kind in self._handlers:
                raise KindExistsError(f"kind '{kind}'")
            self._handlers[kind] = fn

    def enqueue(self, ctx: CancelToken | None, *args: Job) -> None:
        """Sanitise the jobs and put them all on the queue."""
        prepared = []
        for job in args:
            candidate = replace(job)
            candidate.sanitise()
            with self._lock:
                known = candidate.kind in self._handlers
            if not known:
                raise UnknownKindError(f"kind '{candidate.kind}'")
            prepared.append(candidate)
        self.queue.enqueue(ctx, prepared)

    def run(self, ctx: CancelToken | None = None) -> None:
        """Process ready jobs until ctx is cancelled; blocks until then."""
        token = CancelToken(parent=ctx)
        threads = [
            threading.Thread(
                target=self._run_worker,
                args=(token, worker_id),
                name=f"entropy-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(self.workers)
        ]
        try:
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
        finally:
            token.cancel()
        self.logger.info("all workers-threads exited")

    def _run_worker(self, token: CancelToken, worker_id: int) -> None:
        interval = self.poll_interval.total_seconds()
        while not token.wait(interval):
            kinds = self._kinds()
            if not kinds:
                self.logger.warning("no job-handler registered, skipping dequeue")
                continue
            self.logger.debug("looking for a job", extra={"kinds": kinds})
            try:
                self.queue.dequeue(token, kinds, self._handle_job)
            except Exception as exc:
                self.logger.error("dequeue failed", extra={"error": str(exc)})
        self.logger.info("worker exited", extra={"worker_id": worker_id})

    def _handle_job(self, ctx: CancelToken | None, job: Job) -> Job:
        self.logger.info(
            "got a pending job",
            extra={"job_id": job.id, "job_kind": job.kind, "status": str(job.status)},
        )
        with self._lock:
            known = job.kind in self._handlers
            fn = self._handlers.get(job.kind)
        if not known:
            raise RetryableError(Exception("job kind is invalid"), _INVALID_KIND_BACKOFF)

        attempted = replace(job)
        attempted.attempt(ctx, datetime.now(timezone.utc), fn)

        self.logger.info(
            "job attempted",
            extra={
                "job_id": attempted.id,
                "job_kind": attempted.kind,
                "status": str(attempted.status),
                "last_error": attempted.last_error,
            },
        )
        return attempted

    def _kinds(self) -> list[str]:
        with self._lock:
            return list(self._handlers)