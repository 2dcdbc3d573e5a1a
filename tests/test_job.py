from datetime import datetime, timedelta, timezone

import pytest

from entropy.job import (
    CancelToken,
    InvalidJobError,
    Job,
    JobExistsError,
    JobQueue,
    JobStatus,
    KindExistsError,
    RetryableError,
    UnknownKindError,
)

CREATED_AT = datetime.fromtimestamp(1654081526, tz=timezone.utc)
FROZEN_TIME = datetime.fromtimestamp(1654082526, tz=timezone.utc)


class _Panic(BaseException):
    pass


def _base_job(**overrides):
    values = dict(
        updated_at=CREATED_AT,
        attempts_done=0,
        last_attempt_at=FROZEN_TIME,
        result=None,
        last_error="",
    )
    values.update(overrides)
    return Job(**values)


def _deadline_exceeded():
    token = CancelToken()
    token.cancel("context deadline exceeded")
    return token


def _returns_nothing(ctx, job):
    return None


def _panics(ctx, job):
    raise _Panic("blown up")


def _fails(ctx, job):
    raise RuntimeError("a non-retryable error occurred")


def _retries(ctx, job):
    raise RetryableError(
        cause=RuntimeError("some retryable error occurred"),
        retry_after=timedelta(seconds=10),
    )


def _succeeds(ctx, job):
    return b"The answer to life is 42"


@pytest.mark.parametrize(
    "ctx, job, fn, want",
    [
        pytest.param(
            _deadline_exceeded(),
            _base_job(),
            _returns_nothing,
            Job(
                status=JobStatus.PENDING,
                run_at=FROZEN_TIME + timedelta(seconds=5),
                updated_at=FROZEN_TIME,
                attempts_done=1,
                last_attempt_at=FROZEN_TIME,
                result=None,
                last_error="cancelled: context deadline exceeded",
            ),
            id="ContextCancelled",
        ),
        pytest.param(
            None,
            _base_job(),
            _panics,
            Job(
                status=JobStatus.PANIC,
                updated_at=FROZEN_TIME,
                attempts_done=1,
                last_attempt_at=FROZEN_TIME,
                result=None,
                last_error="panic: blown up",
            ),
            id="Panic",
        ),
        pytest.param(
            None,
            _base_job(),
            _fails,
            Job(
                status=JobStatus.FAILED,
                updated_at=FROZEN_TIME,
                attempts_done=1,
                last_attempt_at=FROZEN_TIME,
                result=None,
                last_error="a non-retryable error occurred",
            ),
            id="NonRetryableError",
        ),
        pytest.param(
            None,
            _base_job(),
            _retries,
            Job(
                status=JobStatus.PENDING,
                run_at=FROZEN_TIME + timedelta(seconds=10),
                updated_at=FROZEN_TIME,
                attempts_done=1,
                last_attempt_at=FROZEN_TIME,
                result=None,
                last_error="retryable-error: some retryable error occurred",
            ),
            id="RetryableError",
        ),
        pytest.param(
            None,
            _base_job(),
            _succeeds,
            Job(
                status=JobStatus.DONE,
                updated_at=FROZEN_TIME,
                attempts_done=1,
                last_attempt_at=FROZEN_TIME,
                result=b"The answer to life is 42",
                last_error="",
            ),
            id="Successful_FirstAttempt",
        ),
        pytest.param(
            None,
            _base_job(
                attempts_done=1,
                last_error="attempt 1 failed with some retryable error",
            ),
            _succeeds,
            Job(
                status=JobStatus.DONE,
                updated_at=FROZEN_TIME,
                attempts_done=2,
                last_attempt_at=FROZEN_TIME,
                result=b"The answer to life is 42",
                last_error="attempt 1 failed with some retryable error",
            ),
            id="Successful_SecondAttempt",
        ),
    ],
)
def test_job_attempt(ctx, job, fn, want):
    job.attempt(ctx if ctx is not None else CancelToken(), FROZEN_TIME, fn)
    assert job == want


def test_attempt_passes_a_copy_of_the_job():
    seen = []

    def fn(ctx, job):
        seen.append(job)
        job.id = "changed"
        return b"ok"

    job = Job(id="job-1", kind="test")
    job.attempt(None, FROZEN_TIME, fn)
    assert seen[0].kind == "test"
    assert job.id == "job-1"


def test_attempt_lets_keyboard_interrupt_through_but_counts_it():
    def fn(ctx, job):
        raise KeyboardInterrupt

    job = Job(id="job-1", kind="test")
    with pytest.raises(KeyboardInterrupt):
        job.attempt(None, FROZEN_TIME, fn)
    assert job.attempts_done == 1


def test_sanitise_normalises_and_resets():
    run_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
    job = Job(
        id="  job-1 ",
        kind=" TEST ",
        run_at=run_at,
        attempts_done=3,
        last_attempt_at=FROZEN_TIME,
        last_error="boom",
    )
    before = datetime.now(timezone.utc)
    job.sanitise()
    after = datetime.now(timezone.utc)

    assert job.id == "job-1"
    assert job.kind == "test"
    assert job.status == JobStatus.PENDING
    assert job.run_at == run_at
    assert before <= job.created_at <= after
    assert job.updated_at == job.created_at
    assert job.attempts_done == 0
    assert job.last_attempt_at is None
    assert job.last_error == ""


def test_sanitise_sets_missing_run_at_to_now():
    job = Job(id="job-1", kind="test")
    job.sanitise()
    assert job.run_at == job.created_at


@pytest.mark.parametrize(
    "job, message",
    [
        (Job(id="  ", kind="test"), "job is not valid: job id must be set"),
        (Job(id="job-1", kind=" "), "job is not valid: job kind must be set"),
    ],
)
def test_sanitise_rejects_invalid_jobs(job, message):
    with pytest.raises(InvalidJobError) as info:
        job.sanitise()
    assert str(info.value) == message


def test_sentinel_error_messages():
    assert str(JobExistsError()) == "job with id exists"
    assert str(KindExistsError("kind 'test'")) == "handler for given kind exists: kind 'test'"
    assert str(UnknownKindError()) == "job kind is invalid"


def test_retryable_error_backoff_has_minimum():
    assert RetryableError(retry_after=timedelta(seconds=3)).backoff() == timedelta(seconds=5)
    assert RetryableError(retry_after=timedelta(seconds=10)).backoff() == timedelta(seconds=10)


def test_retryable_error_with_cause_copies():
    base = RetryableError(retry_after=timedelta(seconds=30))
    cause = RuntimeError("job creation failed")
    derived = base.with_cause(cause)
    assert derived.cause is cause
    assert derived.retry_after == timedelta(seconds=30)
    assert base.cause is None
    assert str(base) == "retryable-error: <nil>"
    assert str(derived) == "retryable-error: job creation failed"


def test_cancel_token_lifecycle():
    token = CancelToken()
    assert token.is_cancelled() is False
    assert token.wait(0.01) is False
    token.cancel()
    assert token.is_cancelled() is True
    assert token.wait(0.01) is True
    assert token.reason == "context canceled"


def test_cancel_token_keeps_first_reason():
    token = CancelToken()
    token.cancel("first")
    token.cancel("second")
    assert token.reason == "first"


def test_cancel_token_propagates_to_children():
    parent = CancelToken()
    child = CancelToken(parent)
    assert child.is_cancelled() is False
    parent.cancel("stop")
    assert child.is_cancelled() is True
    assert child.reason == "stop"

    late_child = CancelToken(parent)
    assert late_child.is_cancelled() is True


def test_cancelling_child_leaves_parent_running():
    parent = CancelToken()
    child = CancelToken(parent)
    child.cancel()
    assert parent.is_cancelled() is False


def test_job_queue_is_abstract():
    with pytest.raises(TypeError):
        JobQueue()

    class _Partial(JobQueue):
        def enqueue(self, ctx, jobs):
            return None

    with pytest.raises(TypeError):
        _Partial()


def test_job_queue_subclass_hands_jobs_to_fn():
    class _ListQueue(JobQueue):
        def __init__(self):
            self.jobs = []

        def enqueue(self, ctx, jobs):
            self.jobs.extend(jobs)

        def dequeue(self, ctx, kinds, fn):
            for index, job in enumerate(self.jobs):
                if job.kind in kinds:
                    self.jobs[index] = fn(ctx, job)
                    return

    def handle(ctx, job):
        job.attempt(ctx, FROZEN_TIME, _succeeds)
        return job

    queue = _ListQueue()
    queue.enqueue(None, [Job(id="a", kind="other"), Job(id="b", kind="test")])
    queue.dequeue(None, ["test"], handle)
    assert queue.jobs[0].status == ""
    assert queue.jobs[1].status == JobStatus.DONE
    assert queue.jobs[1].result == b"The answer to life is 42"