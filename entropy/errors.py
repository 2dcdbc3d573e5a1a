"""Error values shared by all entropy components."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any


def _sprintf(fmt: str, args: tuple[Any, ...]) -> str:
    if not args:
        return fmt
    return fmt.replace("%v", "%s") % args


def _chain(err: BaseException) -> Iterator[BaseException]:
    """Yield the error and every error it was raised from."""
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


class EntropyError(Exception):
    """An error with a category code, a user-facing message and a cause."""

    def __init__(self, code: str, message: str = "", cause: str = "") -> None:
        super().__init__(code, message, cause)
        self.code = code
        self.message = message
        self.cause = cause

    def with_causef(self, fmt: str, *args: Any) -> EntropyError:
        """Return a copy with the cause set."""
        return EntropyError(self.code, self.message, _sprintf(fmt, args))

    def with_msgf(self, fmt: str, *args: Any) -> EntropyError:
        """Return a copy with the message set."""
        return EntropyError(self.code, _sprintf(fmt, args), self.cause)

    def matches(self, other: BaseException) -> bool:
        """True if other has the same code; unknown errors count as internal."""
        if isinstance(other, EntropyError):
            return other.code == self.code
        return self.code == ERR_INTERNAL.code

    def __str__(self) -> str:
        msg = self.code
        if self.message:
            msg += ": " + self.message
        if self.cause:
            msg += ": " + self.cause
        return msg

    def __repr__(self) -> str:
        return (
            f"EntropyError(code={self.code!r}, message={self.message!r}, "
            f"cause={self.cause!r})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EntropyError):
            return NotImplemented
        return (self.code, self.message, self.cause) == (
            other.code,
            other.message,
            other.cause,
        )

    def __hash__(self) -> int:
        return hash((self.code, self.message, self.cause))


ERR_INVALID = EntropyError("bad_request", "request is not valid")
ERR_NOT_FOUND = EntropyError("not_found", "requested entity not found")
ERR_CONFLICT = EntropyError("conflict", "an entity with conflicting identifier exists")
ERR_INTERNAL = EntropyError("internal_error", "some unexpected error occurred")
ERR_UNSUPPORTED = EntropyError("unsupported", "requested feature is not supported")


def is_error(err: BaseException | None, target: Any) -> bool:
    """Report whether err, or any error it was raised from, matches target.

    target may be an error value or an exception class.
    """
    if err is None or target is None:
        return err is target
    for current in _chain(err):
        if isinstance(target, type):
            if isinstance(current, target):
                return True
            continue
        if current is target or current == target:
            return True
        matcher = getattr(current, "matches", None)
        if callable(matcher) and matcher(target):
            return True
    return False


def errorf(fmt: str, *args: Any) -> EntropyError:
    """Return an internal error with a formatted message."""
    return ERR_INTERNAL.with_msgf(fmt, *args)


def one_of(err: BaseException, *args: Any) -> bool:
    """True if err matches any of the given errors."""
    return any(is_error(err, other) for other in args)


def e(err: BaseException) -> EntropyError:
    """Convert any error to an EntropyError; unknown errors become internal."""
    for current in _chain(err):
        if isinstance(current, EntropyError):
            return current
    return ERR_INTERNAL.with_causef(str(err))