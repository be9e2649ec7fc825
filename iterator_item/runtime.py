# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Runtime support imported by emitted modules (as `_rt`).

Suspend/resume primitive:
  Python generators are the underlying resumable computations. This module
  only adapts them to the black-box interface the emitted wrappers use:

    create(body, *inputs)          -> SuspendableComputation
    resume(computation, input)     -> Yielded(value) | COMPLETED

  Resuming a finished computation keeps returning COMPLETED, so exhaustion is
  idempotent. Re-entrant resumption raises ConcurrentResumeError. An exception
  raised by the body marks the computation finished and propagates unchanged.

Outcome values:
  `Ok(value)` / `Err(error)` model `Result`, `Some(value)` / `None` model
  `Option`. `is_residual` / `residual` / `output` implement the `?` protocol
  on top of them.

Everything else here backs the std method/macro mapping done by the emitter.
"""

from __future__ import annotations

import copy
import itertools
import math
import re
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Callable, Generator, Generic, Iterable, Iterator, Optional, Tuple, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


class Panic(Exception):
	"""Raised by `panic!`, failed `assert!` and failed `unwrap()` calls."""


class ConcurrentResumeError(RuntimeError):
	"""A computation was resumed while it was already running."""


# Outcome values -------------------------------------------------------


@dataclass(frozen=True)
class Ok(Generic[T]):
	value: T


@dataclass(frozen=True)
class Err(Generic[E]):
	error: E


@dataclass(frozen=True)
class Some(Generic[T]):
	value: T


Result = Union[Ok[T], Err[E]]
Option = Optional[Some[T]]


def _outcome_error(value: Any) -> TypeError:
	return TypeError(f"`?` needs a Result or an Option, got {type(value).__name__}")


def is_residual(value: Any) -> bool:
	"""True for `Err(_)` and `None`, the values `?` propagates."""
	if value is None or isinstance(value, Err):
		return True
	if isinstance(value, (Ok, Some)):
		return False
	raise _outcome_error(value)


def residual(value: Any) -> Any:
	if not is_residual(value):
		raise ValueError(f"{value!r} is not a residual")
	return value


def output(value: Any) -> Any:
	"""Payload of `Ok(_)` / `Some(_)`; the value of a successful `?`."""
	if isinstance(value, (Ok, Some)):
		return value.value
	raise _outcome_error(value)


def is_some(value: Any) -> bool:
	return isinstance(value, Some)


def is_none(value: Any) -> bool:
	return value is None


def is_ok(value: Any) -> bool:
	return isinstance(value, Ok)


def is_err(value: Any) -> bool:
	return isinstance(value, Err)


def unwrap(value: Any) -> Any:
	if isinstance(value, (Ok, Some)):
		return value.value
	if value is None:
		raise Panic("called `Option::unwrap()` on a `None` value")
	if isinstance(value, Err):
		raise Panic(f"called `Result::unwrap()` on an `Err` value: {value.error!r}")
	raise _outcome_error(value)


def expect(value: Any, message: str) -> Any:
	if isinstance(value, (Ok, Some)):
		return value.value
	if isinstance(value, Err):
		raise Panic(f"{message}: {value.error!r}")
	if value is None:
		raise Panic(message)
	raise _outcome_error(value)


def unwrap_or(value: Any, default: Any) -> Any:
	if isinstance(value, (Ok, Some)):
		return value.value
	if value is None or isinstance(value, Err):
		return default
	raise _outcome_error(value)


# Suspendable computations ---------------------------------------------


@dataclass(frozen=True)
class Yielded(Generic[T]):
	value: T


class Completed:
	"""The computation ran to completion. Use the COMPLETED singleton."""

	_instance: Optional["Completed"] = None

	def __new__(cls) -> "Completed":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __repr__(self) -> str:
		return "COMPLETED"


COMPLETED = Completed()
ResumeResult = Union[Yielded[Any], Completed]


class SuspendableComputation:
	"""One resumable body invocation, owned by exactly one wrapper."""

	__slots__ = ("_gen", "_started", "_running", "_finished")

	def __init__(self, gen: Generator[Any, Any, None]) -> None:
		self._gen = gen
		self._started = False
		self._running = False
		self._finished = False

	@property
	def finished(self) -> bool:
		return self._finished

	def resume(self, value: Any = None) -> ResumeResult:
		if self._finished:
			return COMPLETED
		if self._running:
			raise ConcurrentResumeError("computation resumed while it is already running")
		self._running = True
		try:
			out = self._gen.send(value if self._started else None)
		except StopIteration:
			self._finished = True
			return COMPLETED
		except BaseException:
			self._finished = True
			raise
		finally:
			self._started = True
			self._running = False
		return Yielded(out)

	def close(self) -> None:
		self._finished = True
		self._gen.close()


class AsyncSuspendableComputation:
	"""Async twin of SuspendableComputation, backed by an async generator."""

	__slots__ = ("_agen", "_started", "_running", "_finished")

	def __init__(self, agen: AsyncGenerator[Any, Any]) -> None:
		self._agen = agen
		self._started = False
		self._running = False
		self._finished = False

	@property
	def finished(self) -> bool:
		return self._finished

	async def resume(self, value: Any = None) -> ResumeResult:
		if self._finished:
			return COMPLETED
		if self._running:
			raise ConcurrentResumeError("computation resumed while it is already running")
		self._running = True
		try:
			out = await self._agen.asend(value if self._started else None)
		except StopAsyncIteration:
			self._finished = True
			return COMPLETED
		except BaseException:
			self._finished = True
			raise
		finally:
			self._started = True
			self._running = False
		return Yielded(out)


def create(body: Callable[..., Generator[Any, Any, None]], *inputs: Any) -> SuspendableComputation:
	gen = body(*inputs)
	if not hasattr(gen, "send"):
		raise TypeError(f"{body!r} did not produce a generator")
	return SuspendableComputation(gen)


def resume(computation: SuspendableComputation, value: Any = None) -> ResumeResult:
	return computation.resume(value)


def create_async(body: Callable[..., AsyncGenerator[Any, Any]], *inputs: Any) -> AsyncSuspendableComputation:
	agen = body(*inputs)
	if not hasattr(agen, "asend"):
		raise TypeError(f"{body!r} did not produce an async generator")
	return AsyncSuspendableComputation(agen)


async def resume_async(computation: AsyncSuspendableComputation, value: Any = None) -> ResumeResult:
	return await computation.resume(value)


def size_hint(hint: Any) -> Tuple[int, Optional[int]]:
	"""Normalize a `#[size_hint]` value: `(lower, Some(upper) | None)`."""
	lower, upper = hint
	if isinstance(upper, Some):
		upper = upper.value
	return int(lower), upper


# std mapping helpers --------------------------------------------------


def div(a: Any, b: Any) -> Any:
	"""Division with Rust semantics: integers truncate toward zero."""
	if isinstance(a, int) and isinstance(b, int) and not isinstance(a, bool):
		if b == 0:
			raise Panic("attempt to divide by zero")
		q = abs(a) // abs(b)
		return q if (a >= 0) == (b >= 0) else -q
	return a / b


def rem(a: Any, b: Any) -> Any:
	"""Remainder with Rust semantics: the result takes the sign of the dividend."""
	if isinstance(a, int) and isinstance(b, int) and not isinstance(a, bool):
		if b == 0:
			raise Panic("attempt to calculate the remainder with a divisor of zero")
		return a - b * div(a, b)
	return math.fmod(a, b)


def clone(value: T) -> T:
	return copy.deepcopy(value)


def to_string(value: Any) -> str:
	if isinstance(value, bool):
		return "true" if value else "false"
	return str(value)


def next_item(iterator: Iterator[T]) -> Option[T]:
	try:
		return Some(next(iterator))
	except StopIteration:
		return None


def pop(items: list) -> Option[Any]:
	return Some(items.pop()) if items else None


def get(items: Any, index: Any) -> Option[Any]:
	try:
		return Some(items[index])
	except (IndexError, KeyError):
		return None


def rev(items: Iterable[T]) -> Iterator[T]:
	try:
		return reversed(items)  # type: ignore[call-overload]
	except TypeError:
		return reversed(list(items))


def take(items: Iterable[T], n: int) -> Iterator[T]:
	return itertools.islice(items, n)


def skip(items: Iterable[T], n: int) -> Iterator[T]:
	return itertools.islice(items, n, None)


def count(items: Iterable[Any]) -> int:
	return sum(1 for _ in items)


_DEBUG_HOLE = re.compile(r"\{:\?\}")


def fmt(template: str, *args: Any) -> str:
	"""`format!`-style formatting for positional `{}` / `{:?}` holes."""
	return _DEBUG_HOLE.sub("{!r}", template).format(*(to_string(a) if isinstance(a, bool) else a for a in args))


def panic(template: Optional[str] = None, *args: Any) -> None:
	if template is None:
		raise Panic("explicit panic")
	raise Panic(fmt(template, *args))


def assert_(condition: bool, template: Optional[str] = None, *args: Any) -> None:
	if not condition:
		raise Panic(fmt(template, *args) if template is not None else "assertion failed")


__all__ = [
	"AsyncSuspendableComputation",
	"COMPLETED",
	"Completed",
	"ConcurrentResumeError",
	"Err",
	"Ok",
	"Option",
	"Panic",
	"Result",
	"Some",
	"SuspendableComputation",
	"Yielded",
	"create",
	"create_async",
	"is_residual",
	"output",
	"residual",
	"resume",
	"resume_async",
	"size_hint",
]
