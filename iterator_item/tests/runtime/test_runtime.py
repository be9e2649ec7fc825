# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import asyncio

import pytest

from iterator_item import runtime as rt


def _counter(n: int):
	for i in range(n):
		yield i


def test_resume_yields_then_completes_idempotently() -> None:
	comp = rt.create(_counter, 2)
	assert rt.resume(comp) == rt.Yielded(0)
	assert rt.resume(comp) == rt.Yielded(1)
	assert rt.resume(comp) is rt.COMPLETED
	assert rt.resume(comp) is rt.COMPLETED
	assert comp.finished


def test_completed_is_a_singleton() -> None:
	assert rt.Completed() is rt.COMPLETED
	assert repr(rt.COMPLETED) == "COMPLETED"


def test_create_rejects_plain_functions() -> None:
	with pytest.raises(TypeError):
		rt.create(lambda: 1)


def test_body_exception_propagates_and_finishes() -> None:
	def body():
		yield 1
		raise KeyError("boom")

	comp = rt.create(body)
	assert rt.resume(comp) == rt.Yielded(1)
	with pytest.raises(KeyError):
		rt.resume(comp)
	assert rt.resume(comp) is rt.COMPLETED


def test_reentrant_resume_is_rejected() -> None:
	holder: list[rt.SuspendableComputation] = []

	def body():
		yield rt.resume(holder[0])

	comp = rt.create(body)
	holder.append(comp)
	with pytest.raises(rt.ConcurrentResumeError):
		rt.resume(comp)
	assert rt.resume(comp) is rt.COMPLETED


def test_async_computation() -> None:
	async def body(n: int):
		for i in range(n):
			await asyncio.sleep(0)
			yield i

	async def drain() -> list:
		comp = rt.create_async(body, 2)
		out = []
		while True:
			state = await rt.resume_async(comp)
			if state is rt.COMPLETED:
				break
			out.append(state.value)
		assert await rt.resume_async(comp) is rt.COMPLETED
		return out

	assert asyncio.run(drain()) == [0, 1]


def test_question_mark_protocol() -> None:
	assert not rt.is_residual(rt.Ok(1))
	assert not rt.is_residual(rt.Some(1))
	assert rt.is_residual(rt.Err("e"))
	assert rt.is_residual(None)
	assert rt.residual(rt.Err("e")) == rt.Err("e")
	assert rt.output(rt.Ok(3)) == 3
	with pytest.raises(TypeError):
		rt.is_residual(3)
	with pytest.raises(ValueError):
		rt.residual(rt.Ok(1))


def test_unwrap_family() -> None:
	assert rt.unwrap(rt.Some(2)) == 2
	assert rt.unwrap_or(None, 7) == 7
	assert rt.unwrap_or(rt.Err("x"), 7) == 7
	with pytest.raises(rt.Panic, match="on a `None` value"):
		rt.unwrap(None)
	with pytest.raises(rt.Panic, match="^nope: 'bad'$"):
		rt.expect(rt.Err("bad"), "nope")


@pytest.mark.parametrize(
	"a, b, quotient, remainder",
	[(7, 2, 3, 1), (-7, 2, -3, -1), (7, -2, -3, 1), (-7, -2, 3, -1)],
)
def test_integer_division_truncates(a: int, b: int, quotient: int, remainder: int) -> None:
	assert rt.div(a, b) == quotient
	assert rt.rem(a, b) == remainder


def test_division_by_zero_panics() -> None:
	with pytest.raises(rt.Panic):
		rt.div(1, 0)
	with pytest.raises(rt.Panic):
		rt.rem(1, 0)
	assert rt.div(1.0, 4) == 0.25


def test_std_helpers() -> None:
	assert rt.next_item(iter([])) is None
	assert rt.next_item(iter([4])) == rt.Some(4)
	assert rt.pop([1, 2]) == rt.Some(2)
	assert rt.get([1], 3) is None
	assert list(rt.rev(x for x in (1, 2, 3))) == [3, 2, 1]
	assert list(rt.skip(rt.take(range(10), 4), 1)) == [1, 2, 3]
	assert rt.count(iter("abc")) == 3
	assert rt.to_string(True) == "true"
	original = [[1]]
	copy = rt.clone(original)
	copy[0].append(2)
	assert original == [[1]]


def test_fmt_and_panic() -> None:
	assert rt.fmt("{} and {:?}", 1, "x") == "1 and 'x'"
	assert rt.fmt("{}", False) == "false"
	with pytest.raises(rt.Panic, match="^bad 3$"):
		rt.panic("bad {}", 3)
	with pytest.raises(rt.Panic, match="assertion failed"):
		rt.assert_(False)
	rt.assert_(True)


def test_size_hint_normalizes_upper_bound() -> None:
	assert rt.size_hint((1, rt.Some(4))) == (1, 4)
	assert rt.size_hint((0, None)) == (0, None)
