# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from iterator_item.checker import check_returns
from iterator_item.parser import parse_items


def _check(src: str):
	defs, diags = parse_items(src, file="r.rs")
	assert diags == []
	return check_returns(defs[0], file="r.rs")


def test_bare_and_unit_returns_are_allowed() -> None:
	src = """
fn* f(n: i32) yields i32 {
	if n < 0 { return; }
	loop { if n == 0 { return (); } yield n; }
}
"""
	assert _check(src) == []


def test_valued_return_is_rejected_with_help() -> None:
	src = """
fn* f(n: i32) yields i32 {
	for i in 0..n {
		if i == 3 { return i; }
		yield i;
	}
}
"""
	diags = _check(src)
	assert [d.code for d in diags] == ["NonUnitReturn"]
	assert diags[0].message == "iterator items can't return a non-`()` value"
	assert diags[0].notes[0] == "returning in an iterator is only meant for stopping the iterator"
	assert diags[0].span.line == 4


def test_nested_fn_may_return_values() -> None:
	src = """
fn* f() yields i32 {
	fn pick(a: i32) -> i32 { return a; }
	yield pick(1);
}
"""
	assert _check(src) == []


def test_tail_expression_of_known_type_is_an_implicit_return() -> None:
	src = """
fn* f(v: Vec<i32>) yields i32 {
	let total = 3;
	yield total;
	v.len()
}
"""
	diags = _check(src)
	assert [d.code for d in diags] == ["NonUnitReturn"]
	assert "`usize`" in diags[0].message


def test_tail_of_unknown_or_unit_type_is_fine() -> None:
	src = """
fn* f() yields i32 {
	yield 1;
	cleanup()
}
"""
	assert _check(src) == []
	assert _check("fn* g() yields i32 { yield 2 }") == []
