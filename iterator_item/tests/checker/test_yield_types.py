# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from iterator_item.checker import check_yielded_types, validate_definition
from iterator_item.core.diagnostics import ErrorKind
from iterator_item.parser import parse_items


def _check(src: str):
	defs, diags = parse_items(src, file="y.rs")
	assert diags == []
	return check_yielded_types(defs[0], file="y.rs")


def test_consistent_yields_pass() -> None:
	src = """
fn* f(n: i32) yields i32 {
	let mut i = 0;
	while i < n { yield i; i += 1; }
	for k in 0..n { yield k * 2; }
	yield -1;
}
"""
	assert _check(src) == []


def test_conflicting_yield_is_reported_even_in_untaken_branch() -> None:
	src = """
fn* f(flag: bool) yields i32 {
	yield 1;
	if false {
		yield "two";
	}
}
"""
	diags = _check(src)
	assert [d.code for d in diags] == [ErrorKind.MULTIPLE_YIELDED_TYPES.value]
	assert diags[0].message == "mismatched yielded type: `yield` yields `&str`, expected `i32`"
	assert diags[0].span.line == 5
	assert diags[0].notes == ["`f` is declared to yield `i32`"]


def test_every_conflict_is_reported() -> None:
	src = """
fn* f() yields u8 {
	yield true;
	yield 'c';
	yield 3;
}
"""
	assert [d.code for d in _check(src)] == ["MultipleYieldedTypes", "MultipleYieldedTypes"]


def test_inferred_element_type_fixes_later_yields() -> None:
	src = """
fn* f() yields _ {
	yield 1u16;
	yield 2i64;
}
"""
	diags = _check(src)
	assert len(diags) == 1
	assert "expected `u16`" in diags[0].message
	assert "fixed to `u16` at line 3" in diags[0].notes[0]


def test_unknown_types_are_compatible() -> None:
	src = """
fn* f(v: Vec<String>) yields String {
	yield helper();
	yield v[0].clone();
	yield format!("{}", 1);
}
"""
	assert _check(src) == []


def test_question_mark_residual_must_match_the_element_type() -> None:
	src = """
fn* f(r: Result<i32, String>, o: Option<i32>) yields Result<i32, String> {
	let a = r?;
	let b = o?;
	yield Ok(a + b);
}
"""
	diags = _check(src)
	assert len(diags) == 1
	assert "`?` would yield the residual `Option<_>`" in diags[0].message


def test_nested_fn_yields_are_not_item_yields() -> None:
	src = """
fn* f() yields i32 {
	fn inner() -> bool { true }
	yield 1;
}
"""
	assert _check(src) == []


def test_validate_collects_violations_from_all_checks() -> None:
	src = """
fn* f(v: Vec<i32>) yields i32 {
	yield true;
	return 5;
}
"""
	defs, _ = parse_items(src)
	codes = [d.code for d in validate_definition(defs[0])]
	assert codes == ["MultipleYieldedTypes", "NonUnitReturn"]


def test_match_arm_bindings_take_the_subject_type() -> None:
	src = """
fn* f(v: Option<String>) yields i32 {
	match v {
		Some(s) => yield s,
		None => yield 0,
	}
}
"""
	diags = _check(src)
	assert [d.message for d in diags] == ["mismatched yielded type: `yield` yields `String`, expected `i32`"]
	assert diags[0].span.line == 4


def test_gen_block_uses_the_iterator_item_type() -> None:
	diags = _check('fn words() -> impl Iterator<Item = i32> { gen { yield "w"; } }')
	assert [d.code for d in diags] == [ErrorKind.MULTIPLE_YIELDED_TYPES.value]
	assert diags[0].notes == ["`words` is declared to yield `i32`"]
