# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

import pytest

from iterator_item.checker import check_structure
from iterator_item.parser import parse_items


def _check(src: str):
	defs, diags = parse_items(src, file="s.rs")
	assert diags == []
	return check_structure(defs[0], file="s.rs")


@pytest.mark.parametrize(
	"body, message",
	[
		("break;", "`break` outside of a loop"),
		("let Some(x) = next_value();", "refutable pattern in local binding"),
		("let Some(x) = next_value() else { yield 1; };", "`else` clause of `let...else` does not diverge"),
		("f() = 3;", "invalid left-hand side of assignment"),
		("for Some(x) in items() { }", "refutable pattern in `for` loop binding"),
		("fn g() -> i32 { yield 1; 2 }", "`yield` inside a nested `fn` item"),
		("let x = fut().await;", "`.await` is only allowed inside `async` iterator items"),
		("yield self.count;", "`self` is not available here"),
	],
)
def test_malformed_bodies(body: str, message: str) -> None:
	diags = _check(f"fn* f() yields i32 {{ {body} }}")
	assert [d.code for d in diags] == ["MalformedBody"]
	assert diags[0].message == message


def test_well_formed_body_has_no_findings() -> None:
	src = """
async fn* f(&self) yields i32 {
	let Some(x) = self.first() else { return; };
	while true { if x > 0 { break; } continue; }
	yield fut().await;
	yield self.count;
}
"""
	assert _check(src) == []


def test_unknown_attribute_is_only_a_warning() -> None:
	diags = _check("#[inline] fn* f() yields i32 { yield 1; }")
	assert [(d.severity, d.code) for d in diags] == [("warning", None)]
	assert "`#[inline]`" in diags[0].message


def test_size_hint_argument_cannot_suspend() -> None:
	diags = _check("#[size_hint((yield 1, None))] fn* f() yields i32 { }")
	assert [d.code for d in diags] == ["MalformedSignature"]


def test_prelude_cannot_suspend_or_return() -> None:
	src = """
fn f(n: i32) -> impl Iterator<Item = i32> {
	let x = step(n)?;
	if x > 0 { return; }
	gen { yield x; }
}
"""
	diags = _check(src)
	assert [d.message for d in diags] == ["`?` outside of the `gen` block", "`return` before the `gen` block"]


def test_match_guard_cannot_suspend() -> None:
	diags = _check("fn* f(v: Option<i32>) yields i32 { match v { Some(n) if (yield n) == () => { } _ => { } } }")
	assert [d.message for d in diags] == ["match guards cannot suspend or propagate errors"]


def test_break_in_a_match_arm_needs_a_loop() -> None:
	diags = _check("fn* f(v: Option<i32>) yields i32 { match v { Some(_) => { break; } None => yield 0 } }")
	assert [d.message for d in diags] == ["`break` outside of a loop"]
