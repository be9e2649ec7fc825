# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from iterator_item.desugar import desugar_definition
from iterator_item.parser import ast, parse_items


def _lower(src: str) -> ast.Definition:
	defs, diags = parse_items(src)
	assert diags == []
	return desugar_definition(defs[0])


def _kinds(block: ast.Block) -> list[str]:
	return [type(s).__name__ for s in block.statements]


def test_yield_becomes_suspend() -> None:
	lowered = _lower("fn* f(n: i32) yields i32 { yield n; yield; }")
	first, second = lowered.body.statements
	assert isinstance(first, ast.SuspendStmt)
	assert first.value == ast.Name(loc=first.value.loc, ident="n")
	assert isinstance(second, ast.SuspendStmt)
	assert second.value.kind == "unit"


def test_input_definition_is_not_mutated() -> None:
	defs, _ = parse_items("fn* f() yields i32 { yield 1; }")
	desugar_definition(defs[0])
	assert isinstance(defs[0].body.statements[0], ast.ExprStmt)


def test_top_level_return_terminates() -> None:
	lowered = _lower("fn* f() yields i32 { if true { return; } yield 1; }")
	guard = lowered.body.statements[0]
	assert _kinds(guard.then_block) == ["TerminateStmt"]


def test_try_in_result_item_yields_the_residual_then_terminates() -> None:
	lowered = _lower("fn* f() yields Result<i32, String> { let r = compute()?; yield Ok(r); }")
	assert _kinds(lowered.body) == ["LetStmt", "IfStmt", "LetStmt", "SuspendStmt"]
	temp, check, bind, _ = lowered.body.statements
	assert temp.pattern.name == "__try1"
	assert check.condition == ast.RuntimeCall(loc=check.condition.loc, helper="is_residual", args=[ast.Name(loc=temp.value.loc, ident="__try1")])
	assert _kinds(check.then_block) == ["SuspendStmt", "TerminateStmt"]
	assert check.then_block.statements[0].value.helper == "residual"
	assert isinstance(bind.value, ast.RuntimeCall) and bind.value.helper == "output"


def test_try_in_plain_item_only_terminates() -> None:
	lowered = _lower("fn* f() yields i32 { let r = compute()?; yield r; }")
	check = lowered.body.statements[1]
	assert _kinds(check.then_block) == ["TerminateStmt"]


def test_nested_fn_keeps_ordinary_return_semantics() -> None:
	src = """
fn* f() yields i32 {
	fn inner(x: Option<i32>) -> Option<i32> {
		let v = x?;
		if v > 3 { return None; }
		Some(v)
	}
	yield 1;
}
"""
	fn_item = _lower(src).body.statements[0]
	check = fn_item.body.statements[1]
	assert _kinds(check.then_block) == ["ReturnStmt"]
	assert check.then_block.statements[0].value.helper == "residual"
	guard = fn_item.body.statements[3]
	assert _kinds(guard.then_block) == ["ReturnStmt"]
	assert isinstance(fn_item.body.tail, ast.Call)


def test_earlier_operands_are_spilled_before_a_later_prefix() -> None:
	lowered = _lower("fn* f() yields Option<i32> { let s = add(g(), h()?); yield Some(s); }")
	spill, temp, _, bind, _ = lowered.body.statements
	assert spill.pattern.name == "__v2"
	assert isinstance(spill.value, ast.Call) and spill.value.func.ident == "g"
	assert temp.pattern.name == "__try1"
	args = bind.value.args
	assert args[0] == ast.Name(loc=args[0].loc, ident="__v2")
	assert args[1].helper == "output"


def test_short_circuit_right_operand_prefix_is_conditional() -> None:
	lowered = _lower("fn* f() yields i32 { let ok = ready() && h()?; yield 1; }")
	cond_let, gate, bind, _ = lowered.body.statements
	assert cond_let.pattern.name == "__cond2"
	assert isinstance(gate, ast.IfStmt)
	assert _kinds(gate.then_block) == ["LetStmt", "IfStmt", "AssignStmt"]
	assert bind.value == ast.Name(loc=bind.value.loc, ident="__cond2")


def test_while_with_prefix_becomes_loop() -> None:
	lowered = _lower("fn* f() yields i32 { while next()? > 0 { yield 1; } }")
	(loop,) = lowered.body.statements
	assert isinstance(loop, ast.LoopStmt)
	assert _kinds(loop.body) == ["LetStmt", "IfStmt", "IfStmt", "SuspendStmt"]
	exit_guard = loop.body.statements[2]
	assert isinstance(exit_guard.condition, ast.Unary) and exit_guard.condition.op == "!"
	assert _kinds(exit_guard.then_block) == ["BreakStmt"]


def test_yield_inside_an_expression_evaluates_in_order() -> None:
	lowered = _lower("fn* f(v: Vec<i32>) yields i32 { let x = first(v.len(), yield 7); }")
	spill, suspend, bind = lowered.body.statements
	assert isinstance(spill.value, ast.MethodCall)
	assert isinstance(suspend, ast.SuspendStmt) and suspend.value.value == 7
	assert bind.value.args[1].kind == "unit"


def test_unit_tail_is_dropped() -> None:
	lowered = _lower("fn* f() yields i32 { yield 1 }")
	assert _kinds(lowered.body) == ["SuspendStmt"]
	assert lowered.body.tail is None


def test_take_and_replace_swap_the_place() -> None:
	lowered = _lower("fn* f() yields i32 { let mut x = Some(3); let y = x.replace(4); let z = x.take(); yield 1; }")
	assert _kinds(lowered.body) == ["LetStmt", "LetStmt", "AssignStmt", "LetStmt", "LetStmt", "AssignStmt", "LetStmt", "SuspendStmt"]
	_, old, store, bind, taken, clear, bind_taken, _ = lowered.body.statements
	assert old.pattern.name.startswith("__v")
	assert old.value == ast.Name(loc=old.value.loc, ident="x")
	assert store.target == ast.Name(loc=store.target.loc, ident="x")
	assert isinstance(store.value, ast.Call) and store.value.func.ident == "Some"
	assert bind.value == ast.Name(loc=bind.value.loc, ident=old.pattern.name)
	assert taken.value == ast.Name(loc=taken.value.loc, ident="x")
	assert clear.value == ast.Name(loc=clear.value.loc, ident="None")
	assert bind_taken.value == ast.Name(loc=bind_taken.value.loc, ident=taken.pattern.name)


def test_take_on_a_temporary_is_left_alone() -> None:
	lowered = _lower("fn* f() yields i32 { let y = make().take(); yield 1; }")
	bind = lowered.body.statements[0]
	assert isinstance(bind.value, ast.MethodCall) and bind.value.method == "take"


def test_mutable_operand_is_spilled_before_a_later_take() -> None:
	lowered = _lower("fn* f() yields i32 { let mut x = Some(1); let p = (x, x.take()?); yield 1; }")
	statements = lowered.body.statements
	spill = statements[1]
	assert spill.pattern.name.startswith("__v")
	assert spill.value == ast.Name(loc=spill.value.loc, ident="x")
	clear = next(s for s in statements if isinstance(s, ast.AssignStmt))
	assert statements.index(clear) > 1
	pair = next(s for s in statements if isinstance(s, ast.LetStmt) and s.pattern.name == "p")
	assert pair.value.elements[0] == ast.Name(loc=pair.value.elements[0].loc, ident=spill.pattern.name)


def test_immutable_operand_is_not_spilled() -> None:
	lowered = _lower("fn* f(x: i32) yields Option<i32> { let p = (x, h()?); yield Some(p.0); }")
	assert _kinds(lowered.body)[:2] == ["LetStmt", "IfStmt"]
	assert lowered.body.statements[0].pattern.name.startswith("__try")
