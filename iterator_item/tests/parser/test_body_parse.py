# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from iterator_item.parser import ast, parse_items


def _body(body: str, header: str = "fn* f(v: Vec<i32>) yields i32") -> ast.Block:
	defs, diags = parse_items(f"{header} {{\n{body}\n}}")
	assert diags == []
	return defs[0].body


def test_yield_forms() -> None:
	block = _body("yield 1; yield; let x = yield;")
	first, bare, bound = block.statements
	assert isinstance(first, ast.ExprStmt) and isinstance(first.value, ast.YieldExpr)
	assert first.value.value == ast.Literal(loc=first.value.value.loc, value=1, kind="int")
	assert isinstance(bare.value, ast.YieldExpr) and bare.value.value is None
	assert isinstance(bound, ast.LetStmt) and isinstance(bound.value, ast.YieldExpr)


def test_try_operator_and_method_calls() -> None:
	block = _body("let r = it.next()?.clone();")
	let = block.statements[0]
	assert isinstance(let.value, ast.MethodCall)
	assert let.value.method == "clone"
	inner = let.value.receiver
	assert isinstance(inner, ast.TryExpr)
	assert isinstance(inner.expr, ast.MethodCall) and inner.expr.method == "next"


def test_let_else_and_if_let() -> None:
	block = _body(
		"""
let Some(x) = v.pop() else { return; };
if let Ok(y) = parse(x) { yield y; } else if x > 0 { yield 0; } else { }
"""
	)
	let, cond = block.statements
	assert isinstance(let.pattern, ast.VariantPattern) and let.pattern.variant == "Some"
	assert let.else_block is not None
	assert isinstance(cond.condition, ast.LetCondition)
	assert cond.condition.pattern.variant == "Ok"
	nested = cond.else_block.statements[0]
	assert isinstance(nested, ast.IfStmt)
	assert isinstance(nested.condition, ast.Binary) and nested.condition.op == ">"


def test_loops_and_patterns() -> None:
	block = _body(
		"""
for (i, x) in v.into_iter().enumerate() { continue; }
while let Some(_) = v.pop() { break; }
loop { break; }
for k in 1..=3 { }
"""
	)
	for_stmt, while_stmt, loop_stmt, incl = block.statements
	assert isinstance(for_stmt.pattern, ast.TuplePattern)
	assert [p.name for p in ast.pattern_bindings(for_stmt.pattern)] == ["i", "x"]
	assert isinstance(while_stmt.condition.pattern.inner, ast.WildcardPattern)
	assert isinstance(loop_stmt, ast.LoopStmt)
	assert isinstance(incl.iterable, ast.Range) and incl.iterable.inclusive


def test_assignments_and_tail() -> None:
	block = _body("let mut t = (1, 2); t.0 += 3; v[0] = t.1;\nt.0")
	_, add, store = block.statements
	assert isinstance(add, ast.AssignStmt) and add.op == "+="
	assert isinstance(add.target, ast.TupleField) and add.target.index == 0
	assert isinstance(store.target, ast.Index)
	assert isinstance(block.tail, ast.TupleField)


def test_nested_fn_and_macros() -> None:
	block = _body(
		"""
fn double(x: i32) -> i32 { x * 2 }
let items = vec![1, 2, 3];
println!("{}", items.len());
"""
	)
	fn_item, items, printed = block.statements
	assert isinstance(fn_item, ast.FnItem)
	assert fn_item.return_type == ast.TypeExpr("i32")
	assert isinstance(fn_item.body.tail, ast.Binary)
	assert isinstance(items.value, ast.ArrayLit) and len(items.value.elements) == 3
	assert isinstance(printed.value, ast.MacroCall) and printed.value.name == "println"


def test_literals() -> None:
	block = _body('let a = 5u8; let b = 2.5; let c = "hi\\n"; let d = \'z\'; let e = true; let f = ();')
	values = [(s.value.kind, s.value.value) for s in block.statements]
	assert values == [("int", 5), ("float", 2.5), ("str", "hi\n"), ("char", "z"), ("bool", True), ("unit", None)]
	assert block.statements[0].value.suffix == "u8"


def test_await_and_borrows() -> None:
	block = _body("let x = fetch(&mut v).await; let y = *x;", header="async fn* f(v: Vec<i32>) yields i32")
	first, second = block.statements
	assert isinstance(first.value, ast.AwaitExpr)
	call = first.value.value
	assert isinstance(call.args[0], ast.Borrow) and call.args[0].mutable
	assert isinstance(second.value, ast.Unary) and second.value.op == "*"


def test_comments_are_ignored() -> None:
	block = _body("// one\n/* two\n three */ yield 1;")
	assert len(block.statements) == 1


def test_rust_escapes_in_literals() -> None:
	block = _body(r"""let a = "\u{1F600}"; let b = '\u{e9}'; let c = "tab\tq\"\x41"; let d = '\'';""")
	assert [s.value.value for s in block.statements] == ["\U0001F600", "é", 'tab\tq"A', "'"]


def test_unknown_escape_is_malformed_body() -> None:
	_, diags = parse_items(r'fn* f() yields String { yield "\q".to_string(); }')
	assert [d.code for d in diags] == ["MalformedBody"]
	assert "unknown character escape" in diags[0].message


def test_match_arms_guards_and_literal_patterns() -> None:
	block = _body(
		"""
match (v.len(), 3) {
	(0, _) => { return; }
	(n, ..) if n > 2 => { yield -1; }
	(-1, 3) => yield 1,
	(..) => yield 0
}
"""
	)
	(stmt,) = block.statements
	assert isinstance(stmt, ast.MatchStmt)
	assert isinstance(stmt.subject, ast.TupleLit)
	empty, guarded, negative, rest = stmt.arms
	assert isinstance(empty.pattern.items[0], ast.LiteralPattern)
	assert empty.pattern.items[0].value.value == 0
	assert isinstance(empty.body.statements[0], ast.ReturnStmt)
	assert isinstance(guarded.pattern.items[1], ast.RestPattern)
	assert isinstance(guarded.guard, ast.Binary) and guarded.guard.op == ">"
	assert isinstance(guarded.body.statements[0], ast.ExprStmt)
	assert negative.pattern.items[0].value.value == -1
	assert negative.guard is None
	assert [type(p) for p in rest.pattern.items] == [ast.RestPattern]


def test_rest_pattern_outside_a_tuple_is_rejected() -> None:
	_, diags = parse_items("fn* f(x: i32) yields i32 { match x { .. => yield 1 } }")
	assert [d.code for d in diags] == ["MalformedBody"]
