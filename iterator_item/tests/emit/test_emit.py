# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
from __future__ import annotations

from iterator_item.desugar import desugar_definition
from iterator_item.emit import EmitOptions, emit_module, py_type, wrapper_class_name
from iterator_item.parser import ast, parse_items


def _emit(src: str, options: EmitOptions | None = None) -> str:
	defs, diags = parse_items(src)
	assert diags == []
	return emit_module([desugar_definition(d) for d in defs], options)


def test_wrapper_and_public_function_shape() -> None:
	code = _emit("fn* count_to(n: i32) yields i32 { for i in 0..n { yield i; } }")
	assert "class _CountToIteratorItem:" in code
	assert '__slots__ = ("__computation", "__size_hint")' in code
	assert "def __next__(self) -> int:" in code
	assert "def count_to(n: int) -> Iterator[int]:" in code
	assert "        for i in range(0, n):\n            yield i\n" in code
	assert "__size_hint = (0, None)" in code
	assert "return _CountToIteratorItem(_rt.create(__body, n), __size_hint)" in code
	compile(code, "<emitted>", "exec")


def test_options_control_header_runtime_and_indent() -> None:
	options = EmitOptions(runtime_module="myrt", indent="\t", header=False)
	code = _emit("fn* f() yields i32 { yield 1; }", options)
	assert code.startswith("from __future__ import annotations\n")
	assert "import myrt as _rt" in code
	assert "\tdef __body():\n\t\tyield 1\n" in code


def test_banner_names_the_source() -> None:
	code = _emit("fn* f() yields i32 { }", EmitOptions(source_name="items.rs"))
	assert code.splitlines()[0] == "# Generated by iterator_item from items.rs. Do not edit."


def test_pub_items_are_exported_and_class_names_are_unique() -> None:
	src = "pub fn* a() yields i32 { } fn* a_() yields i32 { } pub gen fn b() -> i32 { }"
	code = _emit(src)
	assert "__all__ = ['a', 'b']" in code
	assert "class _AIteratorItem:" in code
	assert "class _AIteratorItem2:" in code


def test_body_without_suspension_is_still_a_generator() -> None:
	code = _emit("fn* nothing() yields i32 { }")
	assert "        return\n        yield\n" in code


def test_async_item_uses_async_protocol() -> None:
	code = _emit("async fn* ticks() yields u8 { tick().await; yield 1; }")
	assert "async def __anext__(self) -> int:" in code
	assert "state = await _rt.resume_async(self.__computation)" in code
	assert "raise StopAsyncIteration" in code
	assert "async def __body():" in code
	assert "(await tick())" in code
	assert "-> AsyncIterator[int]:" in code
	compile(code, "<emitted>", "exec")


def test_shadowed_bindings_are_renamed() -> None:
	code = _emit("fn* f() yields i32 { let x = 1; { let x = 2; yield x; } yield x; let x = x + 1; yield x; }")
	assert "x = 1\n" in code
	assert "x_2 = 2\n" in code
	assert "yield x_2\n" in code
	assert "x_3 = (x + 1)\n" in code


def test_locals_never_capture_globals_or_keywords() -> None:
	code = _emit("fn* f() yields i32 { let helper = helper(); let len = 3; let lambda = 1; yield helper + len + lambda; }")
	assert "helper_2 = helper()" in code
	assert "len_ = 3" in code
	assert "lambda_ = 1" in code


def test_nested_fn_is_hoisted_and_returns_its_tail() -> None:
	code = _emit("fn* f() yields i32 { yield sq(3); fn sq(x: i32) -> i32 { x * x } }")
	body = code[code.index("def __body"):]
	assert body.index("def sq(x):") < body.index("yield sq(3)")
	assert "return (x * x)" in body


def test_std_mapping() -> None:
	src = """
fn* f(v: Vec<i32>, s: String) yields String {
	let mut out = Vec::new();
	out.push(v.len() / 2);
	let m = -7 % 3;
	if !v.is_empty() && s.starts_with("a") { yield s.to_uppercase(); }
	yield format!("{:?}", Some(m));
	let Some(last) = out.pop() else { return; };
	println!("{}", last);
}
"""
	code = _emit(src)
	assert "out = []" in code
	assert "out.append(_rt.div(len(v), 2))" in code
	assert "m = _rt.rem((-7), 3)" in code
	assert "if ((not (len(v) == 0)) and s.startswith('a')):" in code
	assert "yield s.upper()" in code
	assert "yield _rt.fmt('{:?}', _rt.Some(m))" in code
	assert "if not (isinstance(__subject1, _rt.Some)):" in code
	assert "last = __subject1.value" in code
	assert "print(_rt.fmt('{}', last))" in code
	compile(code, "<emitted>", "exec")


def test_if_let_chain_and_while_let() -> None:
	src = """
fn* f(it: Vec<i32>) yields i32 {
	let mut it = it.into_iter();
	while let Some(x) = it.next() {
		if let Some(y) = check(x) { yield y; } else if x > 0 { yield x; } else { yield 0; }
	}
}
"""
	code = _emit(src)
	assert "it_2 = iter(it)" in code
	assert "while True:" in code
	assert "__subject1 = _rt.next_item(it_2)" in code
	assert "if not (isinstance(__subject1, _rt.Some)):" in code
	assert "elif (x > 0):" in code
	compile(code, "<emitted>", "exec")


def test_size_hint_attribute() -> None:
	code = _emit("#[size_hint((n, Some(n)))] fn* f(n: usize) yields usize { }")
	assert "__size_hint = _rt.size_hint((n, _rt.Some(n)))" in code


def test_docs_become_the_docstring() -> None:
	code = _emit("/// Counts.\nfn* f() yields i32 { }")
	assert '    """Counts."""\n' in code


def test_py_type_mapping() -> None:
	assert py_type(ast.TypeExpr("Option", [ast.TypeExpr("i32")])) == "_rt.Option[int]"
	assert py_type(ast.TypeExpr("Result", [ast.TypeExpr("String"), ast.TypeExpr("u8")])) == "_rt.Result[str, int]"
	assert py_type(ast.TypeExpr("&", [ast.TypeExpr("Vec", [ast.TypeExpr("f64")])])) == "list[float]"
	assert py_type(ast.TypeExpr("tuple", [ast.TypeExpr("bool"), ast.TypeExpr("()")])) == "tuple[bool, None]"
	assert py_type(ast.TypeExpr("T"), {"T"}) == "Any"
	assert wrapper_class_name("merge_intervals") == "_MergeIntervalsIteratorItem"


def test_match_becomes_a_match_statement() -> None:
	src = """
fn* f(x: i32, pair: (i32, bool)) yields i32 {
	match pair {
		(0, true) => yield 1,
		(n, ..) if n > 5 => { yield n; }
		(.., false) => yield -1,
		_ => yield 0,
		(7, _) => yield 7,
	}
	match x { }
}
"""
	code = _emit(src)
	assert "match pair:" in code
	assert "case (0, True):" in code
	assert "case (n, *_) if (n > 5):" in code
	assert "case (*_, False):" in code
	assert "case _:" in code
	assert "case (7, _)" not in code
	assert "        x\n" in code
	compile(code, "<emitted>", "exec")


def test_match_on_variants_and_literals() -> None:
	src = """
fn* f(v: Option<i32>, s: String) yields i32 {
	match v {
		Some(0) => yield 0,
		Some(n) => yield n,
		None => { }
	}
	match s.as_str() {
		"a" => yield 1,
		other => yield other.len(),
	}
}
"""
	code = _emit(src)
	assert "case _rt.Some(0):" in code
	assert "case _rt.Some(n):" in code
	assert "case None:" in code
	assert "case 'a':" in code
	assert "case other:" in code
	compile(code, "<emitted>", "exec")


def test_tuple_rest_in_let_and_if_let() -> None:
	code = _emit("fn* f(t: (i32, i32, i32)) yields i32 { let (a, ..) = t; if let (.., 3) = t { yield a; } }")
	assert "(a, *_) = t" in code
	assert "if t[-1] == 3:" in code
	compile(code, "<emitted>", "exec")


def test_gen_block_prelude_runs_in_the_public_function() -> None:
	src = """
fn doubled(n: i32) -> impl Iterator<Item = i32> {
	let base = n * 2;
	gen { yield base; }
}
"""
	code = _emit(src)
	public = code[code.index("def doubled(n: int) -> Iterator[int]:"):]
	assert public.index("base = (n * 2)") < public.index("def __body(n, base):")
	assert "return _DoubledIteratorItem(_rt.create(__body, n, base), __size_hint)" in code
	compile(code, "<emitted>", "exec")
