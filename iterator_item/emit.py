# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Python emitter for desugared iterator items.

For every Definition the emitted module contains:

  * a private wrapper class (`_<CamelName>IteratorItem`) that owns the
    suspendable computation in a name-mangled slot and exposes nothing but the
    iterator protocol (`__iter__`/`__next__`, or `__aiter__`/`__anext__` for
    `async` items) plus `size_hint()` / `__length_hint__()`;
  * a public function with the item's name and parameters, annotated to return
    only `Iterator[T]` / `AsyncIterator[T]`. It defines the body as a nested
    generator function, creates the computation with the parameters as its
    inputs and hands it to a fresh wrapper.

Rust block scoping is kept by giving every binding site that would collide
with an existing Python name a fresh name (`x_2`); globals referenced by the
body are reserved up front so a local never captures them. Nested `fn` items
are hoisted to the top of their block.

For a function ending in a `gen` block, the statements before the block run in
the public function itself, and every binding they leave in scope is passed to
`__body` as an extra input next to the parameters. `match` becomes a Python
`match` statement.
"""

from __future__ import annotations

import keyword
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from iterator_item.checker.types import FLOAT_TYPES, INT_TYPES, canonical_name
from iterator_item.parser import ast


@dataclass
class EmitOptions:
	"""Knobs for the generated module."""

	runtime_module: str = "iterator_item.runtime"
	indent: str = "    "
	# Emit the "generated file" banner.
	header: bool = True
	source_name: Optional[str] = None


# Names the emitted code relies on; locals are renamed away from them.
_RESERVED = frozenset(keyword.kwlist) | frozenset(
	{
		"_rt",
		"__body",
		"__size_hint",
		"abs",
		"enumerate",
		"isinstance",
		"iter",
		"len",
		"list",
		"max",
		"min",
		"print",
		"range",
		"reversed",
		"str",
		"sum",
		"zip",
	}
)

_VARIANT_FIELD = {"Some": "value", "Ok": "value", "Err": "error"}

_CALL_PATHS: Dict[str, Callable[[List[str]], str]] = {
	"String::new": lambda a: '""',
	"String::from": lambda a: f"str({a[0]})",
	"Vec::new": lambda a: "[]",
	"Vec::with_capacity": lambda a: "[]",
	"std::cmp::max": lambda a: f"max({', '.join(a)})",
	"std::cmp::min": lambda a: f"min({', '.join(a)})",
	"cmp::max": lambda a: f"max({', '.join(a)})",
	"cmp::min": lambda a: f"min({', '.join(a)})",
}

# method -> (arity, template); `{r}` is the receiver, `{0}`.. the arguments.
_METHODS: Dict[str, Tuple[int, str]] = {
	"len": (0, "len({r})"),
	"is_empty": (0, "(len({r}) == 0)"),
	"push": (1, "{r}.append({0})"),
	"push_back": (1, "{r}.append({0})"),
	"pop": (0, "_rt.pop({r})"),
	"get": (1, "_rt.get({r}, {0})"),
	"clone": (0, "_rt.clone({r})"),
	"to_owned": (0, "_rt.clone({r})"),
	"to_vec": (0, "list({r})"),
	"to_string": (0, "_rt.to_string({r})"),
	"iter": (0, "iter({r})"),
	"iter_mut": (0, "iter({r})"),
	"into_iter": (0, "iter({r})"),
	"chars": (0, "iter({r})"),
	"next": (0, "_rt.next_item({r})"),
	"unwrap": (0, "_rt.unwrap({r})"),
	"expect": (1, "_rt.expect({r}, {0})"),
	"unwrap_or": (1, "_rt.unwrap_or({r}, {0})"),
	"is_some": (0, "_rt.is_some({r})"),
	"is_none": (0, "_rt.is_none({r})"),
	"is_ok": (0, "_rt.is_ok({r})"),
	"is_err": (0, "_rt.is_err({r})"),
	"contains": (1, "({0} in {r})"),
	"abs": (0, "abs({r})"),
	"min": (1, "min({r}, {0})"),
	"max": (1, "max({r}, {0})"),
	"pow": (1, "({r} ** {0})"),
	"rev": (0, "_rt.rev({r})"),
	"enumerate": (0, "enumerate({r})"),
	"zip": (1, "zip({r}, {0})"),
	"take": (1, "_rt.take({r}, {0})"),
	"skip": (1, "_rt.skip({r}, {0})"),
	"count": (0, "_rt.count({r})"),
	"sum": (0, "sum({r})"),
	"collect": (0, "list({r})"),
	"trim": (0, "{r}.strip()"),
	"to_uppercase": (0, "{r}.upper()"),
	"to_lowercase": (0, "{r}.lower()"),
	"starts_with": (1, "{r}.startswith({0})"),
	"ends_with": (1, "{r}.endswith({0})"),
}

_BINARY = {"&&": "and", "||": "or"}


def py_type(ty: Optional[ast.TypeExpr], generics: Set[str] = frozenset()) -> str:
	"""Python annotation for a TypeExpr (annotations are never evaluated)."""
	if ty is None or ty.name == "_":
		return "Any"
	if ty.name in ("&", "&mut"):
		return py_type(ty.args[0], generics)
	if ty.name == "()":
		return "None"
	if ty.name == "tuple":
		return f"tuple[{', '.join(py_type(a, generics) for a in ty.args)}]"
	if ty.name == "[]":
		return f"list[{py_type(ty.args[0], generics)}]"
	if ty.name == "impl":
		for bound in ty.args:
			item = bound.binding("Item")
			if item is not None:
				return f"Iterator[{py_type(item, generics)}]"
		return "Any"
	name = canonical_name(ty.name)
	args = [py_type(a, generics) for a in ty.args]
	if name in INT_TYPES:
		return "int"
	if name in FLOAT_TYPES:
		return "float"
	if name in ("String", "str", "char"):
		return "str"
	if name == "bool":
		return "bool"
	if name in generics:
		return "Any"
	if name in ("Vec", "VecDeque") and args:
		return f"list[{args[0]}]"
	if name == "HashSet" and args:
		return f"set[{args[0]}]"
	if name == "HashMap" and len(args) == 2:
		return f"dict[{args[0]}, {args[1]}]"
	if name == "Option" and args:
		return f"_rt.Option[{args[0]}]"
	if name == "Result" and len(args) == 2:
		return f"_rt.Result[{args[0]}, {args[1]}]"
	if name in ("Range", "RangeInclusive"):
		return "range"
	return name.rsplit("::", 1)[-1]


def wrapper_class_name(item_name: str) -> str:
	camel = "".join(part[:1].upper() + part[1:] for part in item_name.split("_") if part)
	return f"_{camel or 'Anonymous'}IteratorItem"


def _docstring(lines: Sequence[str]) -> str:
	text = "\n".join(lines).replace("\\", "\\\\").replace('"""', '\\"\\"\\"')
	if "\n" in text:
		return f'"""\n{text}\n"""'
	return f'"""{text}"""'


class _Writer:
	def __init__(self, indent: str) -> None:
		self._indent = indent
		self._level = 0
		self.lines: List[str] = []

	def line(self, text: str = "") -> None:
		self.lines.append(f"{self._indent * self._level}{text}" if text else "")

	@contextmanager
	def block(self) -> Iterator[int]:
		"""Indent one level; writes `pass` if nothing was emitted inside."""
		self._level += 1
		start = len(self.lines)
		try:
			yield start
		finally:
			if len(self.lines) == start:
				self.line("pass")
			self._level -= 1


@dataclass
class _Frame:
	"""Rename scope. `barrier` frames (nested fn bodies) only let items through."""

	names: Dict[str, Tuple[str, str]] = field(default_factory=dict)
	barrier: bool = False


class _BodyEmitter:
	"""Emits the statements of one item (its body and nested `fn` items)."""

	def __init__(self, writer: _Writer, reserved: Set[str]) -> None:
		self.w = writer
		self.used: Set[str] = set(reserved)
		self.frames: List[_Frame] = [_Frame()]
		self.globals_seen: Set[str] = set()
		self._temp_counter = 0
		self._in_nested_fn = 0

	# Names ------------------------------------------------------------

	def bind(self, name: str, kind: str = "local") -> str:
		base = f"{name}_" if name in _RESERVED else name
		py_name = base
		suffix = 2
		while py_name in self.used:
			py_name = f"{base}_{suffix}"
			suffix += 1
		self.used.add(py_name)
		self.frames[-1].names[name] = (py_name, kind)
		return py_name

	def resolve(self, name: str) -> Optional[str]:
		crossed = False
		for frame in reversed(self.frames):
			entry = frame.names.get(name)
			if entry is not None and (not crossed or entry[1] == "item"):
				return entry[0]
			crossed = crossed or frame.barrier
		return None

	def fresh(self, prefix: str) -> str:
		self._temp_counter += 1
		name = f"{prefix}{self._temp_counter}"
		self.used.add(name)
		return name

	@contextmanager
	def scope(self, barrier: bool = False) -> Iterator[None]:
		self.frames.append(_Frame(barrier=barrier))
		try:
			yield
		finally:
			self.frames.pop()

	# Blocks / statements ---------------------------------------------

	def block(self, block: ast.Block, returns_tail: bool = False) -> None:
		with self.scope():
			self.block_contents(block, returns_tail)

	def block_contents(self, block: ast.Block, returns_tail: bool = False) -> None:
		items = [s for s in block.statements if isinstance(s, ast.FnItem)]
		for item in items:
			self.bind(item.name, kind="item")
		for item in items:
			self.fn_item(item)
		for stmt in block.statements:
			if not isinstance(stmt, ast.FnItem):
				self.stmt(stmt)
		if block.tail is not None:
			value = self.expr(block.tail)
			self.w.line(f"return {value}" if returns_tail else value)

	def fn_item(self, item: ast.FnItem) -> None:
		py_name = self.resolve(item.name)
		with self.scope(barrier=True):
			params = [self.bind(p.name) for p in item.params]
			self.w.line(f"def {py_name}({', '.join(params)}):")
			self._in_nested_fn += 1
			try:
				with self.w.block():
					self.block(item.body, returns_tail=True)
			finally:
				self._in_nested_fn -= 1

	def stmt(self, stmt: ast.Stmt) -> None:
		w = self.w
		if isinstance(stmt, ast.LetStmt):
			self.let(stmt)
		elif isinstance(stmt, ast.AssignStmt):
			value = self.expr(stmt.value)
			target = self.expr(stmt.target)
			if stmt.op == "=":
				w.line(f"{target} = {value}")
			elif stmt.op == "/=":
				w.line(f"{target} = _rt.div({target}, {value})")
			elif stmt.op == "%=":
				w.line(f"{target} = _rt.rem({target}, {value})")
			else:
				w.line(f"{target} {stmt.op} {value}")
		elif isinstance(stmt, ast.ExprStmt):
			w.line(self.expr(stmt.value))
		elif isinstance(stmt, ast.SuspendStmt):
			w.line(f"yield {self.expr(stmt.value)}")
		elif isinstance(stmt, ast.TerminateStmt):
			w.line("return")
		elif isinstance(stmt, ast.ReturnStmt):
			w.line("return" if stmt.value is None else f"return {self.expr(stmt.value)}")
		elif isinstance(stmt, ast.BreakStmt):
			w.line("break")
		elif isinstance(stmt, ast.ContinueStmt):
			w.line("continue")
		elif isinstance(stmt, ast.IfStmt):
			self.if_stmt(stmt)
		elif isinstance(stmt, ast.WhileStmt):
			self.while_stmt(stmt)
		elif isinstance(stmt, ast.LoopStmt):
			w.line("while True:")
			with w.block():
				self.block(stmt.body)
		elif isinstance(stmt, ast.ForStmt):
			iterable = self.expr(stmt.iterable)
			with self.scope():
				target = self.pattern_target(stmt.pattern)
				w.line(f"for {target} in {iterable}:")
				with w.block():
					self.block(stmt.body)
		elif isinstance(stmt, ast.MatchStmt):
			self.match_stmt(stmt)
		elif isinstance(stmt, ast.BlockStmt):
			self.block(stmt.block)
		else:
			raise NotImplementedError(f"emitter does not handle stmt {type(stmt).__name__}")

	def let(self, stmt: ast.LetStmt) -> None:
		value = self.expr(stmt.value)
		pattern = stmt.pattern
		if stmt.else_block is not None:
			subject = self.fresh("__subject")
			self.w.line(f"{subject} = {value}")
			self.w.line(f"if not ({self.pattern_test(pattern, subject)}):")
			with self.w.block():
				self.block(stmt.else_block)
			self.bind_pattern(pattern, subject)
		elif isinstance(pattern, ast.WildcardPattern) or (isinstance(pattern, ast.TuplePattern) and not pattern.items):
			self.w.line(value)
		else:
			target = self.pattern_target(pattern)
			self.w.line(f"{target} = {value}")

	def if_stmt(self, stmt: ast.IfStmt, keyword_: str = "if") -> None:
		w = self.w
		with self.scope():
			cond = self.condition(stmt.condition)
			w.line(f"{keyword_} {cond}:")
			with w.block():
				if isinstance(stmt.condition, ast.LetCondition):
					self.bind_pattern(stmt.condition.pattern, self._subject)
				self.block(stmt.then_block)
		else_block = stmt.else_block
		if else_block is None:
			return
		chained = else_block.statements[0] if len(else_block.statements) == 1 and else_block.tail is None else None
		if isinstance(chained, ast.IfStmt) and not isinstance(chained.condition, ast.LetCondition):
			self.if_stmt(chained, keyword_="elif")
			return
		w.line("else:")
		with w.block():
			self.block(else_block)

	def while_stmt(self, stmt: ast.WhileStmt) -> None:
		w = self.w
		if not isinstance(stmt.condition, ast.LetCondition):
			w.line(f"while {self.expr(stmt.condition)}:")
			with w.block():
				self.block(stmt.body)
			return
		w.line("while True:")
		with w.block(), self.scope():
			cond = self.condition(stmt.condition)
			w.line(f"if not ({cond}):")
			with w.block():
				w.line("break")
			self.bind_pattern(stmt.condition.pattern, self._subject)
			self.block(stmt.body)

	def match_stmt(self, stmt: ast.MatchStmt) -> None:
		w = self.w
		subject = self.expr(stmt.subject)
		if not stmt.arms:
			w.line(subject)
			return
		w.line(f"match {subject}:")
		with w.block():
			for arm in stmt.arms:
				with self.scope():
					pattern = self.case_pattern(arm.pattern)
					guard = f" if {self.expr(arm.guard)}" if arm.guard is not None else ""
					w.line(f"case {pattern}{guard}:")
					with w.block():
						self.block(arm.body)
				# Python rejects cases after an irrefutable one.
				if arm.guard is None and isinstance(arm.pattern, (ast.BindPattern, ast.WildcardPattern)):
					break

	_subject = ""

	def condition(self, cond: ast.Condition) -> str:
		"""Condition source; for `let` conditions the subject is stashed in `_subject`."""
		if not isinstance(cond, ast.LetCondition):
			return self.expr(cond)
		value = self.expr(cond.value)
		if isinstance(cond.value, ast.Name) and value.isidentifier():
			self._subject = value
		else:
			self._subject = self.fresh("__subject")
			self.w.line(f"{self._subject} = {value}")
		return self.pattern_test(cond.pattern, self._subject)

	# Patterns ---------------------------------------------------------

	def pattern_test(self, pattern: ast.Pattern, subject: str) -> str:
		tests = list(self._pattern_tests(pattern, subject))
		return " and ".join(tests) if tests else "True"

	def _pattern_tests(self, pattern: ast.Pattern, subject: str) -> Iterator[str]:
		if isinstance(pattern, ast.LiteralPattern):
			yield f"{subject} == {_literal(pattern.value)}"
		elif isinstance(pattern, ast.VariantPattern):
			if pattern.variant == "None":
				yield f"{subject} is None"
				return
			yield f"isinstance({subject}, _rt.{pattern.variant})"
			if pattern.inner is not None:
				yield from self._pattern_tests(pattern.inner, f"{subject}.{_VARIANT_FIELD[pattern.variant]}")
		elif isinstance(pattern, ast.TuplePattern):
			for item, index in _tuple_slots(pattern):
				yield from self._pattern_tests(item, f"{subject}[{index}]")

	def bind_pattern(self, pattern: ast.Pattern, subject: str) -> None:
		if isinstance(pattern, ast.BindPattern):
			self.w.line(f"{self.bind(pattern.name)} = {subject}")
		elif isinstance(pattern, ast.VariantPattern) and pattern.inner is not None:
			self.bind_pattern(pattern.inner, f"{subject}.{_VARIANT_FIELD[pattern.variant]}")
		elif isinstance(pattern, ast.TuplePattern):
			for item, index in _tuple_slots(pattern):
				self.bind_pattern(item, f"{subject}[{index}]")

	def pattern_target(self, pattern: ast.Pattern) -> str:
		"""Assignment target for an irrefutable pattern."""
		if isinstance(pattern, ast.BindPattern):
			return self.bind(pattern.name)
		if isinstance(pattern, ast.TuplePattern):
			items = [self.pattern_target(p) for p in pattern.items]
			return f"({items[0]},)" if len(items) == 1 else f"({', '.join(items)})"
		if isinstance(pattern, ast.RestPattern):
			return "*_"
		return "_"

	def case_pattern(self, pattern: ast.Pattern) -> str:
		"""Python `case` pattern; binds the pattern's names in the current scope."""
		if isinstance(pattern, ast.BindPattern):
			return self.bind(pattern.name)
		if isinstance(pattern, ast.LiteralPattern):
			return _literal(pattern.value)
		if isinstance(pattern, ast.RestPattern):
			return "*_"
		if isinstance(pattern, ast.VariantPattern):
			if pattern.inner is None:
				return "None"
			return f"_rt.{pattern.variant}({self.case_pattern(pattern.inner)})"
		if isinstance(pattern, ast.TuplePattern):
			if not pattern.items:
				return "None"
			items = [self.case_pattern(p) for p in pattern.items]
			return f"({items[0]},)" if len(items) == 1 else f"({', '.join(items)})"
		return "_"

	# Expressions ------------------------------------------------------

	def expr(self, expr: ast.Expr) -> str:
		if isinstance(expr, ast.Literal):
			return _literal(expr)
		if isinstance(expr, ast.Name):
			return self.name(expr.ident)
		if isinstance(expr, ast.Path):
			return ".".join(expr.segments)
		if isinstance(expr, ast.Call):
			args = [self.expr(a) for a in expr.args]
			if isinstance(expr.func, ast.Path):
				special = _CALL_PATHS.get("::".join(expr.func.segments))
				if special is not None:
					return special(args)
			return f"{self.expr(expr.func)}({', '.join(args)})"
		if isinstance(expr, ast.MethodCall):
			receiver = self.expr(expr.receiver)
			args = [self.expr(a) for a in expr.args]
			known = _METHODS.get(expr.method)
			if known is not None and known[0] == len(args):
				return known[1].format(*args, r=receiver)
			return f"{receiver}.{_py_attr(expr.method)}({', '.join(args)})"
		if isinstance(expr, ast.Field):
			return f"{self.expr(expr.value)}.{_py_attr(expr.attr)}"
		if isinstance(expr, ast.TupleField):
			return f"{self.expr(expr.value)}[{expr.index}]"
		if isinstance(expr, ast.Index):
			return f"{self.expr(expr.value)}[{self.expr(expr.index)}]"
		if isinstance(expr, ast.Unary):
			operand = self.expr(expr.operand)
			if expr.op == "*":
				return operand
			if expr.op == "!":
				return f"(not {operand})"
			return f"(-{operand})"
		if isinstance(expr, ast.Borrow):
			return self.expr(expr.value)
		if isinstance(expr, ast.Binary):
			left, right = self.expr(expr.left), self.expr(expr.right)
			if expr.op == "/":
				return f"_rt.div({left}, {right})"
			if expr.op == "%":
				return f"_rt.rem({left}, {right})"
			return f"({left} {_BINARY.get(expr.op, expr.op)} {right})"
		if isinstance(expr, ast.Range):
			start, end = self.expr(expr.start), self.expr(expr.end)
			return f"range({start}, {end} + 1)" if expr.inclusive else f"range({start}, {end})"
		if isinstance(expr, ast.TupleLit):
			items = [self.expr(e) for e in expr.elements]
			return f"({items[0]},)" if len(items) == 1 else f"({', '.join(items)})"
		if isinstance(expr, ast.ArrayLit):
			return f"[{', '.join(self.expr(e) for e in expr.elements)}]"
		if isinstance(expr, ast.MacroCall):
			return self.macro(expr)
		if isinstance(expr, ast.AwaitExpr):
			return f"(await {self.expr(expr.value)})"
		if isinstance(expr, ast.RuntimeCall):
			return f"_rt.{expr.helper}({', '.join(self.expr(a) for a in expr.args)})"
		raise NotImplementedError(f"emitter does not handle expr {type(expr).__name__} (desugar first)")

	def name(self, ident: str) -> str:
		if ident == "None":
			return "None"
		local = self.resolve(ident)
		if local is not None:
			return local
		if ident in _VARIANT_FIELD:
			return f"_rt.{ident}"
		self.globals_seen.add(ident)
		return f"{ident}_" if keyword.iskeyword(ident) else ident

	def macro(self, expr: ast.MacroCall) -> str:
		args = ", ".join(self.expr(a) for a in expr.args)
		if expr.name == "format":
			return f"_rt.fmt({args})"
		if expr.name == "println":
			return f"print(_rt.fmt({args}))" if args else "print()"
		if expr.name == "print":
			return f'print(_rt.fmt({args}), end="")'
		if expr.name == "panic":
			return f"_rt.panic({args})"
		if expr.name == "assert":
			return f"_rt.assert_({args})"
		raise NotImplementedError(f"emitter does not handle macro {expr.name}!")


def _literal(lit: ast.Literal) -> str:
	if lit.kind == "bool":
		return "True" if lit.value else "False"
	if lit.kind == "unit":
		return "None"
	return repr(lit.value)


def _py_attr(name: str) -> str:
	return f"{name}_" if keyword.iskeyword(name) else name


def _tuple_slots(pattern: ast.TuplePattern) -> Iterator[Tuple[ast.Pattern, int]]:
	"""Items of a tuple pattern with their index; items after `..` count from the end."""
	items = pattern.items
	rest = next((idx for idx, item in enumerate(items) if isinstance(item, ast.RestPattern)), None)
	for idx, item in enumerate(items):
		if rest is None or idx < rest:
			yield item, idx
		elif idx > rest:
			yield item, idx - len(items)


def _contains_suspend(block: ast.Block) -> bool:
	for stmt in block.statements:
		if isinstance(stmt, ast.SuspendStmt):
			return True
		if isinstance(stmt, ast.LetStmt) and stmt.else_block is not None and _contains_suspend(stmt.else_block):
			return True
		if isinstance(stmt, ast.IfStmt):
			if _contains_suspend(stmt.then_block) or (stmt.else_block is not None and _contains_suspend(stmt.else_block)):
				return True
		elif isinstance(stmt, (ast.WhileStmt, ast.LoopStmt, ast.ForStmt)) and _contains_suspend(stmt.body):
			return True
		elif isinstance(stmt, ast.BlockStmt) and _contains_suspend(stmt.block):
			return True
		elif isinstance(stmt, ast.MatchStmt) and any(_contains_suspend(arm.body) for arm in stmt.arms):
			return True
	return False


class ModuleEmitter:
	"""Emits one Python module for a list of desugared Definitions."""

	def __init__(self, options: Optional[EmitOptions] = None) -> None:
		self.options = options or EmitOptions()
		self._class_names: Set[str] = set()

	def _class_name(self, item_name: str) -> str:
		base = wrapper_class_name(item_name)
		name = base
		suffix = 2
		while name in self._class_names:
			name = f"{base}{suffix}"
			suffix += 1
		self._class_names.add(name)
		return name

	def emit(self, definitions: Sequence[ast.Definition]) -> str:
		opts = self.options
		w = _Writer(opts.indent)
		if opts.header:
			origin = f" from {opts.source_name}" if opts.source_name else ""
			w.line(f"# Generated by iterator_item{origin}. Do not edit.")
		w.line("from __future__ import annotations")
		w.line()
		w.line("from typing import Any, AsyncIterator, Iterator, Optional")
		w.line()
		w.line(f"import {opts.runtime_module} as _rt")
		w.line()
		public = [d.name for d in definitions if d.is_pub]
		w.line(f"__all__ = [{', '.join(repr(n) for n in public)}]")
		for defn in definitions:
			w.line()
			w.line()
			self._emit_definition(w, defn)
		return "\n".join(w.lines) + "\n"

	def _emit_definition(self, w: _Writer, defn: ast.Definition) -> None:
		cls = self._class_name(defn.name)
		generics = {g.name for g in defn.generics}
		item_type = py_type(defn.yielded_type, generics)
		self._emit_wrapper(w, defn, cls, item_type)
		w.line()
		w.line()
		# Dry run: learn which globals the body references so locals avoid them.
		dry_run = _BodyEmitter(_Writer(self.options.indent), set())
		self._emit_function(dry_run, defn, cls, item_type, generics)
		body = _BodyEmitter(w, dry_run.globals_seen)
		self._emit_function(body, defn, cls, item_type, generics)

	def _emit_wrapper(self, w: _Writer, defn: ast.Definition, cls: str, item_type: str) -> None:
		kind = "async iterator" if defn.is_async else "iterator"
		w.line(f"class {cls}:")
		with w.block():
			w.line(f'"""Opaque {kind} returned by `{defn.name}`."""')
			w.line()
			w.line('__slots__ = ("__computation", "__size_hint")')
			w.line()
			w.line("def __init__(self, computation, size_hint):")
			with w.block():
				w.line("self.__computation = computation")
				w.line("self.__size_hint = size_hint")
			w.line()
			if defn.is_async:
				w.line("def __aiter__(self):")
				with w.block():
					w.line("return self")
				w.line()
				w.line(f"async def __anext__(self) -> {item_type}:")
				with w.block():
					w.line("state = await _rt.resume_async(self.__computation)")
					w.line("if isinstance(state, _rt.Yielded):")
					with w.block():
						w.line("return state.value")
					w.line("raise StopAsyncIteration")
			else:
				w.line("def __iter__(self):")
				with w.block():
					w.line("return self")
				w.line()
				w.line(f"def __next__(self) -> {item_type}:")
				with w.block():
					w.line("state = _rt.resume(self.__computation)")
					w.line("if isinstance(state, _rt.Yielded):")
					with w.block():
						w.line("return state.value")
					w.line("raise StopIteration")
			w.line()
			w.line("def size_hint(self) -> tuple[int, Optional[int]]:")
			with w.block():
				w.line("return self.__size_hint")
			w.line()
			w.line("def __length_hint__(self) -> int:")
			with w.block():
				w.line("return self.__size_hint[0]")

	def _emit_function(self, em: _BodyEmitter, defn: ast.Definition, cls: str, item_type: str, generics: Set[str]) -> None:
		w = em.w
		em.used.update({cls, defn.name})
		signature: List[str] = []
		for param in defn.params:
			py_name = em.bind(param.name)
			if param.receiver is not None:
				signature.append(py_name)
			else:
				signature.append(f"{py_name}: {py_type(param.type_expr, generics)}")
		result = f"AsyncIterator[{item_type}]" if defn.is_async else f"Iterator[{item_type}]"
		w.line(f"def {defn.name}({', '.join(signature)}) -> {result}:")
		with w.block():
			if defn.docs:
				w.line(_docstring(defn.docs))
			em.block_contents(ast.Block(statements=defn.prelude, loc=defn.loc))
			inputs = [py_name for py_name, kind in em.frames[0].names.values() if kind != "item"]
			prefix = "async def" if defn.is_async else "def"
			w.line(f"{prefix} __body({', '.join(inputs)}):")
			with w.block():
				em.block(defn.body)
				if not _contains_suspend(defn.body):
					# Keeps `__body` a generator: the sequence completes immediately.
					w.line("return")
					w.line("yield")
			hint = defn.attribute("size_hint")
			if hint is not None:
				w.line(f"__size_hint = _rt.size_hint({em.expr(hint.args[0])})")
			else:
				w.line("__size_hint = (0, None)")
			create = "_rt.create_async" if defn.is_async else "_rt.create"
			args = "".join(f", {p}" for p in inputs)
			w.line(f"return {cls}({create}(__body{args}), __size_hint)")


def emit_module(definitions: Sequence[ast.Definition], options: Optional[EmitOptions] = None) -> str:
	"""Emit a Python module defining every (desugared) Definition."""
	return ModuleEmitter(options).emit(definitions)


__all__ = ["EmitOptions", "ModuleEmitter", "emit_module", "py_type", "wrapper_class_name"]
