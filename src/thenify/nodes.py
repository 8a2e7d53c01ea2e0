from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal as Lit
from typing import TypeAlias, override

INDENT = "  "


# =============================================================================
# Base classes
# =============================================================================
class Node(ABC):
	"""Base class for all JavaScript tree nodes."""

	__slots__: tuple[str, ...] = ()

	@abstractmethod
	def emit(self, out: list[str], depth: int = 0) -> None:
		"""Emit this node as JavaScript code into the output buffer.

		`depth` is the indentation level of the line the node starts on. Nodes
		spanning several lines indent their children one level deeper.
		"""


class ExprNode(Node, ABC):
	"""Base class for expression nodes."""

	__slots__: tuple[str, ...] = ()

	def precedence(self) -> int:
		"""Operator precedence (higher = binds tighter). Default: primary (20)."""
		return 20


class StmtNode(Node, ABC):
	"""Base class for statement nodes."""

	__slots__: tuple[str, ...] = ()


# =============================================================================
# Expression Nodes
# =============================================================================


@dataclass(slots=True)
class Identifier(ExprNode):
	"""JS identifier: x, foo, myFunc"""

	name: str

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(self.name)


@dataclass(slots=True)
class Literal(ExprNode):
	"""JS literal: 42, "hello", true, null

	`raw` keeps the source spelling of parsed numbers and strings so the
	printer does not requote them.
	"""

	value: int | float | str | bool | None
	raw: str | None = None

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.raw is not None:
			out.append(self.raw)
		elif self.value is None:
			out.append("null")
		elif isinstance(self.value, bool):
			out.append("true" if self.value else "false")
		elif isinstance(self.value, str):
			out.append('"')
			out.append(_escape_string(self.value))
			out.append('"')
		elif isinstance(self.value, float) and self.value.is_integer():
			out.append(str(int(self.value)))
		else:
			out.append(str(self.value))


@dataclass(slots=True)
class Undefined(ExprNode):
	"""JS undefined literal.

	Use Undefined() for JS `undefined`. Literal(None) emits `null`.
	"""

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("undefined")


@dataclass(slots=True)
class This(ExprNode):
	"""JS `this`."""

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("this")


@dataclass(slots=True)
class Super(ExprNode):
	"""JS `super` in calls and member access."""

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("super")


@dataclass(slots=True)
class Raw(ExprNode):
	"""Source text passed through untouched: regexes, patterns, new.target."""

	text: str

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(self.text)


@dataclass(slots=True)
class Array(ExprNode):
	"""JS array: [a, b, c]"""

	elements: list[ExprNode]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("[")
		_emit_list(self.elements, out, depth)
		out.append("]")


@dataclass(slots=True)
class Prop(Node):
	"""One member of an object literal.

	kind: "init" for `key: value`, or "method", "get", "set" for the method
	shorthands (value is then a Function).
	"""

	key: ExprNode
	value: ExprNode
	computed: bool = False
	shorthand: bool = False
	kind: Lit["init", "method", "get", "set"] = "init"

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.shorthand:
			self.value.emit(out, depth)
			return
		if self.kind in ("get", "set"):
			out.append(self.kind)
			out.append(" ")
		if self.kind != "init" and isinstance(self.value, Function):
			if self.value.is_async:
				out.append("async ")
			if self.value.is_generator:
				out.append("*")
			_emit_key(self.key, self.computed, out, depth)
			_emit_signature(self.value.params, self.value.body, out, depth)
			return
		_emit_key(self.key, self.computed, out, depth)
		out.append(": ")
		_emit_paren(self.value, ",", "right", out, depth)


@dataclass(slots=True)
class Object(ExprNode):
	"""JS object: { key: value, ...rest }"""

	props: list[Prop | Spread]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if not self.props:
			out.append("{}")
			return
		out.append("{ ")
		for i, p in enumerate(self.props):
			if i > 0:
				out.append(", ")
			p.emit(out, depth)
		out.append(" }")


@dataclass(slots=True)
class Member(ExprNode):
	"""JS member access: obj.prop or obj?.prop"""

	obj: ExprNode
	prop: str
	optional: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		_emit_primary(self.obj, out, depth)
		out.append("?." if self.optional else ".")
		out.append(self.prop)


@dataclass(slots=True)
class Subscript(ExprNode):
	"""JS subscript access: obj[key]"""

	obj: ExprNode
	key: ExprNode
	optional: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		_emit_primary(self.obj, out, depth)
		out.append("?.[" if self.optional else "[")
		self.key.emit(out, depth)
		out.append("]")


@dataclass(slots=True)
class Call(ExprNode):
	"""JS function call: fn(args)"""

	callee: ExprNode
	args: list[ExprNode] = field(default_factory=list)
	optional: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		_emit_primary(self.callee, out, depth)
		out.append("?.(" if self.optional else "(")
		_emit_list(self.args, out, depth)
		out.append(")")


@dataclass(slots=True)
class New(ExprNode):
	"""JS new expression: new Ctor(args)"""

	ctor: ExprNode
	args: list[ExprNode] = field(default_factory=list)

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("new ")
		if isinstance(self.ctor, Call) or self.ctor.precedence() < 20:
			out.append("(")
			self.ctor.emit(out, depth)
			out.append(")")
		else:
			self.ctor.emit(out, depth)
		out.append("(")
		_emit_list(self.args, out, depth)
		out.append(")")


@dataclass(slots=True)
class Unary(ExprNode):
	"""JS unary expression: -x, !x, typeof x"""

	op: str
	operand: ExprNode

	@override
	def precedence(self) -> int:
		return _PRECEDENCE["!"]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(self.op)
		if self.op in {"typeof", "void", "delete"}:
			out.append(" ")
		elif self.op in {"+", "-"} and isinstance(self.operand, (Unary, Update)):
			# `- -x` and `+ ++x` must not fuse into another operator
			if self.operand.op.startswith(self.op):
				out.append(" ")
		_emit_paren(self.operand, "!", "unary", out, depth)


@dataclass(slots=True)
class Update(ExprNode):
	"""JS update expression: i++, --i"""

	op: Lit["++", "--"]
	target: ExprNode
	prefix: bool = False

	@override
	def precedence(self) -> int:
		return 17 if self.prefix else 18

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.prefix:
			out.append(self.op)
			_emit_primary(self.target, out, depth)
		else:
			_emit_primary(self.target, out, depth)
			out.append(self.op)


@dataclass(slots=True)
class Binary(ExprNode):
	"""JS binary or logical expression: x + y, a && b"""

	left: ExprNode
	op: str
	right: ExprNode

	@override
	def precedence(self) -> int:
		return _PRECEDENCE.get(self.op, 0)

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		# Special: ** with unary on left needs parens
		force_left = self.op == "**" and isinstance(self.left, Unary)
		if force_left or _mixes_nullish(self.op, self.left):
			out.append("(")
			self.left.emit(out, depth)
			out.append(")")
		else:
			_emit_paren(self.left, self.op, "left", out, depth)
		out.append(" ")
		out.append(self.op)
		out.append(" ")
		if _mixes_nullish(self.op, self.right):
			out.append("(")
			self.right.emit(out, depth)
			out.append(")")
		else:
			_emit_paren(self.right, self.op, "right", out, depth)


@dataclass(slots=True)
class Assign(ExprNode):
	"""JS assignment expression: x = expr, x += expr

	target is an Identifier, Member, Subscript, or a Raw destructuring pattern.
	"""

	target: ExprNode
	value: ExprNode
	op: str = "="

	@override
	def precedence(self) -> int:
		return _PRECEDENCE["="]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		self.target.emit(out, depth)
		out.append(" ")
		out.append(self.op)
		out.append(" ")
		_emit_paren(self.value, "=", "right", out, depth)


@dataclass(slots=True)
class Ternary(ExprNode):
	"""JS ternary expression: cond ? a : b"""

	cond: ExprNode
	then: ExprNode
	else_: ExprNode

	@override
	def precedence(self) -> int:
		return _PRECEDENCE["?:"]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		_emit_paren(self.cond, "?:", "left", out, depth)
		out.append(" ? ")
		_emit_paren(self.then, "=", "right", out, depth)
		out.append(" : ")
		_emit_paren(self.else_, "=", "right", out, depth)


@dataclass(slots=True)
class Sequence(ExprNode):
	"""JS comma expression: a, b, c"""

	exprs: list[ExprNode]

	@override
	def precedence(self) -> int:
		return _PRECEDENCE[","]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		for i, e in enumerate(self.exprs):
			if i > 0:
				out.append(", ")
			_emit_paren(e, ",", "left", out, depth)


@dataclass(slots=True)
class Template(ExprNode):
	"""JS template literal: `hello ${name}`

	Parts alternate: [str, ExprNode, str, ExprNode, str, ...]
	Always starts and ends with a string (may be empty). Strings are raw
	source text and are emitted without escaping.
	"""

	parts: list[str | ExprNode]  # alternating, starting with str

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("`")
		for p in self.parts:
			if isinstance(p, str):
				out.append(p)
			else:
				out.append("${")
				p.emit(out, depth)
				out.append("}")
		out.append("`")


@dataclass(slots=True)
class Spread(ExprNode):
	"""JS spread: ...expr"""

	expr: ExprNode

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("...")
		_emit_paren(self.expr, "=", "right", out, depth)


@dataclass(slots=True)
class Await(ExprNode):
	"""JS await expression: await expr"""

	expr: ExprNode

	@override
	def precedence(self) -> int:
		return _PRECEDENCE["await"]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("await ")
		_emit_paren(self.expr, "await", "unary", out, depth)


@dataclass(slots=True)
class Yield(ExprNode):
	"""JS yield expression: yield expr, yield* expr"""

	expr: ExprNode | None = None
	delegate: bool = False

	@override
	def precedence(self) -> int:
		return _PRECEDENCE["yield"]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("yield*" if self.delegate else "yield")
		if self.expr is not None:
			out.append(" ")
			_emit_paren(self.expr, "yield", "right", out, depth)


@dataclass(slots=True)
class Function(ExprNode):
	"""JS function: function name(params) { ... } or async function ...

	params hold the source text of each parameter so defaults and patterns
	survive untouched.

	generated marks functions created by the rewrite itself (loop functions,
	lazy-operand wrappers, chain steps); only those may be inlined. loose
	marks a generated function whose resolved value nobody reads.
	"""

	params: list[str]
	body: list[StmtNode]
	name: str | None = None
	is_async: bool = False
	is_generator: bool = False
	generated: bool = False
	loose: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.is_async:
			out.append("async ")
		out.append("function")
		if self.is_generator:
			out.append("*")
		if self.name:
			out.append(" ")
			out.append(self.name)
		else:
			out.append(" ")
		_emit_signature(self.params, self.body, out, depth)


@dataclass(slots=True)
class Arrow(ExprNode):
	"""JS arrow function: (x) => expr or (x) => { ... }"""

	params: list[str]
	body: list[StmtNode] | ExprNode
	is_async: bool = False

	@override
	def precedence(self) -> int:
		return _PRECEDENCE["=>"]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.is_async:
			out.append("async ")
		if len(self.params) == 1 and _is_plain_name(self.params[0]):
			out.append(self.params[0])
		else:
			out.append("(")
			out.append(", ".join(self.params))
			out.append(")")
		out.append(" => ")
		if isinstance(self.body, list):
			_emit_body(self.body, out, depth)
		elif isinstance(self.body, Object):
			out.append("(")
			self.body.emit(out, depth)
			out.append(")")
		else:
			_emit_paren(self.body, "=", "right", out, depth)


@dataclass(slots=True)
class Method(Node):
	"""A class member function: constructor, method, getter or setter."""

	key: ExprNode
	fn: Function
	kind: Lit["constructor", "method", "get", "set"] = "method"
	static: bool = False
	computed: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.static:
			out.append("static ")
		if self.kind in ("get", "set"):
			out.append(self.kind)
			out.append(" ")
		if self.fn.is_async:
			out.append("async ")
		if self.fn.is_generator:
			out.append("*")
		_emit_key(self.key, self.computed, out, depth)
		_emit_signature(self.fn.params, self.fn.body, out, depth)


@dataclass(slots=True)
class Field(Node):
	"""A class field: name = value;"""

	key: ExprNode
	value: ExprNode | None = None
	static: bool = False
	computed: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.static:
			out.append("static ")
		_emit_key(self.key, self.computed, out, depth)
		if self.value is not None:
			out.append(" = ")
			_emit_paren(self.value, "=", "right", out, depth)
		out.append(";")


@dataclass(slots=True)
class Class(ExprNode):
	"""JS class: class Name extends Base { ... }"""

	name: str | None
	superclass: ExprNode | None
	members: list[Method | Field]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("class")
		if self.name:
			out.append(" ")
			out.append(self.name)
		if self.superclass is not None:
			out.append(" extends ")
			_emit_primary(self.superclass, out, depth)
		if not self.members:
			out.append(" {}")
			return
		out.append(" {\n")
		for member in self.members:
			out.append(INDENT * (depth + 1))
			member.emit(out, depth + 1)
			out.append("\n")
		out.append(INDENT * depth)
		out.append("}")


# =============================================================================
# Statement Nodes
# =============================================================================


@dataclass(slots=True)
class ExprStmt(StmtNode):
	"""JS expression statement: expr;"""

	expr: ExprNode

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		buf: list[str] = []
		self.expr.emit(buf, depth)
		code = "".join(buf)
		if code.startswith(_AMBIGUOUS_STATEMENT_STARTS):
			out.append("(")
			out.append(code)
			out.append(")")
		else:
			out.append(code)
		out.append(";")


@dataclass(slots=True)
class Declarator(Node):
	"""One `name = init` entry of a declaration.

	target is the source text of the binding; pattern is set for
	destructuring targets, whose bound names are listed in names.
	"""

	target: str
	init: ExprNode | None = None
	pattern: bool = False
	names: list[str] = field(default_factory=list)

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(self.target)
		if self.init is not None:
			out.append(" = ")
			_emit_paren(self.init, ",", "right", out, depth)


@dataclass(slots=True)
class VarDecl(StmtNode):
	"""JS declaration: var a = 1, b; let x; const y = 2;"""

	kind: Lit["var", "let", "const"]
	declarators: list[Declarator]

	def emit_head(self, out: list[str], depth: int = 0) -> None:
		"""Emit without the trailing semicolon, as used in `for` heads."""
		out.append(self.kind)
		out.append(" ")
		for i, d in enumerate(self.declarators):
			if i > 0:
				out.append(", ")
			d.emit(out, depth)

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		self.emit_head(out, depth)
		out.append(";")


@dataclass(slots=True)
class FunctionDecl(StmtNode):
	"""JS function declaration: function name(params) { ... }"""

	fn: Function

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		self.fn.emit(out, depth)


@dataclass(slots=True)
class ClassDecl(StmtNode):
	"""JS class declaration."""

	cls: Class

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		self.cls.emit(out, depth)


@dataclass(slots=True)
class Return(StmtNode):
	"""JS return statement: return expr;"""

	value: ExprNode | None = None

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("return")
		if self.value is not None:
			out.append(" ")
			self.value.emit(out, depth)
		out.append(";")


@dataclass(slots=True)
class If(StmtNode):
	"""JS if statement: if (cond) { ... } else { ... }"""

	cond: ExprNode
	then: list[StmtNode]
	else_: list[StmtNode] = field(default_factory=list)

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("if (")
		self.cond.emit(out, depth)
		out.append(") ")
		_emit_body(self.then, out, depth)
		if self.else_:
			out.append(" else ")
			if len(self.else_) == 1 and isinstance(self.else_[0], If):
				self.else_[0].emit(out, depth)
			else:
				_emit_body(self.else_, out, depth)


@dataclass(slots=True)
class While(StmtNode):
	"""JS while loop: while (cond) { ... }"""

	cond: ExprNode
	body: list[StmtNode]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("while (")
		self.cond.emit(out, depth)
		out.append(") ")
		_emit_body(self.body, out, depth)


@dataclass(slots=True)
class DoWhile(StmtNode):
	"""JS do-while loop: do { ... } while (cond);"""

	body: list[StmtNode]
	cond: ExprNode

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("do ")
		_emit_body(self.body, out, depth)
		out.append(" while (")
		self.cond.emit(out, depth)
		out.append(");")


@dataclass(slots=True)
class For(StmtNode):
	"""JS for loop: for (init; test; update) { ... }"""

	init: VarDecl | ExprNode | None
	test: ExprNode | None
	update: ExprNode | None
	body: list[StmtNode]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("for (")
		if isinstance(self.init, VarDecl):
			self.init.emit_head(out, depth)
		elif self.init is not None:
			self.init.emit(out, depth)
		out.append(";")
		if self.test is not None:
			out.append(" ")
			self.test.emit(out, depth)
		out.append(";")
		if self.update is not None:
			out.append(" ")
			self.update.emit(out, depth)
		out.append(") ")
		_emit_body(self.body, out, depth)


@dataclass(slots=True)
class ForIn(StmtNode):
	"""JS enumeration loop: for (k in obj) { ... } or for (x of items) { ... }"""

	left: VarDecl | ExprNode
	right: ExprNode
	body: list[StmtNode]
	of: bool = False
	is_await: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("for await (" if self.is_await else "for (")
		if isinstance(self.left, VarDecl):
			self.left.emit_head(out, depth)
		else:
			self.left.emit(out, depth)
		out.append(" of " if self.of else " in ")
		self.right.emit(out, depth)
		out.append(") ")
		_emit_body(self.body, out, depth)


@dataclass(slots=True)
class Case(Node):
	"""One clause of a switch; test is None for `default`."""

	test: ExprNode | None
	body: list[StmtNode]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		if self.test is None:
			out.append("default:")
		else:
			out.append("case ")
			self.test.emit(out, depth)
			out.append(":")
		for stmt in self.body:
			out.append("\n")
			out.append(INDENT * (depth + 1))
			stmt.emit(out, depth + 1)


@dataclass(slots=True)
class Switch(StmtNode):
	"""JS switch statement."""

	disc: ExprNode
	cases: list[Case]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("switch (")
		self.disc.emit(out, depth)
		out.append(") {")
		for case in self.cases:
			out.append("\n")
			out.append(INDENT * (depth + 1))
			case.emit(out, depth + 1)
		out.append("\n")
		out.append(INDENT * depth)
		out.append("}")


@dataclass(slots=True)
class Break(StmtNode):
	"""JS break statement."""

	label: str | None = None

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(f"break {self.label};" if self.label else "break;")


@dataclass(slots=True)
class Continue(StmtNode):
	"""JS continue statement."""

	label: str | None = None

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(f"continue {self.label};" if self.label else "continue;")


@dataclass(slots=True)
class Labeled(StmtNode):
	"""JS labeled statement: name: stmt"""

	label: str
	body: StmtNode

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(self.label)
		out.append(": ")
		self.body.emit(out, depth)


@dataclass(slots=True)
class Try(StmtNode):
	"""JS try statement. handler and finalizer are None when absent."""

	block: list[StmtNode]
	param: str | None = None
	handler: list[StmtNode] | None = None
	finalizer: list[StmtNode] | None = None

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("try ")
		_emit_body(self.block, out, depth)
		if self.handler is not None:
			out.append(" catch ")
			if self.param is not None:
				out.append("(")
				out.append(self.param)
				out.append(") ")
			_emit_body(self.handler, out, depth)
		if self.finalizer is not None:
			out.append(" finally ")
			_emit_body(self.finalizer, out, depth)


@dataclass(slots=True)
class Throw(StmtNode):
	"""JS throw statement: throw expr;"""

	value: ExprNode

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("throw ")
		self.value.emit(out, depth)
		out.append(";")


@dataclass(slots=True)
class Block(StmtNode):
	"""JS block: { ... } - a sequence of statements."""

	body: list[StmtNode]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		_emit_body(self.body, out, depth)


@dataclass(slots=True)
class Verbatim(StmtNode):
	"""A statement kept as source text: imports, `debugger`, directives."""

	text: str

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append(self.text)


@dataclass(slots=True)
class Export(StmtNode):
	"""JS export of a declaration or default expression."""

	declaration: StmtNode | ExprNode
	default: bool = False

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		out.append("export default " if self.default else "export ")
		self.declaration.emit(out, depth)
		if self.default and isinstance(self.declaration, ExprNode):
			if not isinstance(self.declaration, (Function, Class)):
				out.append(";")


@dataclass(slots=True)
class Program(Node):
	"""A whole script or module."""

	body: list[StmtNode]

	@override
	def emit(self, out: list[str], depth: int = 0) -> None:
		for i, stmt in enumerate(self.body):
			if i > 0:
				out.append("\n")
			stmt.emit(out, depth)


FunctionLike: TypeAlias = Function | Arrow
FUNCTION_TYPES: tuple[type[Node], ...] = (Function, Arrow, Class)
LOOP_TYPES: tuple[type[StmtNode], ...] = (While, DoWhile, For, ForIn)


# =============================================================================
# Emit logic
# =============================================================================


def emit(node: Node) -> str:
	"""Emit a node as JavaScript code."""
	out: list[str] = []
	node.emit(out)
	return "".join(out)


# Operator precedence table (higher = binds tighter)
_PRECEDENCE: dict[str, int] = {
	# Primary
	".": 20,
	"[]": 20,
	"()": 20,
	# Unary
	"!": 17,
	"await": 17,
	# Exponentiation (right-assoc)
	"**": 16,
	# Multiplicative
	"*": 15,
	"/": 15,
	"%": 15,
	# Additive
	"+": 14,
	"-": 14,
	# Shift
	"<<": 13,
	">>": 13,
	">>>": 13,
	# Relational
	"<": 12,
	"<=": 12,
	">": 12,
	">=": 12,
	"instanceof": 12,
	"in": 12,
	# Equality
	"==": 11,
	"!=": 11,
	"===": 11,
	"!==": 11,
	# Bitwise
	"&": 10,
	"^": 9,
	"|": 8,
	# Logical
	"&&": 7,
	"||": 6,
	"??": 6,
	# Ternary
	"?:": 4,
	# Assignment and arrows
	"=": 3,
	"=>": 3,
	"yield": 2,
	# Comma
	",": 1,
}

_RIGHT_ASSOC = {"**", "=", "?:"}

# Expression statements starting with these would parse as declarations
_AMBIGUOUS_STATEMENT_STARTS = (
	"function ",
	"function*",
	"async function",
	"class ",
	"class{",
	"{",
	"let [",
)


def _escape_string(s: str) -> str:
	"""Escape for double-quoted JS string literals."""
	return (
		s.replace("\\", "\\\\")
		.replace('"', '\\"')
		.replace("\n", "\\n")
		.replace("\r", "\\r")
		.replace("\t", "\\t")
		.replace("\b", "\\b")
		.replace("\f", "\\f")
		.replace("\v", "\\v")
		.replace("\x00", "\\x00")
		.replace("\u2028", "\\u2028")
		.replace("\u2029", "\\u2029")
	)


def _is_plain_name(text: str) -> bool:
	return text.isidentifier() or text.replace("$", "_").isidentifier()


def _mixes_nullish(op: str, child: ExprNode) -> bool:
	"""`??` cannot be mixed with `&&`/`||` without parentheses."""
	if not isinstance(child, Binary):
		return False
	if op == "??":
		return child.op in {"&&", "||"}
	return op in {"&&", "||"} and child.op == "??"


def _emit_paren(
	node: ExprNode, parent_op: str, side: str, out: list[str], depth: int
) -> None:
	"""Emit child with parens if needed for precedence."""
	child_prec = node.precedence()
	parent_prec = _PRECEDENCE.get(parent_op, 0)
	needs_parens = False
	if child_prec < parent_prec:
		needs_parens = True
	elif child_prec == parent_prec and side != "unary":
		# Handle associativity
		if parent_op in _RIGHT_ASSOC:
			needs_parens = side == "left"
		else:
			needs_parens = side == "right"

	if needs_parens:
		out.append("(")
		node.emit(out, depth)
		out.append(")")
	else:
		node.emit(out, depth)


def _emit_primary(node: ExprNode, out: list[str], depth: int) -> None:
	"""Emit with parens if not primary precedence."""
	if node.precedence() < 18 or isinstance(node, (Function, Class)):
		out.append("(")
		node.emit(out, depth)
		out.append(")")
	else:
		node.emit(out, depth)


def _emit_list(items: Sequence[ExprNode], out: list[str], depth: int) -> None:
	for i, item in enumerate(items):
		if i > 0:
			out.append(", ")
		_emit_paren(item, ",", "right", out, depth)


def _emit_key(key: ExprNode, computed: bool, out: list[str], depth: int) -> None:
	if computed:
		out.append("[")
		key.emit(out, depth)
		out.append("]")
	else:
		key.emit(out, depth)


def _emit_signature(
	params: Sequence[str], body: Sequence[StmtNode], out: list[str], depth: int
) -> None:
	out.append("(")
	out.append(", ".join(params))
	out.append(") ")
	_emit_body(body, out, depth)


def _emit_body(stmts: Sequence[StmtNode], out: list[str], depth: int) -> None:
	"""Emit a braced statement list, one statement per line."""
	if not stmts:
		out.append("{}")
		return
	out.append("{\n")
	for stmt in stmts:
		out.append(INDENT * (depth + 1))
		stmt.emit(out, depth + 1)
		out.append("\n")
	out.append(INDENT * depth)
	out.append("}")
