"""
Expression hoister.

Once a function becomes a promise chain, every `await` splits the statement
it sits in: whatever comes before the await runs in one step, the rest in
the next. For that split to keep JavaScript's left-to-right evaluation, the
operands that are evaluated before the last awaiting operand are computed
into temporaries first:

	f(a(), await b())        _temp = a(); f(_temp, await b())
	g(a(), c(), await b())   _temp = [a(), c()]; g(_temp[0], _temp[1], await b())
	{ a: a(), b: await b() } _temp = {}; _temp.a = a(); _temp.b = await b(); _temp

Operands that are only evaluated sometimes (the right side of `&&`, `||`
and `??`, the branches of `?:`, and everything after the first expression
of a comma sequence) move into generated async functions instead, whose
awaited call takes their place.
"""

from __future__ import annotations

import logging
from copy import deepcopy

from thenify.nodes import (
	FUNCTION_TYPES,
	Arrow,
	Array,
	Assign,
	Await,
	Binary,
	Call,
	ExprNode,
	ExprStmt,
	Function,
	Identifier,
	If,
	Literal,
	Member,
	New,
	Object,
	Prop,
	Raw,
	Return,
	Sequence,
	Spread,
	StmtNode,
	Subscript,
	Template,
	Ternary,
	Throw,
	Try,
	Unary,
	Undefined,
	Update,
)
from thenify.scope import Scope
from thenify.visitor import contains_await, walk

logger = logging.getLogger(__name__)

LOGICAL_OPERATORS = frozenset({"&&", "||", "??"})
LOGICAL_ASSIGNMENTS = frozenset({"&&=", "||=", "??="})

# Words that cannot name a function expression
RESERVED_WORDS = frozenset(
	{
		"arguments", "await", "break", "case", "catch", "class", "const", "continue",
		"debugger", "default", "delete", "do", "else", "enum", "eval", "export",
		"extends", "false", "finally", "for", "function", "if", "implements",
		"import", "in", "instanceof", "interface", "let", "new", "null", "package",
		"private", "protected", "public", "return", "static", "super", "switch",
		"this", "throw", "true", "try", "typeof", "var", "void", "while", "with",
		"yield",
	}
)


def _awaits(expr: ExprNode | Prop | Spread) -> bool:
	return not isinstance(expr, FUNCTION_TYPES) and contains_await(expr)


def lazy(expr: ExprNode) -> Call:
	"""Wrap an operand that may not run: `(async function () { return expr; })()`"""
	return Call(Function([], [Return(expr)], is_async=True, generated=True), [])


def _unspread(expr: ExprNode) -> ExprNode:
	return expr.expr if isinstance(expr, Spread) else expr


def _respread(original: ExprNode, replacement: ExprNode) -> ExprNode:
	return Spread(replacement) if isinstance(original, Spread) else replacement


class ExpressionHoister:
	scope: Scope
	_temps: set[str]
	_guarded: int

	def __init__(self, scope: Scope) -> None:
		self.scope = scope
		self._temps = set()
		self._guarded = 0

	def run(self, stmts: list[StmtNode]) -> list[StmtNode]:
		out: list[StmtNode] = []
		for stmt in stmts:
			out.extend(self._statement(stmt))
		return out

	def _statement(self, stmt: StmtNode) -> list[StmtNode]:
		pre: list[StmtNode] = []
		if isinstance(stmt, ExprStmt):
			stmt.expr = self._expr(stmt.expr, pre)
		elif isinstance(stmt, Return) and stmt.value is not None:
			value = stmt.value
			# return await x == return x, unless a catch or finally must wait for x
			if isinstance(value, Await) and not self._guarded:
				value = value.expr
			stmt.value = self._expr(value, pre)
		elif isinstance(stmt, Throw):
			stmt.value = self._expr(stmt.value, pre)
		elif isinstance(stmt, If):
			stmt.cond = self._expr(stmt.cond, pre)
			stmt.then = self.run(stmt.then)
			stmt.else_ = self.run(stmt.else_)
		elif isinstance(stmt, Try):
			stmt.block = self._run_guarded(stmt.block)
			if stmt.handler is not None:
				if stmt.finalizer is not None:
					stmt.handler = self._run_guarded(stmt.handler)
				else:
					stmt.handler = self.run(stmt.handler)
			if stmt.finalizer is not None:
				stmt.finalizer = self.run(stmt.finalizer)
		return [*pre, stmt]

	def _run_guarded(self, stmts: list[StmtNode]) -> list[StmtNode]:
		self._guarded += 1
		try:
			return self.run(stmts)
		finally:
			self._guarded -= 1

	# --- Expressions --------------------------------------------------------

	def _expr(self, expr: ExprNode, pre: list[StmtNode]) -> ExprNode:
		"""Rewrite `expr`, appending the statements that must run first to `pre`."""
		if not _awaits(expr):
			return expr
		if isinstance(expr, Await):
			expr.expr = self._expr(expr.expr, pre)
		elif isinstance(expr, Binary):
			if expr.op in LOGICAL_OPERATORS:
				return self._logical(expr, pre)
			expr.left, expr.right = self._ordered([expr.left, expr.right], pre)
		elif isinstance(expr, Ternary):
			return self._ternary(expr, pre)
		elif isinstance(expr, Sequence):
			return self._sequence(expr, pre)
		elif isinstance(expr, Call):
			return self._call(expr, pre)
		elif isinstance(expr, New):
			expr.ctor, *expr.args = self._ordered([expr.ctor, *expr.args], pre, names_stay=1)
		elif isinstance(expr, Array):
			expr.elements = self._ordered(expr.elements, pre)
		elif isinstance(expr, Template):
			self._template(expr, pre)
		elif isinstance(expr, Object):
			return self._object(expr, pre)
		elif isinstance(expr, Assign):
			return self._assign(expr, pre)
		elif isinstance(expr, Member):
			expr.obj = self._expr(expr.obj, pre)
		elif isinstance(expr, Subscript):
			expr.obj, expr.key = self._ordered([expr.obj, expr.key], pre)
		elif isinstance(expr, Unary):
			expr.operand = self._expr(expr.operand, pre)
		elif isinstance(expr, Update):
			expr.target = self._expr(expr.target, pre)
		elif isinstance(expr, Spread):
			expr.expr = self._expr(expr.expr, pre)
		return expr

	def _constant(self, expr: ExprNode) -> bool:
		if isinstance(expr, Identifier):
			return expr.name in self._temps
		if isinstance(expr, Template):
			return len(expr.parts) == 1
		return isinstance(expr, (Literal, Undefined, Raw, Function, Arrow))

	def _temp(self) -> str:
		name = self.scope.declare("temp")
		self._temps.add(name)
		return name

	def _ordered(
		self, operands: list[ExprNode], pre: list[StmtNode], names_stay: int = 0
	) -> list[ExprNode]:
		"""Hoist the operands evaluated before the rightmost awaiting one.

		The first `names_stay` operands are left in place when they are plain
		names; those are callees and the objects of member targets.
		"""
		awaiting = [i for i, op in enumerate(operands) if _awaits(op)]
		if not awaiting:
			return operands
		last = awaiting[-1]
		result = list(operands)
		leading = [
			i
			for i in range(last)
			if not self._constant(_unspread(operands[i]))
			and not (i < names_stay and isinstance(operands[i], Identifier))
		]
		if len(leading) == 1:
			i = leading[0]
			result[i] = _respread(operands[i], self._hoist(_unspread(operands[i]), pre))
		elif leading:
			temp = self._temp()
			values = self._expr(Array([_unspread(operands[i]) for i in leading]), pre)
			pre.append(ExprStmt(Assign(Identifier(temp), values)))
			for k, i in enumerate(leading):
				element = Subscript(Identifier(temp), Literal(k))
				result[i] = _respread(operands[i], element)
		for i in range(last, len(result)):
			result[i] = self._expr(result[i], pre)
		return result

	def _logical(self, expr: Binary, pre: list[StmtNode]) -> ExprNode:
		expr.left = self._expr(expr.left, pre)
		if not _awaits(expr.right):
			return expr
		expr.right = lazy(expr.right)
		return Await(expr)

	def _ternary(self, expr: Ternary, pre: list[StmtNode]) -> ExprNode:
		expr.cond = self._expr(expr.cond, pre)
		wrapped = False
		if _awaits(expr.then):
			expr.then = lazy(expr.then)
			wrapped = True
		if _awaits(expr.else_):
			expr.else_ = lazy(expr.else_)
			wrapped = True
		return Await(expr) if wrapped else expr

	def _sequence(self, expr: Sequence, pre: list[StmtNode]) -> ExprNode:
		first, *rest = expr.exprs
		if not any(_awaits(e) for e in rest):
			expr.exprs[0] = self._expr(first, pre)
			return expr
		body: list[StmtNode] = [ExprStmt(e) for e in expr.exprs[:-1]]
		body.append(Return(expr.exprs[-1]))
		fn = Function([], body, is_async=True, generated=True)
		return Await(Call(fn, []))

	def _call(self, expr: Call, pre: list[StmtNode]) -> ExprNode:
		callee = expr.callee
		if isinstance(callee, Member):
			callee.obj, *expr.args = self._ordered(
				[callee.obj, *expr.args], pre, names_stay=1
			)
		elif isinstance(callee, Subscript):
			callee.obj, callee.key, *expr.args = self._ordered(
				[callee.obj, callee.key, *expr.args], pre, names_stay=1
			)
		else:
			expr.callee, *expr.args = self._ordered(
				[callee, *expr.args], pre, names_stay=1
			)
		return expr

	def _template(self, expr: Template, pre: list[StmtNode]) -> None:
		slots = [i for i, part in enumerate(expr.parts) if not isinstance(part, str)]
		values = self._ordered([expr.parts[i] for i in slots], pre)  # pyright: ignore[reportArgumentType]
		for i, value in zip(slots, values, strict=True):
			expr.parts[i] = value

	def _assign(self, expr: Assign, pre: list[StmtNode]) -> ExprNode:
		target = expr.target
		updates = expr.op != "=" and isinstance(target, (Identifier, Member, Subscript))
		if updates and _awaits(expr.value):
			# The target is read before the value is computed
			self._pin(target, pre)
			read = deepcopy(target)
			if expr.op in LOGICAL_ASSIGNMENTS:
				update = Assign(target, expr.value)
				return self._expr(Binary(read, expr.op[:-1], update), pre)
			expr.value = Binary(read, expr.op[:-1], expr.value)
			expr.op = "="
		if isinstance(target, Member):
			target.obj, expr.value = self._ordered(
				[target.obj, expr.value], pre, names_stay=1
			)
		elif isinstance(target, Subscript):
			target.obj, target.key, expr.value = self._ordered(
				[target.obj, target.key, expr.value], pre, names_stay=1
			)
		else:
			expr.value = self._expr(expr.value, pre)
		return expr

	def _pin(self, target: ExprNode, pre: list[StmtNode]) -> None:
		"""Evaluate a member target's object and key once, ahead of an update."""
		if not isinstance(target, (Member, Subscript)):
			return
		if not (self._constant(target.obj) or isinstance(target.obj, Identifier)):
			target.obj = self._hoist(target.obj, pre)
		if isinstance(target, Subscript) and not self._constant(target.key):
			target.key = self._hoist(target.key, pre)

	def _hoist(self, expr: ExprNode, pre: list[StmtNode]) -> Identifier:
		temp = self._temp()
		pre.append(ExprStmt(Assign(Identifier(temp), self._expr(expr, pre))))
		return Identifier(temp)

	def _object(self, expr: Object, pre: list[StmtNode]) -> ExprNode:
		awaiting = [i for i, p in enumerate(expr.props) if _awaits(p)]
		if not awaiting:
			return expr
		accessors = any(isinstance(p, Prop) and p.kind in ("get", "set") for p in expr.props)
		if awaiting == [0] or accessors:
			if accessors:
				logger.warning(
					"Object literal with accessors in %s is not reordered around await",
					self.scope.name or "<anonymous>",
				)
			for p in expr.props:
				if isinstance(p, Spread):
					p.expr = self._expr(p.expr, pre)
				elif p.computed:
					p.key, p.value = self._ordered([p.key, p.value], pre)
				else:
					p.value = self._expr(p.value, pre)
			return expr

		temp = self._temp()
		pre.append(ExprStmt(Assign(Identifier(temp), Object([]))))
		for p in expr.props:
			step: ExprNode
			if isinstance(p, Spread):
				step = Call(Member(Identifier("Object"), "assign"), [Identifier(temp), p.expr])
			else:
				step = Assign(_property_target(temp, p), _named_value(p))
			pre.append(ExprStmt(self._expr(step, pre)))
		logger.debug("Built object literal incrementally into %s", temp)
		return Identifier(temp)


def _named_value(prop: Prop) -> ExprNode:
	"""The value of `prop`, named after its key when it is an anonymous function.

	Assigning to `_temp.key` does not give the function the name the literal
	would have. The name is skipped when the body refers to the same name.
	"""
	value = prop.value
	if prop.computed or not isinstance(value, Function) or value.name:
		return value
	key = prop.key
	name: object = None
	if isinstance(key, Identifier):
		name = key.name
	elif isinstance(key, Literal):
		name = key.value
	if not isinstance(name, str) or not name.isidentifier() or name in RESERVED_WORDS:
		return value
	if any(
		isinstance(n, Identifier) and n.name == name
		for n in walk(value.body, skip_functions=False)
	):
		return value
	value.name = name
	return value


def _property_target(temp: str, prop: Prop) -> ExprNode:
	key = prop.key
	if prop.computed:
		return Subscript(Identifier(temp), key)
	if isinstance(key, Identifier):
		return Member(Identifier(temp), key.name)
	if isinstance(key, Literal) and isinstance(key.value, str) and key.value.isidentifier():
		return Member(Identifier(temp), key.value)
	return Subscript(Identifier(temp), key)


def hoist_expressions(body: list[StmtNode], scope: Scope) -> list[StmtNode]:
	return ExpressionHoister(scope).run(body)
