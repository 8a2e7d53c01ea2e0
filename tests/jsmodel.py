"""
A small model interpreter for the JavaScript the transform produces.

It evaluates `thenify.nodes` trees directly: functions and closures, `var`,
the sync control flow, objects and arrays, and promises with a microtask
queue. `await` and async functions are refused, so running transformed code
also proves none are left. Effects are recorded through the `log` global.

Only what the tests need is modelled. Numbers are Python ints and floats,
strings are Python strs, objects are dicts and arrays are lists.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from thenify.config import TransformOptions
from thenify.nodes import (
	Array,
	Arrow,
	Assign,
	Await,
	Binary,
	Block,
	Break,
	Call,
	Class,
	ClassDecl,
	Continue,
	DoWhile,
	ExprNode,
	ExprStmt,
	Export,
	For,
	ForIn,
	Function,
	FunctionDecl,
	Identifier,
	If,
	Labeled,
	Literal,
	Member,
	New,
	Object,
	Program,
	Prop,
	Raw,
	Return,
	Sequence,
	Spread,
	StmtNode,
	Subscript,
	Switch,
	Template,
	Ternary,
	This,
	Throw,
	Try,
	Unary,
	Undefined,
	Update,
	VarDecl,
	Verbatim,
	While,
)
from thenify.parser import parse
from thenify.transform import transform_source


class _Undefined:
	def __repr__(self) -> str:
		return "undefined"


UNDEFINED: Any = _Undefined()


class JSThrow(Exception):
	"""A JavaScript exception travelling through the interpreter."""

	def __init__(self, value: Any) -> None:
		super().__init__(value)
		self.value = value


class _Return(Exception):
	def __init__(self, value: Any) -> None:
		self.value = value


class _Break(Exception):
	def __init__(self, label: str | None) -> None:
		self.label = label


class _Continue(Exception):
	def __init__(self, label: str | None) -> None:
		self.label = label


class Env:
	def __init__(self, parent: Env | None = None) -> None:
		self.vars: dict[str, Any] = {}
		self.parent = parent

	def find(self, name: str) -> Env | None:
		env: Env | None = self
		while env is not None:
			if name in env.vars:
				return env
			env = env.parent
		return None

	def root(self) -> Env:
		env = self
		while env.parent is not None:
			env = env.parent
		return env


@dataclass(eq=False)
class JSFunction:
	node: Function | Arrow
	closure: Env

	@property
	def name(self) -> str | None:
		return self.node.name if isinstance(self.node, Function) else None


@dataclass(eq=False)
class JSPromise:
	model: Model
	state: str = "pending"
	value: Any = None
	reactions: list[tuple[Callable[[Any], None], Callable[[Any], None]]] = field(
		default_factory=list
	)
	_resolving: bool = False

	def resolve(self, value: Any) -> None:
		if self.state != "pending" or self._resolving:
			return
		if value is self:
			self._settle("rejected", error("TypeError", "promise resolved with itself"))
			return
		if isinstance(value, JSPromise):
			self._resolving = True
			self.model.enqueue(lambda: value.subscribe(self._fulfill, self._reject))
			return
		self._settle("fulfilled", value)

	def reject(self, reason: Any) -> None:
		if self.state != "pending" or self._resolving:
			return
		self._settle("rejected", reason)

	def _fulfill(self, value: Any) -> None:
		self._resolving = False
		self.resolve(value)

	def _reject(self, reason: Any) -> None:
		self._resolving = False
		self.reject(reason)

	def _settle(self, state: str, value: Any) -> None:
		self.state = state
		self.value = value
		reactions, self.reactions = self.reactions, []
		for on_ok, on_err in reactions:
			self._schedule(on_ok, on_err)

	def _schedule(self, on_ok: Callable[[Any], None], on_err: Callable[[Any], None]) -> None:
		handler = on_ok if self.state == "fulfilled" else on_err
		value = self.value
		self.model.enqueue(lambda: handler(value))

	def subscribe(self, on_ok: Callable[[Any], None], on_err: Callable[[Any], None]) -> None:
		if self.state == "pending":
			self.reactions.append((on_ok, on_err))
		else:
			self._schedule(on_ok, on_err)

	def then(self, on_fulfilled: Any = UNDEFINED, on_rejected: Any = UNDEFINED) -> JSPromise:
		child = JSPromise(self.model)

		def react(handler: Any, passthrough: Callable[[Any], None]) -> Callable[[Any], None]:
			def run(value: Any) -> None:
				if not callable_value(handler):
					passthrough(value)
					return
				try:
					result = self.model.call(handler, UNDEFINED, [value])
				except JSThrow as exc:
					child.reject(exc.value)
				else:
					child.resolve(result)

			return run

		self.subscribe(react(on_fulfilled, child.resolve), react(on_rejected, child.reject))
		return child


def error(name: str, message: str) -> dict[str, Any]:
	return {"name": name, "message": message}


def callable_value(value: Any) -> bool:
	return isinstance(value, JSFunction) or callable(value)


def truthy(value: Any) -> bool:
	if value is UNDEFINED or value is None or value is False:
		return False
	if isinstance(value, bool):
		return value
	if isinstance(value, (int, float)):
		return value != 0 and value == value
	if isinstance(value, str):
		return value != ""
	return True


def to_str(value: Any) -> str:
	if value is UNDEFINED:
		return "undefined"
	if value is None:
		return "null"
	if isinstance(value, bool):
		return "true" if value else "false"
	if isinstance(value, float) and value.is_integer():
		return str(int(value))
	if isinstance(value, list):
		return ",".join("" if v is None or v is UNDEFINED else to_str(v) for v in value)
	if isinstance(value, dict):
		return "[object Object]"
	return str(value)


def to_num(value: Any) -> int | float:
	if isinstance(value, bool):
		return int(value)
	if isinstance(value, (int, float)):
		return value
	if value is None:
		return 0
	if isinstance(value, str):
		try:
			return float(value) if "." in value else int(value)
		except ValueError:
			return float("nan")
	return float("nan")


def strict_equals(a: Any, b: Any) -> bool:
	if isinstance(a, bool) or isinstance(b, bool):
		return isinstance(a, bool) and isinstance(b, bool) and a == b
	if isinstance(a, (int, float)) and isinstance(b, (int, float)):
		return a == b
	if isinstance(a, str) and isinstance(b, str):
		return a == b
	return a is b


def typeof(value: Any) -> str:
	if value is UNDEFINED:
		return "undefined"
	if isinstance(value, bool):
		return "boolean"
	if isinstance(value, (int, float)):
		return "number"
	if isinstance(value, str):
		return "string"
	if callable_value(value):
		return "function"
	return "object"


def _number(value: float) -> int | float:
	if isinstance(value, float) and value.is_integer():
		return int(value)
	return value


_ARITHMETIC: dict[str, Callable[[Any, Any], Any]] = {
	"-": lambda a, b: to_num(a) - to_num(b),
	"*": lambda a, b: to_num(a) * to_num(b),
	"/": lambda a, b: _number(to_num(a) / to_num(b)),
	"%": lambda a, b: to_num(a) % to_num(b),
	"**": lambda a, b: to_num(a) ** to_num(b),
	"<": lambda a, b: a < b,
	">": lambda a, b: a > b,
	"<=": lambda a, b: a <= b,
	">=": lambda a, b: a >= b,
}


def _add(a: Any, b: Any) -> Any:
	if isinstance(a, (str, list, dict)) or isinstance(b, (str, list, dict)):
		return to_str(a) + to_str(b)
	return to_num(a) + to_num(b)


class Model:
	"""Runs a Program and drives its microtasks."""

	def __init__(self) -> None:
		self.queue: deque[Callable[[], None]] = deque()
		self.log: list[Any] = []
		self.globals = Env()
		self._install_globals()

	# --- Globals ------------------------------------------------------------

	def _install_globals(self) -> None:
		g = self.globals.vars
		g["undefined"] = UNDEFINED
		g["this"] = UNDEFINED
		g["log"] = self._log
		g["Promise"] = {"resolve": self.resolved, "reject": self.rejected}
		g["Array"] = {"from": lambda items: list(items), "isArray": lambda x: isinstance(x, list)}
		g["Object"] = {"assign": self._assign, "keys": lambda obj: list(obj.keys())}
		g["Error"] = lambda message=UNDEFINED: error("Error", to_str(message))
		# Settle with the argument after one microtask
		g["delay"] = lambda value=UNDEFINED: self.resolved(UNDEFINED).then(lambda _: value)
		g["fail"] = lambda message=UNDEFINED: self.rejected(error("Error", to_str(message)))

	def _log(self, *args: Any) -> Any:
		self.log.append(args[0] if len(args) == 1 else args)
		return UNDEFINED

	def _assign(self, target: dict[str, Any], *sources: Any) -> dict[str, Any]:
		for source in sources:
			if isinstance(source, dict):
				target.update(source)
		return target

	def resolved(self, value: Any = UNDEFINED) -> JSPromise:
		if isinstance(value, JSPromise):
			return value
		promise = JSPromise(self)
		promise.resolve(value)
		return promise

	def rejected(self, reason: Any = UNDEFINED) -> JSPromise:
		promise = JSPromise(self)
		promise.reject(reason)
		return promise

	def define(self, name: str, value: Any) -> None:
		self.globals.vars[name] = value

	# --- Running ------------------------------------------------------------

	def enqueue(self, job: Callable[[], None]) -> None:
		self.queue.append(job)

	def drain(self, limit: int = 100_000) -> None:
		steps = 0
		while self.queue:
			steps += 1
			assert steps < limit, "microtask queue did not settle"
			self.queue.popleft()()

	def execute(self, program: Program) -> None:
		self.run_body(program.body, self.globals)

	def get(self, name: str) -> Any:
		return self.globals.vars[name]

	def call_global(self, name: str, *args: Any) -> Any:
		return self.call(self.get(name), UNDEFINED, list(args))

	def settle(self, name: str, *args: Any) -> JSPromise:
		"""Call a global function, run every microtask and return its promise."""
		result = self.call_global(name, *args)
		self.drain()
		assert isinstance(result, JSPromise), f"{name} did not return a promise"
		return result

	def call(self, fn: Any, this: Any, args: list[Any]) -> Any:
		if isinstance(fn, JSFunction):
			return self._call_function(fn, this, args)
		if callable(fn):
			return fn(*args)
		raise JSThrow(error("TypeError", f"{to_str(fn)} is not a function"))

	def _call_function(self, fn: JSFunction, this: Any, args: list[Any]) -> Any:
		node = fn.node
		assert not node.is_async, "async function left in output"
		env = Env(fn.closure)
		if isinstance(node, Function):
			env.vars["this"] = this
			env.vars["arguments"] = list(args)
			if node.name:
				env.vars.setdefault(node.name, fn)
		for index, param in enumerate(node.params):
			if param.startswith("..."):
				env.vars[param[3:]] = list(args[index:])
			else:
				env.vars[param] = args[index] if index < len(args) else UNDEFINED
		if not isinstance(node.body, list):
			return self.eval(node.body, env)
		try:
			self.run_body(node.body, env)
		except _Return as ret:
			return ret.value
		return UNDEFINED

	# --- Statements ---------------------------------------------------------

	def run_body(self, stmts: list[StmtNode], env: Env) -> None:
		for stmt in stmts:
			if isinstance(stmt, FunctionDecl):
				self._declare_function(stmt.fn, env)
			elif isinstance(stmt, Export) and isinstance(stmt.declaration, FunctionDecl):
				self._declare_function(stmt.declaration.fn, env)
		self.run(stmts, env)

	def _declare_function(self, fn: Function, env: Env) -> None:
		assert fn.name is not None
		env.vars[fn.name] = JSFunction(fn, env)

	def run(self, stmts: list[StmtNode], env: Env) -> None:
		for stmt in stmts:
			self.exec(stmt, env)

	def exec(self, stmt: StmtNode, env: Env, label: str | None = None) -> None:
		if isinstance(stmt, ExprStmt):
			self.eval(stmt.expr, env)
		elif isinstance(stmt, VarDecl):
			for d in stmt.declarators:
				value = self.eval(d.init, env) if d.init is not None else UNDEFINED
				if d.init is not None or d.target not in env.vars:
					env.vars[d.target] = value
		elif isinstance(stmt, FunctionDecl):
			if stmt.fn.name not in env.vars:
				self._declare_function(stmt.fn, env)
		elif isinstance(stmt, ClassDecl):
			raise NotImplementedError("classes are not modelled")
		elif isinstance(stmt, Return):
			raise _Return(self.eval(stmt.value, env) if stmt.value is not None else UNDEFINED)
		elif isinstance(stmt, Throw):
			raise JSThrow(self.eval(stmt.value, env))
		elif isinstance(stmt, If):
			self.run(stmt.then if truthy(self.eval(stmt.cond, env)) else stmt.else_, env)
		elif isinstance(stmt, Block):
			self.run(stmt.body, env)
		elif isinstance(stmt, (While, DoWhile, For, ForIn)):
			self._loop(stmt, env, label)
		elif isinstance(stmt, Switch):
			self._switch(stmt, env, label)
		elif isinstance(stmt, Break):
			raise _Break(stmt.label)
		elif isinstance(stmt, Continue):
			raise _Continue(stmt.label)
		elif isinstance(stmt, Labeled):
			try:
				self.exec(stmt.body, env, stmt.label)
			except _Break as brk:
				if brk.label != stmt.label:
					raise
		elif isinstance(stmt, Try):
			self._try(stmt, env)
		elif isinstance(stmt, Export):
			if isinstance(stmt.declaration, StmtNode):
				self.exec(stmt.declaration, env)
		elif isinstance(stmt, Verbatim):
			pass
		else:
			raise NotImplementedError(type(stmt).__name__)

	def _iteration(self, body: list[StmtNode], env: Env, label: str | None) -> bool:
		"""Run one loop body; False when the loop must stop."""
		try:
			self.run(body, env)
		except _Break as brk:
			if brk.label is None or brk.label == label:
				return False
			raise
		except _Continue as cont:
			if cont.label is not None and cont.label != label:
				raise
		return True

	def _loop(self, stmt: While | DoWhile | For | ForIn, env: Env, label: str | None) -> None:
		if isinstance(stmt, While):
			while truthy(self.eval(stmt.cond, env)):
				if not self._iteration(stmt.body, env, label):
					break
		elif isinstance(stmt, DoWhile):
			while True:
				if not self._iteration(stmt.body, env, label):
					break
				if not truthy(self.eval(stmt.cond, env)):
					break
		elif isinstance(stmt, For):
			if isinstance(stmt.init, VarDecl):
				self.exec(stmt.init, env)
			elif stmt.init is not None:
				self.eval(stmt.init, env)
			while stmt.test is None or truthy(self.eval(stmt.test, env)):
				if not self._iteration(stmt.body, env, label):
					break
				if stmt.update is not None:
					self.eval(stmt.update, env)
		else:
			source = self.eval(stmt.right, env)
			if stmt.of:
				items = list(source)
			elif isinstance(source, list):
				items = [str(i) for i in range(len(source))]
			elif isinstance(source, dict):
				items = list(source.keys())
			else:
				items = []
			for item in items:
				if isinstance(stmt.left, VarDecl):
					env.vars[stmt.left.declarators[0].target] = item
				else:
					self._store(stmt.left, item, env)
				if not self._iteration(stmt.body, env, label):
					break

	def _switch(self, stmt: Switch, env: Env, label: str | None) -> None:
		disc = self.eval(stmt.disc, env)
		start = None
		for index, case in enumerate(stmt.cases):
			if case.test is not None and strict_equals(self.eval(case.test, env), disc):
				start = index
				break
		if start is None:
			start = next((i for i, c in enumerate(stmt.cases) if c.test is None), None)
		if start is None:
			return
		try:
			for case in stmt.cases[start:]:
				self.run(case.body, env)
		except _Break as brk:
			if brk.label is not None and brk.label != label:
				raise

	def _try(self, stmt: Try, env: Env) -> None:
		try:
			try:
				self.run(stmt.block, env)
			except JSThrow as exc:
				if stmt.handler is None:
					raise
				if stmt.param is not None:
					env.vars[stmt.param] = exc.value
				self.run(stmt.handler, env)
		finally:
			if stmt.finalizer is not None:
				self.run(stmt.finalizer, env)

	# --- Expressions --------------------------------------------------------

	def eval(self, expr: ExprNode, env: Env) -> Any:
		if isinstance(expr, Identifier):
			return self._lookup(expr.name, env)
		if isinstance(expr, Literal):
			return expr.value
		if isinstance(expr, Undefined):
			return UNDEFINED
		if isinstance(expr, This):
			return self._lookup("this", env)
		if isinstance(expr, Raw):
			if expr.text == "":
				return UNDEFINED
			raise NotImplementedError(f"raw source {expr.text!r}")
		if isinstance(expr, Array):
			return self._spread_list(expr.elements, env)
		if isinstance(expr, Object):
			return self._object(expr, env)
		if isinstance(expr, Member):
			obj = self.eval(expr.obj, env)
			if expr.optional and obj in (None, UNDEFINED):
				return UNDEFINED
			return self.get_prop(obj, expr.prop)
		if isinstance(expr, Subscript):
			obj = self.eval(expr.obj, env)
			if expr.optional and obj in (None, UNDEFINED):
				return UNDEFINED
			return self.get_prop(obj, self.eval(expr.key, env))
		if isinstance(expr, Call):
			return self._call(expr, env)
		if isinstance(expr, New):
			ctor = self.eval(expr.ctor, env)
			return self.call(ctor, {}, self._spread_list(expr.args, env))
		if isinstance(expr, Unary):
			return self._unary(expr, env)
		if isinstance(expr, Update):
			old = to_num(self.eval(expr.target, env))
			new = old + 1 if expr.op == "++" else old - 1
			self._store(expr.target, new, env)
			return new if expr.prefix else old
		if isinstance(expr, Binary):
			return self._binary(expr, env)
		if isinstance(expr, Assign):
			return self._assign_expr(expr, env)
		if isinstance(expr, Ternary):
			branch = expr.then if truthy(self.eval(expr.cond, env)) else expr.else_
			return self.eval(branch, env)
		if isinstance(expr, Sequence):
			value = UNDEFINED
			for e in expr.exprs:
				value = self.eval(e, env)
			return value
		if isinstance(expr, Template):
			return "".join(
				p if isinstance(p, str) else to_str(self.eval(p, env)) for p in expr.parts
			)
		if isinstance(expr, (Function, Arrow)):
			fn = JSFunction(expr, env)
			if isinstance(expr, Function) and expr.name:
				# Named function expressions see their own name
				inner = Env(env)
				inner.vars[expr.name] = fn
				fn.closure = inner
			return fn
		if isinstance(expr, Await):
			raise AssertionError("await left in output")
		if isinstance(expr, Class):
			raise NotImplementedError("classes are not modelled")
		raise NotImplementedError(type(expr).__name__)

	def _lookup(self, name: str, env: Env) -> Any:
		scope = env.find(name)
		if scope is None:
			raise JSThrow(error("ReferenceError", f"{name} is not defined"))
		return scope.vars[name]

	def _spread_list(self, items: list[ExprNode], env: Env) -> list[Any]:
		values: list[Any] = []
		for item in items:
			if isinstance(item, Spread):
				values.extend(self.eval(item.expr, env))
			else:
				values.append(self.eval(item, env))
		return values

	def _key(self, prop: Prop, env: Env) -> str:
		if prop.computed:
			return to_str(self.eval(prop.key, env))
		if isinstance(prop.key, Identifier):
			return prop.key.name
		assert isinstance(prop.key, Literal)
		return to_str(prop.key.value)

	def _object(self, expr: Object, env: Env) -> dict[str, Any]:
		obj: dict[str, Any] = {}
		for prop in expr.props:
			if isinstance(prop, Spread):
				source = self.eval(prop.expr, env)
				if isinstance(source, dict):
					obj.update(source)
				continue
			if prop.kind in ("get", "set"):
				raise NotImplementedError("accessors are not modelled")
			key = self._key(prop, env)
			obj[key] = self.eval(prop.value, env)
		return obj

	def get_prop(self, obj: Any, key: Any) -> Any:
		if obj is None or obj is UNDEFINED:
			raise JSThrow(error("TypeError", f"Cannot read properties of {to_str(obj)}"))
		if isinstance(obj, dict):
			return obj.get(to_str(key), UNDEFINED)
		if isinstance(obj, list):
			return self._list_prop(obj, key)
		if isinstance(obj, str):
			if key == "length":
				return len(obj)
			return obj[int(key)] if isinstance(key, int) and 0 <= key < len(obj) else UNDEFINED
		if isinstance(obj, JSPromise):
			if key == "then":
				return obj.then
			if key == "catch":
				return lambda on_rejected=UNDEFINED: obj.then(UNDEFINED, on_rejected)
		return UNDEFINED

	def _list_prop(self, items: list[Any], key: Any) -> Any:
		if isinstance(key, str) and key.isdigit():
			key = int(key)
		if isinstance(key, int) and not isinstance(key, bool):
			return items[key] if 0 <= key < len(items) else UNDEFINED
		methods: dict[str, Callable[..., Any]] = {
			"push": lambda *values: (items.extend(values), len(items))[1],
			"pop": lambda: items.pop() if items else UNDEFINED,
			"shift": lambda: items.pop(0) if items else UNDEFINED,
			"reverse": lambda: (items.reverse(), items)[1],
			"join": lambda sep=",": to_str(sep).join(to_str(v) for v in items),
			"includes": lambda value: any(strict_equals(v, value) for v in items),
		}
		if key == "length":
			return len(items)
		return methods.get(key, UNDEFINED)

	def _call(self, expr: Call, env: Env) -> Any:
		callee = expr.callee
		this: Any = UNDEFINED
		if isinstance(callee, (Member, Subscript)):
			this = self.eval(callee.obj, env)
			if callee.optional and this in (None, UNDEFINED):
				return UNDEFINED
			key = callee.prop if isinstance(callee, Member) else self.eval(callee.key, env)
			fn = self.get_prop(this, key)
		else:
			fn = self.eval(callee, env)
		if expr.optional and fn in (None, UNDEFINED):
			return UNDEFINED
		return self.call(fn, this, self._spread_list(expr.args, env))

	def _unary(self, expr: Unary, env: Env) -> Any:
		if expr.op == "typeof":
			if isinstance(expr.operand, Identifier) and env.find(expr.operand.name) is None:
				return "undefined"
			return typeof(self.eval(expr.operand, env))
		if expr.op == "delete":
			target = expr.operand
			if isinstance(target, (Member, Subscript)):
				obj = self.eval(target.obj, env)
				key = target.prop if isinstance(target, Member) else to_str(self.eval(target.key, env))
				if isinstance(obj, dict):
					obj.pop(key, None)
			return True
		value = self.eval(expr.operand, env)
		if expr.op == "!":
			return not truthy(value)
		if expr.op == "-":
			return -to_num(value)
		if expr.op == "+":
			return to_num(value)
		if expr.op == "void":
			return UNDEFINED
		raise NotImplementedError(expr.op)

	def _binary(self, expr: Binary, env: Env) -> Any:
		op = expr.op
		left = self.eval(expr.left, env)
		if op == "&&":
			return self.eval(expr.right, env) if truthy(left) else left
		if op == "||":
			return left if truthy(left) else self.eval(expr.right, env)
		if op == "??":
			return self.eval(expr.right, env) if left is None or left is UNDEFINED else left
		right = self.eval(expr.right, env)
		return self.operate(op, left, right)

	def operate(self, op: str, left: Any, right: Any) -> Any:
		if op == "+":
			return _add(left, right)
		if op == "===":
			return strict_equals(left, right)
		if op == "!==":
			return not strict_equals(left, right)
		if op in ("==", "!="):
			nullish = left in (None, UNDEFINED) and right in (None, UNDEFINED)
			equal = nullish or strict_equals(left, right)
			return equal if op == "==" else not equal
		if op == "in":
			if isinstance(right, dict):
				return to_str(left) in right
			if isinstance(right, list):
				return 0 <= int(to_num(left)) < len(right)
			raise JSThrow(error("TypeError", "'in' needs an object"))
		return _ARITHMETIC[op](left, right)

	def _assign_expr(self, expr: Assign, env: Env) -> Any:
		op = expr.op
		if op == "=":
			value = self._evaluate_target_then(expr.target, expr.value, env)
			return value
		current = self.eval(expr.target, env)
		if op in ("&&=", "||=", "??="):
			nullish = current is None or current is UNDEFINED
			keep = {
				"&&=": not truthy(current),
				"||=": truthy(current),
				"??=": not nullish,
			}[op]
			if keep:
				return current
			value = self.eval(expr.value, env)
		else:
			value = self.operate(op[:-1], current, self.eval(expr.value, env))
		self._store(expr.target, value, env)
		return value

	def _evaluate_target_then(self, target: ExprNode, value_expr: ExprNode, env: Env) -> Any:
		"""Plain assignment: the target's object and key are evaluated first."""
		if isinstance(target, Member):
			obj = self.eval(target.obj, env)
			value = self.eval(value_expr, env)
			self._set_prop(obj, target.prop, value)
			return value
		if isinstance(target, Subscript):
			obj = self.eval(target.obj, env)
			key = self.eval(target.key, env)
			value = self.eval(value_expr, env)
			self._set_prop(obj, key, value)
			return value
		value = self.eval(value_expr, env)
		self._store(target, value, env)
		return value

	def _store(self, target: ExprNode, value: Any, env: Env) -> None:
		if isinstance(target, Identifier):
			scope = env.find(target.name) or env.root()
			scope.vars[target.name] = value
		elif isinstance(target, Member):
			self._set_prop(self.eval(target.obj, env), target.prop, value)
		elif isinstance(target, Subscript):
			self._set_prop(self.eval(target.obj, env), self.eval(target.key, env), value)
		else:
			raise NotImplementedError(f"assignment to {type(target).__name__}")

	def _set_prop(self, obj: Any, key: Any, value: Any) -> None:
		if isinstance(obj, dict):
			obj[to_str(key)] = value
		elif isinstance(obj, list):
			index = int(to_num(key))
			while len(obj) <= index:
				obj.append(UNDEFINED)
			obj[index] = value
		else:
			raise JSThrow(error("TypeError", f"Cannot set {to_str(key)} on {to_str(obj)}"))


def load(source: str, **options: Any) -> Model:
	"""Transform `source`, re-parse the output and run its top level."""
	code = transform_source(source, TransformOptions(**options))
	model = Model()
	model.execute(parse(code))
	model.drain()
	return model


def run_async(source: str, name: str = "main", *args: Any, **options: Any) -> tuple[JSPromise, list[Any]]:
	"""Transform `source`, call `name` and run until the queue is empty.

	Returns the promise the call produced and the effects it logged.
	"""
	model = load(source, **options)
	promise = model.settle(name, *args)
	return promise, model.log
