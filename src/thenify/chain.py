"""
Promise chain builder.

Turns a normalized statement list into one expression:

	Promise.resolve().then(function () {
	  a();
	  return b();
	}).then(function (_resp) {
	  c(_resp);
	});

Statements are appended to the open step until an await splits it: the
awaited value is returned from the open step, the step is attached, and the
next step receives the settled value as `_resp`. Ifs and trys that await
become sub-chains returned from the open step.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Literal as Lit

from thenify.nodes import (
	FUNCTION_TYPES,
	Await,
	Call,
	ExprNode,
	ExprStmt,
	Function,
	Identifier,
	If,
	Member,
	Return,
	StmtNode,
	Throw,
	Try,
)
from thenify.scope import Scope
from thenify.visitor import Transformer, contains_await, contains_return

logger = logging.getLogger(__name__)


@dataclass
class Step:
	"""One callback attached to the chain.

	dirty steps do work even when their body is empty (a catch that swallows
	an error) and are never dropped. error_body, when set, is the second
	callback of a `.then(onFulfilled, onRejected)` pair.
	"""

	kind: Lit["then", "catch"] = "then"
	param: str | None = None
	body: list[StmtNode] = field(default_factory=list)
	dirty: bool = False
	error_param: str | None = None
	error_body: list[StmtNode] | None = None

	def is_empty(self) -> bool:
		return (
			self.kind == "then"
			and self.param is None
			and not self.body
			and not self.dirty
			and self.error_body is None
		)

	def callbacks(self) -> list[ExprNode]:
		params = [self.param] if self.param else []
		args: list[ExprNode] = [Function(params, self.body, generated=True)]
		if self.error_body is not None:
			error_params = [self.error_param] if self.error_param else []
			args.append(Function(error_params, self.error_body, generated=True))
		return args


class PromiseChain:
	"""A `Promise.resolve()` base, the attached steps and the open step.

	strict chains resolve to the value of their statement list, so a
	trailing empty step is kept to resolve with `undefined`. inner chains are
	always consumed by an enclosing chain and may collapse into a plain
	immediately-invoked function.
	"""

	base: ExprNode
	steps: list[Step]
	open: Step
	strict: bool
	inner: bool

	def __init__(self, promise_name: str, strict: bool, inner: bool) -> None:
		self.base = Call(Member(Identifier(promise_name), "resolve"), [])
		self.steps = []
		self.open = Step()
		self.strict = strict
		self.inner = inner

	def push(self, *stmts: StmtNode) -> None:
		self.open.body.extend(stmts)

	def attach(self, next_param: str | None = None) -> None:
		"""Close the open step and open a fresh one receiving `next_param`."""
		self.steps.append(self.open)
		self.open = Step(param=next_param)

	def add(self, step: Step) -> None:
		"""Attach a prepared step after the open one, which must be empty."""
		assert not self.open.body, "add() follows a finished build"
		self.steps.append(step)

	def to_expr(self) -> ExprNode:
		steps = list(self.steps)
		if not self.strict:
			while steps and steps[-1].is_empty():
				steps.pop()
		if self.inner and len(steps) == 1:
			step = steps[0]
			if step.kind == "then" and step.param is None and step.error_body is None:
				return Call(Function([], step.body, generated=True), [])
		expr = self.base
		for step in steps:
			expr = Call(Member(expr, step.kind), step.callbacks())
		return expr


class _AwaitExtractor(Transformer):
	"""Replaces awaits, innermost first, with the parameter of a new step."""

	skip_functions = True

	chain: PromiseChain
	resp: str

	def __init__(self, chain: PromiseChain, resp: str) -> None:
		self.chain = chain
		self.resp = resp

	def visit_Await(self, node: Await) -> Identifier:
		argument = self.visit(node.expr)
		self.chain.push(Return(argument))
		self.chain.attach(self.resp)
		return Identifier(self.resp)


class ChainBuilder:
	scope: Scope
	promise_name: str
	resp: str

	def __init__(self, scope: Scope, promise_name: str = "Promise") -> None:
		self.scope = scope
		self.promise_name = promise_name
		self.resp = scope.shared_uid("resp")

	def build(self, stmts: list[StmtNode], strict: bool, inner: bool) -> PromiseChain:
		chain = PromiseChain(self.promise_name, strict, inner)
		ended = False
		for index, stmt in enumerate(stmts):
			last = index == len(stmts) - 1
			if not last:
				self._check_exit(stmt, stmts[index + 1 :])
			ended = False
			if isinstance(stmt, If) and (contains_await(stmt.then) or contains_await(stmt.else_)):
				self._split_if(stmt, chain, strict and last)
				ended = last
			elif isinstance(stmt, Try) and contains_await(stmt):
				chain.push(Return(self._split_try(stmt, strict and last)))
				chain.attach()
				ended = last
			else:
				self._statement(stmt, chain)
		# A final split if/try already returns the list's value
		if not ended and (chain.open.body or strict):
			chain.attach()
		return chain

	def _statement(self, stmt: StmtNode, chain: PromiseChain) -> None:
		if isinstance(stmt, ExprStmt) and isinstance(stmt.expr, Await):
			chain.push(Return(self._extract(stmt.expr.expr, chain)))
			chain.attach()
			return
		if isinstance(stmt, ExprStmt):
			stmt.expr = self._extract(stmt.expr, chain)
		elif isinstance(stmt, Return) and stmt.value is not None:
			stmt.value = self._extract(stmt.value, chain)
		elif isinstance(stmt, Throw):
			stmt.value = self._extract(stmt.value, chain)
		elif isinstance(stmt, If):
			stmt.cond = self._extract(stmt.cond, chain)
		else:
			assert not contains_await(stmt), f"await left in {type(stmt).__name__}"
		chain.push(stmt)

	def _extract(self, expr: ExprNode, chain: PromiseChain) -> ExprNode:
		if isinstance(expr, FUNCTION_TYPES) or not contains_await(expr):
			return expr
		return _AwaitExtractor(chain, self.resp).visit(expr)

	def _split_if(self, stmt: If, chain: PromiseChain, strict: bool) -> None:
		stmt.cond = self._extract(stmt.cond, chain)
		if contains_await(stmt.then):
			stmt.then = [Return(self.build(stmt.then, strict, inner=True).to_expr())]
		if contains_await(stmt.else_):
			stmt.else_ = [Return(self.build(stmt.else_, strict, inner=True).to_expr())]
		chain.push(stmt)
		chain.attach()

	def _split_try(self, stmt: Try, strict: bool) -> ExprNode:
		chain = self.build(stmt.block, strict, inner=False)
		if stmt.handler is not None:
			body: list[StmtNode] = []
			if stmt.handler:
				handler = self.build(stmt.handler, strict, inner=True)
				body = [Return(handler.to_expr())]
			chain.add(Step("catch", stmt.param, body, dirty=True))
		if stmt.finalizer is not None:
			chain.add(self._finally_step(stmt.finalizer, strict))
		logger.debug("Built try sub-chain with %d steps", len(chain.steps))
		return chain.to_expr()

	def _finally_step(self, finalizer: list[StmtNode], strict: bool) -> Step:
		"""Run the finalizer on both paths, then pass the value or error on."""
		err = self.scope.shared_uid("err")
		param = self.resp if strict else None
		if not contains_await(finalizer):
			ok_body = deepcopy(finalizer)
			if strict:
				ok_body.append(Return(Identifier(self.resp)))
			error_body: list[StmtNode] = [*finalizer, Throw(Identifier(err))]
			return Step("then", param, ok_body, True, err, error_body)

		on_error = self.build(deepcopy(finalizer), False, inner=False).to_expr()
		rethrow = Function([], [Throw(Identifier(err))], generated=True)
		error_body = [Return(Call(Member(on_error, "then"), [rethrow]))]
		on_ok = self.build(finalizer, False, inner=False).to_expr()
		if strict:
			keep = Function([], [Return(Identifier(self.resp))], generated=True)
			on_ok = Call(Member(on_ok, "then"), [keep])
		return Step("then", param, [Return(on_ok)], True, err, error_body)

	def _check_exit(self, stmt: StmtNode, rest: list[StmtNode]) -> None:
		if isinstance(stmt, Return) or not contains_return(stmt):
			return
		if any(contains_await(s) for s in rest):
			logger.warning(
				"A return inside %s in %s does not stop the steps after it",
				type(stmt).__name__,
				self.scope.name or "<anonymous>",
			)
