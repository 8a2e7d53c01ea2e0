"""
If-flattener and single-exit normalizer.

The chain builder needs every statement list to have, at each position,
just two outcomes: leave the function now, or carry on. These passes get
there:

- flattening pulls an if that returns out of an enclosing if, capturing the
  outer test once in a guard variable:

	if (a) { if (b) { return 1; } x(); }

  becomes

	_test = a;
	if (_test && b) { return 1; }
	if (_test) { x(); }

- single exit moves whatever follows an if that returns into its else
  branch, drops unreachable statements, and removes value-less returns
  that end the function anyway.

Both run repeatedly until neither changes anything.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from thenify.nodes import (
	LOOP_TYPES,
	Assign,
	Binary,
	Block,
	ExprNode,
	ExprStmt,
	Identifier,
	If,
	Labeled,
	Return,
	StmtNode,
	Switch,
	Throw,
	Try,
	Unary,
)
from thenify.scope import Scope
from thenify.visitor import contains_return, is_pure

logger = logging.getLogger(__name__)


def negate(expr: ExprNode) -> ExprNode:
	if isinstance(expr, Unary) and expr.op == "!":
		return expr.operand
	return Unary("!", expr)


def _returning_if(stmt: StmtNode) -> bool:
	return isinstance(stmt, If) and contains_return(stmt)


def _ends_in_return(stmts: list[StmtNode]) -> bool:
	return bool(stmts) and isinstance(stmts[-1], Return)


def _needs_flattening(stmt: If) -> bool:
	"""Whether a return nested in `stmt` could be followed by the statements after it.

	A branch ending in a return is left to the single-exit pass, which moves
	the following statements into the other branch.
	"""
	if _ends_in_return(stmt.then) or _ends_in_return(stmt.else_):
		return False
	return any(_returning_if(s) for s in (*stmt.then, *stmt.else_))


class ExitNormalizer:
	"""Runs flattening and single-exit over one function body to a fixpoint."""

	scope: Scope
	changed: bool

	def __init__(self, scope: Scope) -> None:
		self.scope = scope
		self.changed = False

	def run(self, body: list[StmtNode]) -> list[StmtNode]:
		rounds = 0
		while True:
			self.changed = False
			body = self._flatten_list(body)
			body = self._exit_list(body, tail=True)
			rounds += 1
			if not self.changed:
				break
		logger.debug("Exit normalization settled after %d rounds", rounds)
		return body

	# --- Flattening ---------------------------------------------------------

	def _flatten_list(self, stmts: list[StmtNode]) -> list[StmtNode]:
		out: list[StmtNode] = []
		for index, stmt in enumerate(stmts):
			self._descend(stmt, self._flatten_list)
			last = index == len(stmts) - 1
			if isinstance(stmt, If) and not last and _needs_flattening(stmt):
				if not any(_returning_if(s) for s in stmt.then):
					stmt = If(negate(stmt.cond), stmt.else_, stmt.then)
				out.extend(self._flatten_if(stmt))
				continue
			out.append(stmt)
		return out

	def _flatten_if(self, stmt: If) -> list[StmtNode]:
		self.changed = True
		guard = self.scope.declare("test")
		out: list[StmtNode] = [ExprStmt(Assign(Identifier(guard), stmt.cond))]
		run: list[StmtNode] = []
		last_group: If | None = None

		def flush() -> None:
			nonlocal last_group
			if run:
				last_group = If(Identifier(guard), list(run))
				out.append(last_group)
				run.clear()

		for inner in stmt.then:
			if _returning_if(inner):
				assert isinstance(inner, If)
				flush()
				alternate = [If(Identifier(guard), inner.else_)] if inner.else_ else []
				out.append(
					If(Binary(Identifier(guard), "&&", inner.cond), inner.then, alternate)
				)
				last_group = None
			else:
				run.append(inner)
		flush()

		if stmt.else_:
			if last_group is not None and out[-1] is last_group:
				last_group.else_ = stmt.else_
			else:
				out.append(If(Unary("!", Identifier(guard)), stmt.else_))
		logger.debug("Flattened nested returning if behind guard %s", guard)
		return out

	# --- Single exit --------------------------------------------------------

	def _exit_list(self, stmts: list[StmtNode], tail: bool) -> list[StmtNode]:
		"""Normalize one statement list.

		tail means falling off the end of the list ends the function.
		"""
		out: list[StmtNode] = []
		for index, stmt in enumerate(stmts):
			rest = stmts[index + 1 :]
			if isinstance(stmt, (Return, Throw)):
				if rest:
					self.changed = True
				if tail and isinstance(stmt, Return) and stmt.value is None:
					self.changed = True
					return out
				out.append(stmt)
				return out
			if isinstance(stmt, If) and rest and _ends_in_return(stmt.else_):
				if not _ends_in_return(stmt.then):
					stmt = If(negate(stmt.cond), stmt.else_, stmt.then)
					self.changed = True
			if isinstance(stmt, If) and _ends_in_return(stmt.then):
				if rest:
					stmt.else_ = [*stmt.else_, *rest]
					self.changed = True
				out.extend(self._exit_if(stmt, tail))
				return out
			if isinstance(stmt, If):
				out.extend(self._exit_if(stmt, tail and not rest))
				continue
			self._descend(stmt, lambda body: self._exit_list(body, False))
			out.append(stmt)
		return out

	def _exit_if(self, stmt: If, tail: bool) -> list[StmtNode]:
		stmt.then = self._exit_list(stmt.then, tail)
		stmt.else_ = self._exit_list(stmt.else_, tail)
		if stmt.then:
			return [stmt]
		self.changed = True
		if stmt.else_:
			return [If(negate(stmt.cond), stmt.else_)]
		if is_pure(stmt.cond):
			return []
		return [ExprStmt(stmt.cond)]

	# --- Helpers ------------------------------------------------------------

	def _descend(
		self, stmt: StmtNode, fn: Callable[[list[StmtNode]], list[StmtNode]]
	) -> None:
		"""Apply a list pass to the statement lists nested in `stmt`."""
		if isinstance(stmt, If):
			stmt.then = fn(stmt.then)
			stmt.else_ = fn(stmt.else_)
		elif isinstance(stmt, LOOP_TYPES):
			stmt.body = fn(stmt.body)
		elif isinstance(stmt, Switch):
			for case in stmt.cases:
				case.body = fn(case.body)
		elif isinstance(stmt, Try):
			stmt.block = fn(stmt.block)
			if stmt.handler is not None:
				stmt.handler = fn(stmt.handler)
			if stmt.finalizer is not None:
				stmt.finalizer = fn(stmt.finalizer)
		elif isinstance(stmt, Labeled):
			body = fn([stmt.body])
			stmt.body = body[0] if len(body) == 1 else Block(body)
		elif isinstance(stmt, Block):
			stmt.body = fn(stmt.body)


def normalize_exits(body: list[StmtNode], scope: Scope) -> list[StmtNode]:
	return ExitNormalizer(scope).run(body)
