"""
Try statements that return.

An awaiting try becomes a sub-chain, and a `return` inside it settles only
that sub-chain: the steps after the try still run. So a try that returns
and is followed by more of the function moves into a generated async
function, the way a discriminating loop does:

	try { r = await a(); if (r) { return r; } } catch (e) { b(); }
	c();

becomes

	async function _try() {
	  try {
	    r = await a(); if (r) { return r; } return _try;
	  } catch (e) {
	    b(); return _try;
	  }
	}
	_temp = await _try();
	if (_temp !== _try) { return _temp; }
	c();

Leaving the try without a return resolves to the function itself. A try
whose value is the function's value is left where it is.
"""

from __future__ import annotations

import logging

from thenify.loops import sentinel_call_site
from thenify.nodes import (
	FUNCTION_TYPES,
	LOOP_TYPES,
	Block,
	Break,
	Continue,
	Function,
	FunctionDecl,
	Identifier,
	If,
	Labeled,
	Node,
	Return,
	StmtNode,
	Switch,
	Try,
)
from thenify.scope import Scope
from thenify.visitor import (
	children,
	contains_await,
	contains_return,
	defined_labels,
	jump_labels,
)

logger = logging.getLogger(__name__)


def _jumps_out(stmt: Try) -> bool:
	"""Whether a break or continue inside `stmt` targets a statement around it."""
	inner = defined_labels(stmt)
	if any(label not in inner for label in jump_labels(stmt)):
		return True
	pending: list[tuple[Node, bool, bool]] = [(stmt, False, False)]
	while pending:
		node, in_loop, in_switch = pending.pop()
		if isinstance(node, Break) and node.label is None and not (in_loop or in_switch):
			return True
		if isinstance(node, Continue) and node.label is None and not in_loop:
			return True
		if isinstance(node, FUNCTION_TYPES):
			continue
		in_loop = in_loop or isinstance(node, LOOP_TYPES)
		in_switch = in_switch or isinstance(node, Switch)
		pending.extend((child, in_loop, in_switch) for child in children(node))
	return False


class TryWrapper:
	scope: Scope

	def __init__(self, scope: Scope) -> None:
		self.scope = scope

	def run(self, body: list[StmtNode]) -> list[StmtNode]:
		if not contains_await(body):
			return body
		return self._list(body, tail=True)

	def _list(self, stmts: list[StmtNode], tail: bool) -> list[StmtNode]:
		"""tail means the list's last statement gives the function its value."""
		out: list[StmtNode] = []
		for index, stmt in enumerate(stmts):
			last = tail and index == len(stmts) - 1
			if (
				isinstance(stmt, Try)
				and not last
				and contains_return(stmt)
				and not _jumps_out(stmt)
			):
				out.extend(self._wrap(stmt))
				continue
			self._descend(stmt, last)
			out.append(stmt)
		return out

	def _descend(self, stmt: StmtNode, tail: bool) -> None:
		if isinstance(stmt, If):
			stmt.then = self._list(stmt.then, tail)
			stmt.else_ = self._list(stmt.else_, tail)
		elif isinstance(stmt, Try):
			stmt.block = self._list(stmt.block, False)
			if stmt.handler is not None:
				stmt.handler = self._list(stmt.handler, False)
			if stmt.finalizer is not None:
				stmt.finalizer = self._list(stmt.finalizer, False)
		elif isinstance(stmt, LOOP_TYPES):
			stmt.body = self._list(stmt.body, False)
		elif isinstance(stmt, Switch):
			for case in stmt.cases:
				case.body = self._list(case.body, False)
		elif isinstance(stmt, Labeled):
			body = self._list([stmt.body], False)
			stmt.body = body[0] if len(body) == 1 else Block(body)
		elif isinstance(stmt, Block):
			stmt.body = self._list(stmt.body, False)

	def _wrap(self, stmt: Try) -> list[StmtNode]:
		fn_id = self.scope.generate_uid("try")
		# Falling out of the block or the handler resolves to the sentinel
		stmt.block.append(Return(Identifier(fn_id)))
		if stmt.handler is not None:
			stmt.handler.append(Return(Identifier(fn_id)))
		fn = Function(
			[],
			[stmt],
			name=fn_id,
			is_async=True,
			generated=True,
		)
		self.scope.hoist_function(FunctionDecl(fn))
		logger.debug("Moved returning try into %s", fn_id)
		return sentinel_call_site(fn_id, self.scope)


def wrap_returning_trys(body: list[StmtNode], scope: Scope) -> list[StmtNode]:
	return TryWrapper(scope).run(body)
