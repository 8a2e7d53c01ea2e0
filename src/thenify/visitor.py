"""
Traversal helpers for the node tree.

Nodes hold no parent pointers. Passes rewrite the tree through a
Transformer whose visit methods return what should stand in the node's
place: the node itself, a replacement, None to remove it, or a list of
statements to splice into the enclosing statement list.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import fields
from typing import Any

from thenify.nodes import (
	FUNCTION_TYPES,
	Await,
	Block,
	Break,
	Continue,
	ExprNode,
	Identifier,
	Labeled,
	Literal,
	Node,
	Raw,
	Return,
	This,
	Undefined,
)

Tree = Node | list[Any] | None


class Transformer:
	"""Rewrites a tree in place, in the manner of ast.NodeTransformer.

	With skip_functions set, nested function and class nodes are returned
	untouched, so a pass sees only the body it was started on.
	"""

	skip_functions: bool = False

	def visit(self, node: Node) -> Any:
		if self.skip_functions and isinstance(node, FUNCTION_TYPES):
			return node
		method = getattr(self, "visit_" + type(node).__name__, None)
		if method is not None:
			return method(node)
		return self.generic_visit(node)

	def generic_visit(self, node: Node) -> Node:
		for f in fields(node):  # pyright: ignore[reportArgumentType]
			value = getattr(node, f.name)
			if isinstance(value, list):
				setattr(node, f.name, self.visit_list(value))
			elif isinstance(value, Node):
				new = self.visit(value)
				if isinstance(new, list):
					new = Block(new)
				setattr(node, f.name, new)
		return node

	def visit_list(self, items: list[Any]) -> list[Any]:
		result: list[Any] = []
		for item in items:
			if not isinstance(item, Node):
				result.append(item)
				continue
			new = self.visit(item)
			if new is None:
				continue
			if isinstance(new, list):
				result.extend(new)
			else:
				result.append(new)
		return result


def children(node: Node) -> Iterator[Node]:
	"""Direct child nodes, in field order (which is evaluation order)."""
	for f in fields(node):  # pyright: ignore[reportArgumentType]
		value = getattr(node, f.name)
		if isinstance(value, Node):
			yield value
		elif isinstance(value, list):
			for item in value:
				if isinstance(item, Node):
					yield item


def walk(tree: Tree, skip_functions: bool = True) -> Iterator[Node]:
	"""Pre-order walk of a node or list of nodes.

	Nested functions are yielded but not entered when skip_functions is set.
	The root itself is always entered.
	"""
	if tree is None:
		return
	stack: list[Node] = (
		list(reversed([n for n in tree if isinstance(n, Node)]))
		if isinstance(tree, list)
		else [tree]
	)
	root = tree if isinstance(tree, Node) else None
	while stack:
		node = stack.pop()
		yield node
		if skip_functions and node is not root and isinstance(node, FUNCTION_TYPES):
			continue
		stack.extend(reversed(list(children(node))))


def contains(
	tree: Tree,
	test: type[Node] | tuple[type[Node], ...] | Callable[[Node], bool],
	skip_functions: bool = True,
) -> bool:
	if isinstance(test, (type, tuple)):
		types = test
		return any(isinstance(n, types) for n in walk(tree, skip_functions))
	return any(test(n) for n in walk(tree, skip_functions))


def contains_await(tree: Tree) -> bool:
	return contains(tree, Await)


def contains_return(tree: Tree) -> bool:
	return contains(tree, Return)


def jump_labels(tree: Tree) -> set[str]:
	"""Labels targeted by break/continue statements in a subtree."""
	return {
		n.label
		for n in walk(tree)
		if isinstance(n, (Break, Continue)) and n.label is not None
	}


def defined_labels(tree: Tree) -> set[str]:
	return {n.label for n in walk(tree) if isinstance(n, Labeled)}


def is_pure(expr: ExprNode) -> bool:
	"""Whether evaluating the expression can have no observable effect."""
	return isinstance(expr, (Identifier, Literal, Undefined, This, Raw))
