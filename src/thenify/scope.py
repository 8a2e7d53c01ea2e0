"""
Identifier bookkeeping for one compilation unit and each function in it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from thenify.nodes import (
	Arrow,
	Class,
	Declarator,
	Function,
	FunctionDecl,
	Identifier,
	Labeled,
	Node,
	StmtNode,
	Try,
)
from thenify.visitor import walk

_NAME_RE = re.compile(r"[A-Za-z_$][\w$]*")


def binding_names(text: str) -> list[str]:
	"""Every identifier-shaped word in a parameter or pattern's source text."""
	return _NAME_RE.findall(text)


def _to_base(hint: str) -> str:
	base = re.sub(r"[^\w$]", "", hint).lstrip("_").rstrip("0123456789")
	return base or "ref"


class UidRegistry:
	"""Collision-free identifier source for one compilation unit.

	Names follow the `_name`, `_name2`, `_name3` scheme and never clash with
	an identifier used anywhere in the unit, nor with each other. The registry
	lives for one transform call.
	"""

	used: set[str]
	_counters: dict[str, int]
	_shared: dict[str, str]

	def __init__(self, used: Iterable[str] = ()) -> None:
		self.used = set(used)
		self._counters = {}
		self._shared = {}

	@classmethod
	def for_tree(cls, tree: Node) -> UidRegistry:
		"""Seed a registry with every name occurring in the tree."""
		names: set[str] = set()
		for node in walk(tree, skip_functions=False):
			if isinstance(node, Identifier):
				names.add(node.name)
			elif isinstance(node, Function):
				if node.name:
					names.add(node.name)
				for param in node.params:
					names.update(binding_names(param))
			elif isinstance(node, Arrow):
				for param in node.params:
					names.update(binding_names(param))
			elif isinstance(node, Class) and node.name:
				names.add(node.name)
			elif isinstance(node, Declarator):
				names.update(binding_names(node.target))
			elif isinstance(node, Labeled):
				names.add(node.label)
			elif isinstance(node, Try) and node.param:
				names.update(binding_names(node.param))
		return cls(names)

	def generate(self, hint: str) -> str:
		base = _to_base(hint)
		i = self._counters.get(base, 1)
		while True:
			name = f"_{base}" if i == 1 else f"_{base}{i}"
			i += 1
			if name not in self.used:
				break
		self._counters[base] = i
		self.used.add(name)
		return name

	def shared(self, hint: str) -> str:
		"""One name per hint for the whole unit, e.g. chain step parameters."""
		if hint not in self._shared:
			self._shared[hint] = self.generate(hint)
		return self._shared[hint]


@dataclass
class Scope:
	"""Bindings and hoist lists of one function being rewritten.

	hoisted_vars become the function's single `var` line, hoisted_functions
	are declared above it, and prelude runs before the chain starts.
	"""

	registry: UidRegistry
	name: str | None = None
	bindings: set[str] = field(default_factory=set)
	hoisted_vars: list[str] = field(default_factory=list)
	hoisted_functions: list[FunctionDecl] = field(default_factory=list)
	prelude: list[StmtNode] = field(default_factory=list)
	labels: dict[str, str] = field(default_factory=dict)

	def generate_uid(self, hint: str) -> str:
		name = self.registry.generate(hint)
		self.bindings.add(name)
		return name

	def shared_uid(self, hint: str) -> str:
		return self.registry.shared(hint)

	def declare(self, hint: str) -> str:
		"""Generate a name and add it to the hoisted `var` list."""
		name = self.generate_uid(hint)
		self.hoist_var(name)
		return name

	def hoist_var(self, name: str) -> None:
		if name not in self.hoisted_vars:
			self.hoisted_vars.append(name)
		self.bindings.add(name)

	def hoist_function(self, decl: FunctionDecl) -> None:
		self.hoisted_functions.append(decl)
		if decl.fn.name:
			self.bindings.add(decl.fn.name)

	def label_id(self, label: str) -> str:
		"""Name of the loop function standing in for a labeled loop."""
		if label not in self.labels:
			self.labels[label] = self.generate_uid(label)
		return self.labels[label]
