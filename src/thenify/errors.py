from __future__ import annotations


class ThenifyError(Exception):
	"""Base class for errors raised while rewriting a program."""


class ParseError(ThenifyError):
	"""The source text is not valid JavaScript."""

	line: int
	column: int

	def __init__(self, message: str, line: int, column: int) -> None:
		super().__init__(f"{message} at {line}:{column}")
		self.line = line
		self.column = column


class UnsupportedSyntaxError(ThenifyError):
	"""A syntax node kind the tree model does not cover."""

	node_type: str

	def __init__(self, node_type: str, line: int | None = None) -> None:
		where = f" (line {line})" if line is not None else ""
		super().__init__(f"Unsupported syntax: {node_type}{where}")
		self.node_type = node_type


class UnsupportedConstructError(ThenifyError):
	"""A construct inside an async function that cannot be rewritten safely."""

	construct: str
	function: str | None

	def __init__(self, construct: str, function: str | None = None) -> None:
		where = f" in async function '{function}'" if function else ""
		super().__init__(f"Cannot rewrite {construct}{where}")
		self.construct = construct
		self.function = function
