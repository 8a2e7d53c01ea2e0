"""
Command-line interface for thenify.
This module provides the commands for compiling, diffing and checking files.
"""
# typer relies on function calls used as default values
# pyright: reportCallInDefaultInitializer=false

from __future__ import annotations

import difflib
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax

from thenify.config import TransformOptions
from thenify.errors import ThenifyError
from thenify.nodes import Arrow, Function, emit
from thenify.parser import parse
from thenify.transform import transform_program, transform_source
from thenify.visitor import walk

cli = typer.Typer(
	name="thenify",
	help="Rewrite async JavaScript functions into promise chains",
	no_args_is_help=True,
)


def _setup_logging(console: Console, verbose: bool) -> None:
	logging.basicConfig(
		level=logging.DEBUG if verbose else logging.WARNING,
		format="%(message)s",
		handlers=[RichHandler(console=console, show_path=False)],
		force=True,
	)


def _read(console: Console, file: Path) -> str:
	if not file.exists():
		console.log(f"❌ File not found: {file}")
		raise typer.Exit(1)
	return file.read_text(encoding="utf-8")


def _options(no_inline: bool, promise: str | None) -> TransformOptions:
	options = TransformOptions.from_env()
	if no_inline:
		options.inline = False
	if promise:
		options.promise_name = promise
	return options


@cli.command("compile")
def compile_cmd(
	file: Path = typer.Argument(..., help="JavaScript file to transform"),
	out: Path | None = typer.Option(
		None, "--out", "-o", help="Write the result here instead of stdout"
	),
	no_inline: bool = typer.Option(
		False, "--no-inline", help="Keep the generated wrapper functions"
	),
	promise: str | None = typer.Option(
		None, "--promise", help="Global the chains start from"
	),
	verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every pass"),
):
	"""Transform the async functions of FILE."""
	console = Console(stderr=True)
	_setup_logging(console, verbose)
	source = _read(console, file)
	try:
		result = transform_source(source, _options(no_inline, promise))
	except ThenifyError as exc:
		console.log(f"❌ [red]{exc}[/red]")
		raise typer.Exit(1) from None

	if out is None:
		typer.echo(result)
		return
	out.parent.mkdir(parents=True, exist_ok=True)
	out.write_text(result, encoding="utf-8")
	console.log(f"✅ Wrote {out}")


@cli.command("diff")
def diff_cmd(
	file: Path = typer.Argument(..., help="JavaScript file to transform"),
	no_inline: bool = typer.Option(False, "--no-inline"),
	promise: str | None = typer.Option(None, "--promise"),
):
	"""Show what the transform changes in FILE."""
	console = Console()
	_setup_logging(console, False)
	source = _read(console, file)
	try:
		before = emit(parse(source))
		after = transform_source(source, _options(no_inline, promise))
	except ThenifyError as exc:
		console.log(f"❌ [red]{exc}[/red]")
		raise typer.Exit(1) from None

	lines = difflib.unified_diff(
		before.splitlines(keepends=True),
		after.splitlines(keepends=True),
		fromfile=f"{file} (original)",
		tofile=f"{file} (thenified)",
	)
	text = "".join(lines)
	if not text:
		console.print("No async functions to rewrite")
		return
	console.print(Syntax(text, "diff", word_wrap=True))


@cli.command("check")
def check_cmd(
	file: Path = typer.Argument(..., help="JavaScript file to inspect"),
):
	"""List the async functions of FILE and whether they can be rewritten."""
	console = Console()
	_setup_logging(console, False)
	source = _read(console, file)
	try:
		program = parse(source)
	except ThenifyError as exc:
		console.log(f"❌ [red]{exc}[/red]")
		raise typer.Exit(1) from None

	names = [
		(node.name if isinstance(node, Function) else None) or "<anonymous>"
		for node in walk(program, skip_functions=False)
		if isinstance(node, (Function, Arrow)) and node.is_async
	]
	if not names:
		console.print("No async functions found")
		return
	for name in names:
		console.print(f"• {name}")

	try:
		transform_program(program)
	except ThenifyError as exc:
		console.print(f"❌ [red]{exc}[/red]")
		raise typer.Exit(1) from None
	console.print(f"✅ {len(names)} async functions can be rewritten")


def main():
	"""Main CLI entry point."""
	try:
		cli()
	except Exception:
		console = Console()
		console.print_exception()
		raise typer.Exit(1) from None


if __name__ == "__main__":
	main()
