#!/usr/bin/env python3
"""
vp: CLI for vaultprompt

Usage:
    vp expand notes/today.md                 # Note text plus embedded notes
    vp filter-callouts notes/today.md -t private
    vp index notes/today.md --json           # Headings, blocks, links, embeds
    vp generate notes/today.md -p reflect    # Run a prompt against a note
    vp models                                # List models on a connection
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click
from click.exceptions import ClickException

from . import __version__ as VAULTPROMPT_VERSION


def run_async(coro):
    """Run async function synchronously."""
    return asyncio.run(coro)


def _open_vault(ctx: click.Context):
    """Locate the vault and load its settings, once per invocation."""
    from ._logging import configure_logging
    from .config import ConfigurationError, get_vault_root, load_settings
    from .vault import Vault

    if "vault" not in ctx.obj:
        try:
            root = ctx.obj.get("vault_root") or get_vault_root()
            settings = load_settings(Path(root))
        except ConfigurationError as e:
            raise ClickException(str(e)) from e
        if settings.debug_logging:
            configure_logging(debug=True)
        ctx.obj["vault"] = Vault(Path(root))
        ctx.obj["settings"] = settings
    return ctx.obj["vault"], ctx.obj["settings"]


def _require_document(vault, path: str):
    document = vault.get_document(path)
    if document is None:
        raise ClickException(f"Note not found in vault: {path}")
    return document


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=VAULTPROMPT_VERSION, prog_name="vp")
@click.option(
    "--vault",
    "vault_root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="VAULTPROMPT_VAULT_ROOT",
    help="Vault root (default: nearest folder with a .vpconfig)",
)
@click.option("--debug", is_flag=True, help="Log unresolved links, unreadable notes and requests")
@click.pass_context
def cli(ctx: click.Context, vault_root: Path | None, debug: bool):
    """vp: run prompts against notes and the notes they embed.

    \b
    Quick start:
      vp expand daily/2024-01-15.md              # Preview what the model sees
      vp generate daily/2024-01-15.md -p reflect # Generate with a prompt
    """
    from ._logging import configure_logging

    ctx.ensure_object(dict)
    ctx.obj["vault_root"] = vault_root
    if debug:
        configure_logging(debug=True)


@cli.command()
@click.argument("note")
@click.option("--include-links", "-l", is_flag=True, help="Follow plain links, not only embeds")
@click.option("--exclude", "-x", "excludes", multiple=True, help="Regex; links whose [text](target) matches are skipped")
@click.option("--exclude-callout", "-c", "callout_types", multiple=True, help="Drop callouts of this type")
@click.pass_context
def expand(
    ctx: click.Context,
    note: str,
    include_links: bool,
    excludes: tuple[str, ...],
    callout_types: tuple[str, ...],
):
    """Print a note followed by the notes it embeds (or links to).

    \b
    Examples:
      vp expand projects/plan.md
      vp expand projects/plan.md --include-links -x 'archive/'
      vp expand projects/plan.md -c private -c todo
    """
    from .expansion import expand_linked_documents
    from .parser.callouts import filter_callouts
    from .parser.links import compile_exclude_patterns

    vault, settings = _open_vault(ctx)
    document = _require_document(vault, note)

    patterns = compile_exclude_patterns(settings.exclude_patterns) + compile_exclude_patterns(list(excludes))

    async def _run() -> str:
        text = await vault.read(document)
        return await expand_linked_documents(
            document,
            text,
            vault,
            vault,
            exclude_patterns=patterns,
            include_links=include_links,
        )

    expanded = run_async(_run())
    click.echo(filter_callouts(expanded, list(callout_types)))


@cli.command("filter-callouts")
@click.argument("source", type=click.File("r", encoding="utf-8"), default="-")
@click.option("--type", "-t", "callout_types", multiple=True, required=True, help="Callout type to remove")
def filter_callouts_cmd(source, callout_types: tuple[str, ...]):
    """Remove callouts of the given types from a file (or stdin).

    \b
    Examples:
      vp filter-callouts note.md -t private
      cat note.md | vp filter-callouts -t todo -t draft
    """
    from .parser.callouts import filter_callouts

    click.echo(filter_callouts(source.read(), list(callout_types)), nl=False)


@cli.command()
@click.argument("note")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def index(ctx: click.Context, note: str, as_json: bool):
    """Show the structural index of a note."""
    vault, _ = _open_vault(ctx)
    document = _require_document(vault, note)
    metadata = vault.get_metadata(document)
    if metadata is None:
        raise ClickException(f"Not a readable Markdown note: {note}")

    if as_json:
        click.echo(json.dumps(metadata.model_dump(mode="json"), indent=2))
        return

    click.echo(f"Headings ({len(metadata.headings)}):")
    for heading in metadata.headings:
        click.echo(f"  {'#' * heading.level} {heading.heading}  [{heading.start}:{heading.end}]")
    click.echo(f"Blocks ({len(metadata.blocks)}):")
    for block in metadata.blocks.values():
        click.echo(f"  ^{block.id}  [{block.start}:{block.end}]")
    click.echo(f"Embeds ({len(metadata.embeds)}):")
    for record in metadata.embeds:
        target = vault.resolve_link(record.link.partition("#")[0], document.path)
        click.echo(f"  {record.link} -> {target.path if target else '(unresolved)'}")
    click.echo(f"Links ({len(metadata.links)}):")
    for record in metadata.links:
        target = vault.resolve_link(record.link.partition("#")[0], document.path)
        click.echo(f"  {record.link} -> {target.path if target else '(unresolved)'}")


@cli.command()
@click.argument("note")
@click.option("--prompt", "-p", "prompt_key", default="default", show_default=True, help="Prompt name from settings")
@click.option(
    "--write",
    "-w",
    is_flag=True,
    help="Write the result into the note: appended, or replacing the note body when the prompt sets replaceSelectedText",
)
@click.pass_context
def generate(ctx: click.Context, note: str, prompt_key: str, write: bool):
    """Run a prompt against a note and its embedded notes.

    \b
    Examples:
      vp generate journal/today.md
      vp generate journal/today.md -p reflect --write
    """
    from .generator import ContentGenerator
    from .llm_providers import LLMProviderError
    from .parser.markdown import frontmatter_end
    from .prompts import PromptError

    vault, settings = _open_vault(ctx)
    document = _require_document(vault, note)
    generator = ContentGenerator(vault, settings)

    async def _run():
        resolved = await generator.prompt_resolver.resolve(document, prompt_key)
        return resolved, await generator.generate(document, prompt_key)

    try:
        resolved, content = run_async(_run())
    except (PromptError, LLMProviderError) as e:
        raise ClickException(str(e)) from e

    if content is None:
        raise ClickException("Nothing was generated (see log output for details)")

    if not write:
        click.echo(content)
        return

    path = vault.full_path(document)
    existing = path.read_text(encoding="utf-8")
    if resolved.replace_selected_text:
        # Frontmatter stays; only the body is replaced
        path.write_text(f"{existing[: frontmatter_end(existing)]}{content}\n", encoding="utf-8")
        click.echo(f"Replaced body of {document.path}", err=True)
    else:
        separator = "" if existing.endswith("\n\n") else ("\n" if existing.endswith("\n") else "\n\n")
        path.write_text(f"{existing}{separator}{content}\n", encoding="utf-8")
        click.echo(f"Appended to {document.path}", err=True)


@cli.command()
@click.option("--connection", "connection_key", help="Connection name (default: settings default)")
@click.pass_context
def models(ctx: click.Context, connection_key: str | None):
    """List the models available on a connection."""
    from .llm_providers import LLMProviderError, create_backend

    _, settings = _open_vault(ctx)
    key = connection_key or settings.default_connection
    connection = settings.connections.get(key)
    if connection is None:
        raise ClickException(f"Connection '{key}' not found. Please check settings.")

    try:
        backend = create_backend(connection)
        names = run_async(backend.list_models())
    except LLMProviderError as e:
        raise ClickException(str(e)) from e
    except Exception as e:
        raise ClickException(f"Cannot list models on {key}: {e}") from e

    for name in names:
        click.echo(name)


# ─────────────────────────────────────────────────────────────────────────────
# Entry Point
# ─────────────────────────────────────────────────────────────────────────────


def main():
    """Entry point for vp CLI."""
    from ._logging import configure_logging

    configure_logging()
    cli(obj={})


if __name__ == "__main__":
    sys.exit(main())
