#!/usr/bin/env python3
"""
mdv: keep markdown vault links consistent

Usage:
    mdv rename old/note.md new/note.md   # Move a note, update links to it
    mdv rename inbox/                    # Template-rename every note in a folder
    mdv export ../site --query "status = published"
    mdv links check                      # Report broken/ambiguous links
    mdv resolve "note" --from dir/a.md   # Show how a link target resolves
"""

from __future__ import annotations

import difflib
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any, NoReturn

import click
from click.exceptions import ClickException, UsageError

from . import __version__ as MDVAULT_VERSION
from ._logging import configure_logging, set_quiet_mode, set_verbose_mode
from .config import ConfigurationError, VaultConfig, load_config
from .errors import ErrorCode, MdvaultError, format_error_json
from .models import ExportOptions, LinkStrategy, RenameOptions
from .vault import LinkType


def output(data: Any, as_json: bool = False) -> None:
    """Output data as JSON or formatted text."""
    if as_json:
        click.echo(json.dumps(data, indent=2, default=str))
    else:
        click.echo(data)


def _handle_error(ctx: click.Context, error: Exception, exit_code: int = 1) -> NoReturn:
    """Report an error and exit.

    With --json-errors the error is written to stderr as
    ``{"error": {"code", "message", "details"}}``; otherwise as ``Error: ...``.
    """
    json_errors = ctx.obj.get("json_errors", False) if ctx.obj else False

    if isinstance(error, MdvaultError):
        if json_errors:
            click.echo(error.to_json(), err=True)
        else:
            click.echo(f"Error: {error.message}", err=True)
    else:
        code = ErrorCode.CONFIGURATION_ERROR if isinstance(error, ConfigurationError) else "UNKNOWN_ERROR"
        if json_errors:
            click.echo(format_error_json(code, str(error)), err=True)
        else:
            click.echo(f"Error: {error}", err=True)

    sys.exit(exit_code)


def format_json_error(code: str, message: str, details: dict | None = None) -> str:
    """Format a Click usage error as JSON for --json-errors output."""
    return format_error_json(code, message, details)


def get_error_code_for_exception(exc: Exception) -> str:
    """Map Click exceptions to error codes."""
    if isinstance(exc, click.MissingParameter):
        return "MISSING_ARGUMENT"
    elif isinstance(exc, click.BadParameter):
        return "INVALID_ARGUMENT"
    elif isinstance(exc, click.NoSuchOption):
        return "UNKNOWN_OPTION"
    elif isinstance(exc, UsageError):
        return "USAGE_ERROR"
    elif isinstance(exc, ClickException):
        return "CLI_ERROR"
    return "UNKNOWN_ERROR"


# ─────────────────────────────────────────────────────────────────────────────
# JSON Error Handling
# ─────────────────────────────────────────────────────────────────────────────


class JsonErrorGroup(click.Group):
    """Click group that formats usage errors as JSON when --json-errors is set.

    Also suggests the closest command name for typos.
    """

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except UsageError as e:
            cmd_name = args[0] if args else ""
            if cmd_name and "No such command" in str(e):
                matches = difflib.get_close_matches(cmd_name, self.list_commands(ctx), n=1, cutoff=0.6)
                if matches:
                    raise UsageError(f"No such command '{cmd_name}'. Did you mean '{matches[0]}'?") from e
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except ClickException as e:
            if ctx.params.get("json_errors"):
                click.echo(format_json_error(get_error_code_for_exception(e), e.format_message()), err=True)
                raise SystemExit(1) from e
            raise

    def main(
        self,
        args: Sequence[str] | None = None,
        prog_name: str | None = None,
        complete_var: str | None = None,
        standalone_mode: bool = True,
        **extra: Any,
    ) -> Any:
        """Catch argument parsing errors too, and accept --json-errors anywhere."""
        argv = list(args) if args is not None else list(sys.argv[1:])
        if "--json-errors" not in argv:
            return super().main(args, prog_name, complete_var, standalone_mode, **extra)

        argv = [a for a in argv if a != "--json-errors"]
        argv.insert(0, "--json-errors")

        try:
            return super().main(argv, prog_name, complete_var, standalone_mode=False, **extra)
        except ClickException as e:
            click.echo(format_json_error(get_error_code_for_exception(e), e.format_message()), err=True)
            raise SystemExit(1) from e


# ─────────────────────────────────────────────────────────────────────────────
# Shared options
# ─────────────────────────────────────────────────────────────────────────────


def vault_option(fn):
    return click.option(
        "--vault",
        "vault",
        type=click.Path(file_okay=False, path_type=Path),
        help="Vault root (default: $MDVAULT_VAULT_ROOT or current directory)",
    )(fn)


def _load_config(ctx: click.Context, vault: Path | None) -> VaultConfig:
    try:
        return load_config(vault)
    except ConfigurationError as exc:
        _handle_error(ctx, exc)


def _ignore_patterns(config: VaultConfig, extra: tuple[str, ...]) -> list[str]:
    return list(config.ignore) + [p for p in extra if p not in config.ignore]


# ─────────────────────────────────────────────────────────────────────────────
# Main CLI Group
# ─────────────────────────────────────────────────────────────────────────────


@click.group(cls=JsonErrorGroup)
@click.version_option(version=MDVAULT_VERSION, prog_name="mdv")
@click.option(
    "--json-errors",
    "json_errors",
    is_flag=True,
    help="Output errors as JSON (for programmatic use)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    envvar="MDVAULT_QUIET",
    help="Suppress warnings, show only errors and essential output",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx: click.Context, json_errors: bool, quiet: bool, verbose: bool):
    """mdv: rename and export markdown vaults without breaking links.

    \b
    Examples:
      mdv rename notes/old.md notes/new.md
      mdv rename notes/old.md              # Name from the rename template
      mdv export ../out --query "tags contains public" --slugify
      mdv links check

    \b
    For programmatic error handling:
      mdv --json-errors rename ...   # Errors output as JSON with error codes
    """
    configure_logging()

    ctx.ensure_object(dict)
    ctx.obj["json_errors"] = json_errors
    ctx.obj["quiet"] = quiet

    if verbose:
        set_verbose_mode(True)
    elif quiet:
        set_quiet_mode(True)


# ─────────────────────────────────────────────────────────────────────────────
# Rename Command
# ─────────────────────────────────────────────────────────────────────────────


def _print_rename(result, dry_run: bool) -> None:
    prefix = "Would rename" if dry_run else "Renamed"
    click.echo(f"{prefix} {result.source_path} -> {result.target_path}")
    click.echo(
        f"  {result.links_updated} link(s) in {result.files_modified} file(s)"
        f" ({result.files_scanned} scanned, {result.duration:.2f}s)"
    )
    for path in result.modified_files:
        click.echo(f"    {path}")
    for path, message in sorted(result.errors.items()):
        click.echo(f"  ! {path}: {message}", err=True)


@cli.command()
@click.argument("source", type=click.Path(path_type=Path))
@click.argument("target", required=False, type=click.Path(path_type=Path))
@vault_option
@click.option("--template", "-t", help="Filename template used when TARGET is omitted")
@click.option("--dry-run", is_flag=True, help="Report what would change without writing")
@click.option("--workers", "-w", type=click.IntRange(min=1), help="Worker threads (max 8)")
@click.option("--ignore", "ignore", multiple=True, help="Extra ignore glob (repeatable)")
@click.option("--no-search", is_flag=True, help="Scan every file instead of using ripgrep")
@click.option("--rollback", is_flag=True, help="Restore rewritten files if the final rename fails")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def rename(
    ctx: click.Context,
    source: Path,
    target: Path | None,
    vault: Path | None,
    template: str | None,
    dry_run: bool,
    workers: int | None,
    ignore: tuple[str, ...],
    no_search: bool,
    rollback: bool,
    as_json: bool,
):
    """Rename a note and update every link pointing at it.

    SOURCE and TARGET are relative to the vault root. A TARGET that is an
    existing directory keeps the file name. Without TARGET the new name
    comes from the rename template. If SOURCE is a directory, every note
    below it is renamed with the template.

    \b
    Examples:
      mdv rename drafts/idea.md projects/idea.md
      mdv rename drafts/idea.md projects/
      mdv rename inbox/ --template "{{ title | slug }}.md" --dry-run
    """
    from .rename import RenameProcessor

    config = _load_config(ctx, vault)
    options = RenameOptions(
        vault_root=config.vault_root,
        ignore_patterns=_ignore_patterns(config, ignore),
        template=template or config.rename_template,
        dry_run=dry_run,
        workers=workers if workers is not None else config.workers,
        use_search=not no_search,
        rg_path=config.rg_path,
        search_timeout=config.search_timeout,
        rollback_on_failure=rollback,
    )
    processor = RenameProcessor(options)

    source_abs = source if source.is_absolute() else config.vault_root / source
    try:
        if source_abs.is_dir():
            if target is not None:
                raise UsageError("TARGET cannot be given when SOURCE is a directory")
            results = processor.process_directory(source)
        else:
            results = [processor.process_rename(source, target)]
    except (MdvaultError, ConfigurationError) as exc:
        _handle_error(ctx, exc)

    if as_json:
        output([r.model_dump(mode="json") for r in results], as_json=True)
        return

    if not results:
        click.echo("Nothing to rename.")
        return
    for result in results:
        _print_rename(result, dry_run)


# ─────────────────────────────────────────────────────────────────────────────
# Export Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("output_dir", metavar="OUTPUT", type=click.Path(file_okay=False, path_type=Path))
@vault_option
@click.option("--query", "query", help='Frontmatter filter, e.g. "status = published"')
@click.option(
    "--link-strategy",
    type=click.Choice([s.value for s in LinkStrategy]),
    help="How to rewrite links to files outside the export (default: remove)",
)
@click.option("--no-process-links", is_flag=True, help="Leave links untouched")
@click.option("--include-assets", is_flag=True, help="Copy referenced images and attachments")
@click.option("--with-backlinks", is_flag=True, help="Also export files linking into the selection")
@click.option("--slugify", is_flag=True, help="Slugify output file names")
@click.option("--flatten", is_flag=True, help="Put every file in the output root")
@click.option("--workers", "-w", type=click.IntRange(min=1), help="Worker threads (max 8)")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Abort after SECONDS")
@click.option("--dry-run", is_flag=True, help="Report what would be exported without writing")
@click.option("--ignore", "ignore", multiple=True, help="Extra ignore glob (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def export(
    ctx: click.Context,
    output_dir: Path,
    vault: Path | None,
    query: str | None,
    link_strategy: str | None,
    no_process_links: bool,
    include_assets: bool,
    with_backlinks: bool,
    slugify: bool,
    flatten: bool,
    workers: int | None,
    timeout: float | None,
    dry_run: bool,
    ignore: tuple[str, ...],
    as_json: bool,
):
    """Export notes to OUTPUT, rewriting links to files left behind.

    \b
    Examples:
      mdv export ../public --query "tags contains public"
      mdv export ../public --link-strategy url --include-assets
      mdv export ../flat --slugify --flatten --dry-run
    """
    from .export.processor import ExportProcessor
    from .export.rewriter import get_strategy

    config = _load_config(ctx, vault)
    strategy = link_strategy or config.link_strategy
    try:
        get_strategy(strategy)
        options = ExportOptions(
            vault_path=config.vault_root,
            output_path=output_dir,
            query=query,
            ignore_patterns=_ignore_patterns(config, ignore),
            dry_run=dry_run,
            process_links=not no_process_links,
            link_strategy=LinkStrategy(strategy),
            include_assets=include_assets,
            with_backlinks=with_backlinks,
            slugify=slugify,
            flatten=flatten,
            workers=workers if workers is not None else config.workers,
            timeout=timeout,
        )
        result = ExportProcessor(options).process()
    except MdvaultError as exc:
        _handle_error(ctx, exc)

    if as_json:
        click.echo(result.model_dump_json(indent=2))
        return

    verb = "Would export" if dry_run else "Exported"
    click.echo(f"{verb} {result.files_exported} of {result.files_scanned} file(s) to {result.output_path}")
    if result.backlinks_included:
        limit = " (depth limit reached)" if result.backlink_depth_limit_reached else ""
        click.echo(f"  Backlinks included: {result.backlinks_included}{limit}")
    if result.files_renamed:
        click.echo(f"  Files renamed: {result.files_renamed}")
    click.echo(
        f"  Links: {result.external_links_removed} removed, "
        f"{result.external_links_converted} converted, "
        f"{result.internal_links_updated} retargeted"
    )
    if include_assets:
        click.echo(f"  Assets copied: {result.assets_copied}")
        for asset in result.assets_missing:
            click.echo(f"  ! missing asset: {asset}", err=True)
    for path, message in sorted(result.errors.items()):
        click.echo(f"  ! {path}: {message}", err=True)


# ─────────────────────────────────────────────────────────────────────────────
# Links Commands
# ─────────────────────────────────────────────────────────────────────────────


@cli.group()
def links():
    """Inspect links in the vault."""


@links.command("check")
@vault_option
@click.option("--ignore", "ignore", multiple=True, help="Extra ignore glob (repeatable)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def links_check(ctx: click.Context, vault: Path | None, ignore: tuple[str, ...], as_json: bool):
    """Report broken and ambiguous internal links.

    Exits with status 1 when any problem is found.

    \b
    Examples:
      mdv links check
      mdv links check --json
    """
    from .resolver import PathResolver, check_links
    from .scanner import Scanner

    config = _load_config(ctx, vault)
    scanner = Scanner(_ignore_patterns(config, ignore), continue_on_errors=True)
    files = scanner.walk(config.vault_root)
    resolver = PathResolver(scanner.list_paths(config.vault_root, None))
    problems = check_links(files, resolver)

    if as_json:
        output([p.model_dump() for p in problems], as_json=True)
    elif not problems:
        click.echo(f"No broken links in {len(files)} file(s).")
    else:
        current = None
        for problem in problems:
            if problem.source_path != current:
                current = problem.source_path
                click.echo(current)
            detail = f" (matches {', '.join(problem.candidates)})" if problem.candidates else ""
            click.echo(f"  line {problem.line}: {problem.kind} '{problem.target}'{detail}")

    if problems:
        sys.exit(1)


# ─────────────────────────────────────────────────────────────────────────────
# Resolve Command
# ─────────────────────────────────────────────────────────────────────────────


@cli.command()
@click.argument("target")
@click.option("--from", "source", required=True, help="Vault-relative path of the linking file")
@click.option(
    "--type",
    "link_type",
    type=click.Choice([t.value for t in LinkType]),
    default=LinkType.WIKI.value,
    show_default=True,
    help="Link syntax the target appears in",
)
@vault_option
@click.pass_context
def resolve(ctx: click.Context, target: str, source: str, link_type: str, vault: Path | None):
    """Print the vault path a link target resolves to.

    \b
    Examples:
      mdv resolve "My Note" --from projects/index.md
      mdv resolve "../img/a%20b.png" --from notes/x.md --type markdown
    """
    from .resolver import PathResolver
    from .scanner import Scanner

    config = _load_config(ctx, vault)
    scanner = Scanner(config.ignore)
    resolver = PathResolver(scanner.list_paths(config.vault_root, None))
    try:
        click.echo(resolver.resolve_or_raise(target, source, LinkType(link_type)))
    except MdvaultError as exc:
        _handle_error(ctx, exc)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
