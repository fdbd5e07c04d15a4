#!/usr/bin/env python3
"""
envclone CLI - clone Supabase environments.

Clones a source environment into a target environment (pg_dump/psql or
row-by-row), wiping the target first and anonymizing personal data.
"""

import sys

import click

from cli.clone.commands import (
    CloneCommand, DeleteCommand, PreviewCommand, SanitizeCommand, ToolsCommand, VerifyCommand,
)
from cli.core.context import Context
from cli.core.utils import EXIT_ERROR
from envclone.config import load_config
from envclone.exceptions import ConfigurationError
from envclone.logging_utils import setup_logging


pass_context = click.make_pass_decorator(Context, ensure=True)
CONTEXT_SETTINGS = dict(help_option_names=['-h', '--help'])


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option('--config', '-c', 'config_file', default='config.yaml', show_default=True,
              help='YAML file describing environments')
@click.option('--verbose', '-v', is_flag=True, help='Show detailed information')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also write logs to this file')
@pass_context
def cli(ctx: Context, config_file: str, verbose: bool, log_file: str):
    """Clone and anonymize Supabase database environments"""
    ctx.verbose = verbose
    ctx.config_file = config_file
    ctx.log_file = log_file
    setup_logging(log_file=log_file, verbose=verbose, console=verbose)


def _load_config(ctx: Context):
    """Commands that need environments call this; sanitize/tools don't."""
    try:
        ctx.config = load_config(ctx.config_file)
    except ConfigurationError as e:
        ctx.stderr_console.print(f"Error loading configuration: {e}", style="bold red")
        sys.exit(EXIT_ERROR)

    configured_log = ctx.config.settings.get('log_file')
    if configured_log and not ctx.log_file:
        setup_logging(log_file=configured_log, verbose=ctx.verbose, console=ctx.verbose)


@cli.command()
@click.argument('source')
@click.argument('target')
@click.option('--mode', type=click.Choice(['native', 'rows']), default='native', show_default=True,
              help='native: pg_dump/psql; rows: paginated row copy')
@click.option('--anonymize/--no-anonymize', default=True, show_default=True,
              help='Anonymize personal data (row mode)')
@click.option('--batch-size', type=int, help='Rows per page in row mode')
@click.option('--backup', is_flag=True, help='Back up target tables to JSON before wiping')
@click.option('--remap-ids', is_flag=True, help='Replace primary/foreign keys consistently (row mode)')
@click.option('--table', '-t', 'tables', multiple=True, help='Limit to these tables (row mode)')
@click.option('--export-mappings', type=click.Path(dir_okay=False), help='Save ID mappings to JSON')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@pass_context
def clone(ctx: Context, source, target, mode, anonymize, batch_size, backup, remap_ids, tables,
          export_mappings, yes):
    """Clone SOURCE environment into TARGET."""
    _load_config(ctx)
    command = CloneCommand(ctx)
    exit_code = command.execute(source, target, mode=mode, anonymize=anonymize, batch_size=batch_size,
                                backup=backup, yes=yes, remap_ids=remap_ids, tables=tables,
                                export_mappings=export_mappings)
    sys.exit(exit_code)


@cli.command()
@click.argument('target')
@click.option('--backup', is_flag=True, help='Back up tables to JSON before deleting')
@click.option('--yes', '-y', is_flag=True, help='Do not ask for confirmation')
@pass_context
def delete(ctx: Context, target, backup, yes):
    """Delete all data from the known tables of TARGET."""
    _load_config(ctx)
    command = DeleteCommand(ctx)
    exit_code = command.execute(target, backup=backup, yes=yes)
    sys.exit(exit_code)


@cli.command()
@click.argument('source')
@click.argument('target')
@click.option('--table', '-t', 'tables', multiple=True, help='Tables to compare (default: all known)')
@pass_context
def verify(ctx: Context, source, target, tables):
    """Compare row counts between SOURCE and TARGET."""
    _load_config(ctx)
    command = VerifyCommand(ctx)
    exit_code = command.execute(source, target, tables=tables)
    sys.exit(exit_code)


@cli.command()
@click.argument('environment')
@click.argument('table')
@click.option('--limit', '-n', type=int, default=10, show_default=True, help='Rows to sample')
@pass_context
def preview(ctx: Context, environment, table, limit):
    """Preview anonymization of TABLE in ENVIRONMENT without writing."""
    _load_config(ctx)
    command = PreviewCommand(ctx)
    exit_code = command.execute(environment, table, limit=limit)
    sys.exit(exit_code)


@cli.command()
@click.argument('dump_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--system', is_flag=True, help='Treat as an auth/storage data dump')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write here instead of stdout')
@pass_context
def sanitize(ctx: Context, dump_file, system, output):
    """Sanitize a pg_dump SQL file for restore into another project."""
    command = SanitizeCommand(ctx)
    exit_code = command.execute(dump_file, system=system, output=output)
    sys.exit(exit_code)


@cli.command()
@pass_context
def tools(ctx: Context):
    """Check that pg_dump and psql are installed."""
    command = ToolsCommand(ctx)
    exit_code = command.execute()
    sys.exit(exit_code)


if __name__ == '__main__':
    cli()
