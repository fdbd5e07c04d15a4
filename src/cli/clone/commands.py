"""Clone command classes."""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

import click
from sqlalchemy.exc import SQLAlchemyError

from cli.clone.display import (
    display_clone_result, display_counts, display_deletion_result, display_preview,
    display_tool_versions, print_log_entry,
)
from cli.core.base import BaseCommand, BaseEnvironmentCommand
from cli.core.utils import EXIT_ERROR, EXIT_FAILURE, EXIT_SUCCESS
from envclone.anonymization import AnonymizationEngine
from envclone.copier import DataCopier
from envclone.database import DatabaseClient
from envclone.deleter import DataDeleter
from envclone.exceptions import CloneError
from envclone.logging_utils import OperationLog
from envclone.models import CloneMode, CloneOptions, CloneRequest, DeletionOptions
from envclone.operation import CancellationToken
from envclone.orchestrator import CloneOrchestrator
from envclone.pgtools import PgToolRunner
from envclone.sanitize import SanitizeOptions, sanitize
from envclone.tables import anonymization_rules


class CloneCommand(BaseEnvironmentCommand):
    """Clone one environment into another."""

    def execute(self, source: str, target: str, mode: str = 'native', anonymize: bool = True,
                batch_size: Optional[int] = None, backup: bool = False, yes: bool = False,
                remap_ids: bool = False, tables: Sequence[str] = (),
                export_mappings: Optional[str] = None) -> int:
        try:
            source_env = self.get_environment(source)
            target_env = self.get_environment(target)

            if not yes and not click.confirm(
                    f"⚠️  All data in '{target_env.name}' will be replaced. Continue?", default=False):
                self.console.print("Aborted.", style="yellow")
                return EXIT_FAILURE

            options = CloneOptions(
                mode=CloneMode(mode),
                anonymize=anonymize,
                confirm_deletion=True,
                create_backup=backup,
                remap_ids=remap_ids,
                batch_size=batch_size or self.setting('batch_size') or 1000,
                tables=list(tables) or None,
                verbose=self.ctx.verbose,
                dump_timeout=self.setting('dump_timeout'),
                phase_timeout=self.setting('phase_timeout'),
                backup_dir=self.setting('backup_dir'),
                temp_dir=self.setting('temp_dir'),
            )
            orchestrator = CloneOrchestrator(subscriber=lambda entry: print_log_entry(self.ctx, entry))
            result = self._run(orchestrator, CloneRequest(source_env, target_env, options))

            display_clone_result(self.ctx, result)
            if export_mappings:
                orchestrator.relationship_manager.save_mappings(export_mappings)
                self.console.print(f"✓ Mappings exported to {export_mappings}", style="green")
            return EXIT_SUCCESS if result.success else EXIT_FAILURE
        except (CloneError, OSError) as e:
            return self.handle_exception(e)

    def _run(self, orchestrator: CloneOrchestrator, request: CloneRequest):
        """Run the clone in a worker so Ctrl-C can cancel it cleanly."""
        token = CancellationToken()
        with ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(orchestrator.clone, request, token)
            try:
                return future.result()
            except KeyboardInterrupt:
                self.ctx.stderr_console.print("Cancelling, waiting for the current step...", style="yellow")
                token.cancel()
                return future.result()


class DeleteCommand(BaseEnvironmentCommand):
    """Wipe all known tables of an environment."""

    def execute(self, target: str, backup: bool = False, yes: bool = False) -> int:
        try:
            env = self.get_environment(target)
            if not yes and not click.confirm(
                    f"⚠️  Delete ALL data from '{env.name}'?", default=False):
                self.console.print("Aborted.", style="yellow")
                return EXIT_FAILURE

            deleter = DataDeleter(log=OperationLog(lambda entry: print_log_entry(self.ctx, entry)))
            result = deleter.delete_all_data(
                env.credentials,
                env.name,
                DeletionOptions(confirm_deletion=True, create_backup=backup,
                                backup_dir=self.setting('backup_dir')),
            )
            display_deletion_result(self.ctx, env.name, result)
            return EXIT_SUCCESS if result.success else EXIT_FAILURE
        except (CloneError, SQLAlchemyError) as e:
            return self.handle_exception(e)


class VerifyCommand(BaseEnvironmentCommand):
    """Compare per-table row counts of two environments."""

    def execute(self, source: str, target: str, tables: Sequence[str] = ()) -> int:
        try:
            source_env = self.get_environment(source)
            target_env = self.get_environment(target)
            counts = DataCopier().verify_counts(source_env.credentials, target_env.credentials,
                                                list(tables) or None)
            mismatches = display_counts(self.ctx, source_env.name, target_env.name, counts)
            if mismatches:
                self.console.print(f"❌ {mismatches} table(s) differ", style="bold red")
                return EXIT_FAILURE
            self.console.print("✅ Row counts match", style="bold green")
            return EXIT_SUCCESS
        except (CloneError, SQLAlchemyError) as e:
            return self.handle_exception(e)


class PreviewCommand(BaseEnvironmentCommand):
    """Show what anonymization would do to a sample of a table."""

    def execute(self, environment: str, table: str, limit: int = 10) -> int:
        try:
            env = self.get_environment(environment)
            with DatabaseClient.from_credentials(env.credentials) as client:
                if not client.table_exists(table):
                    self.console.print(f"❌ Table not found: {table}", style="bold red")
                    return EXIT_FAILURE
                rows = client.fetch_page(table, 0, limit)

            if not rows:
                self.console.print(f"{table} is empty", style="yellow")
                return EXIT_SUCCESS

            engine = AnonymizationEngine()
            rules = anonymization_rules(table) or engine.generate_rules(table, rows[0])
            if not rules:
                self.console.print(f"No anonymization rules apply to {table}", style="yellow")
                return EXIT_SUCCESS
            display_preview(self.ctx, table, rows, engine.anonymize_batch(rows, rules, table))
            return EXIT_SUCCESS
        except (CloneError, SQLAlchemyError) as e:
            return self.handle_exception(e)


class SanitizeCommand(BaseCommand):
    """Apply dump sanitization to a SQL file."""

    def execute(self, dump_file: str, system: bool = False, output: Optional[str] = None) -> int:
        try:
            with open(dump_file) as f:
                text = f.read()
            cleaned = sanitize(text, SanitizeOptions(system_dump=system))
            if output:
                with open(output, 'w') as f:
                    f.write(cleaned)
                self.console.print(f"✓ Sanitized dump written to {output}", style="green")
            else:
                click.echo(cleaned, nl=False)
            return EXIT_SUCCESS
        except OSError as e:
            return self.handle_exception(e)


class ToolsCommand(BaseCommand):
    """Check that pg_dump and psql are available."""

    def execute(self) -> int:
        try:
            display_tool_versions(self.ctx, PgToolRunner().verify())
            return EXIT_SUCCESS
        except CloneError as e:
            self.ctx.stderr_console.print(f"❌ {e}", style="bold red")
            return EXIT_ERROR
