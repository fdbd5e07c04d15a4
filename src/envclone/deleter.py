"""
Destructive data deleter.

Wipes every known table of a target database, children first. Refuses to
touch anything whose environment name looks like production.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from envclone.database import DatabaseClient
from envclone.exceptions import CloneError, ConfigurationError, ProductionProtectionError
from envclone.logging_utils import OperationLog
from envclone.models import Credentials, DeletionOptions, DeletionResult
from envclone.operation import CancellationToken
from envclone.tables import DELETE_ORDER

logger = logging.getLogger(__name__)

PHASE = 'delete'
DEFAULT_BACKUP_DIR = 'backups'


def ensure_not_production(environment_name: str):
    """Raise ProductionProtectionError if the name contains 'prod' in any case."""
    if 'prod' in (environment_name or '').lower():
        raise ProductionProtectionError(
            f"Refusing destructive operation on production environment '{environment_name}'"
        )


class DataDeleter:
    """Delete all rows of the known tables in reverse dependency order."""

    def __init__(self, client_factory: Callable[[Credentials], DatabaseClient] = DatabaseClient.from_credentials,
                 log: Optional[OperationLog] = None,
                 cancel_token: Optional[CancellationToken] = None,
                 table_order: Sequence[str] = DELETE_ORDER):
        self.client_factory = client_factory
        self.log = log or OperationLog()
        self.cancel_token = cancel_token or CancellationToken()
        self.table_order = list(table_order)

    def delete_all_data(self, credentials: Credentials, environment_name: str,
                        options: Optional[DeletionOptions] = None) -> DeletionResult:
        """
        Delete all data from ``environment_name``.

        Raises:
            ProductionProtectionError: the environment name contains "prod".
            ConfigurationError: ``options.confirm_deletion`` is not True.
        """
        ensure_not_production(environment_name)
        options = options or DeletionOptions()
        if options.confirm_deletion is not True:
            raise ConfigurationError("Deletion must be confirmed explicitly (confirm_deletion=True)")

        wanted = set(options.tables) if options.tables else None
        order = [t for t in self.table_order if wanted is None or t in wanted]

        result = DeletionResult()
        client = self.client_factory(credentials)
        try:
            existing = self.discover_tables(client, order)
            self.log.info(PHASE, f"Found {len(existing)} of {len(order)} known tables in {environment_name}")

            if options.create_backup and existing:
                result.backup_id = self.backup_tables(client, existing, environment_name,
                                                      options.backup_dir or DEFAULT_BACKUP_DIR)

            for table in existing:
                self.cancel_token.raise_if_cancelled(f"delete of {table}")
                try:
                    deleted = client.delete_all(table)
                except SQLAlchemyError as e:
                    message = f"Failed to delete from {table}: {e}"
                    result.errors.append(message)
                    self.log.error(PHASE, message, table=table)
                    continue
                result.rows_deleted[table] = deleted
                result.tables_cleared.append(table)
                self.log.info(PHASE, f"{table}: {deleted:,} rows deleted", table=table, rows=deleted)
        finally:
            client.dispose()

        result.success = not result.errors
        if result.success:
            self.log.success(PHASE, f"Cleared {len(result.tables_cleared)} tables "
                                    f"({result.total_rows_deleted:,} rows)")
        return result

    def discover_tables(self, client: DatabaseClient, tables: Sequence[str]) -> List[str]:
        existing = []
        for table in tables:
            if client.table_exists(table):
                existing.append(table)
            else:
                self.log.info(PHASE, f"Skipping {table}: not found or not accessible", table=table)
        return existing

    def backup_tables(self, client: DatabaseClient, tables: Sequence[str], environment_name: str,
                      backup_dir: str) -> str:
        """Write every row of ``tables`` to a JSON file and return the backup id."""
        backup_id = f"backup_{environment_name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        path = Path(backup_dir) / f"{backup_id}.json"
        try:
            os.makedirs(backup_dir, exist_ok=True)
            snapshot = {table: client.fetch_page(table, 0, client.count_rows(table) or 1)
                        for table in tables}
            with open(path, 'w') as f:
                json.dump(snapshot, f, indent=2, default=str)
        except (OSError, SQLAlchemyError) as e:
            raise CloneError(f"Backup of {environment_name} failed, nothing was deleted: {e}") from e

        self.log.success(PHASE, f"Backup written to {path}", backup_id=backup_id)
        return backup_id

    def backup(self, credentials: Credentials, environment_name: str,
               backup_dir: Optional[str] = None, tables: Optional[Sequence[str]] = None) -> Optional[str]:
        """Back up the existing known tables without deleting anything."""
        wanted = set(tables) if tables else None
        order = [t for t in self.table_order if wanted is None or t in wanted]
        client = self.client_factory(credentials)
        try:
            existing = self.discover_tables(client, order)
            if not existing:
                return None
            return self.backup_tables(client, existing, environment_name, backup_dir or DEFAULT_BACKUP_DIR)
        finally:
            client.dispose()
