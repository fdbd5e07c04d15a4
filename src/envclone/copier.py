"""
Row-level data copier.

Copies the well-known tables page by page from a source database to a
target database, anonymizing sensitive fields on the way. A failing table
is recorded and the copy moves on to the next one.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from envclone.anonymization import AnonymizationEngine
from envclone.database import DatabaseClient
from envclone.exceptions import PhaseTimeoutError, TableOperationError
from envclone.logging_utils import OperationLog
from envclone.models import CloneStatistics, CopyOptions, CopyResult, Credentials
from envclone.operation import CancellationToken
from envclone.relationships import (
    ForeignKeyRelationship, RelationshipManager, check_dependency_order,
)
from envclone.tables import COPY_ORDER, PRIMARY_KEYS, RELATIONSHIPS, anonymization_rules

logger = logging.getLogger(__name__)

PHASE = 'copy'

ClientFactory = Callable[[Credentials], DatabaseClient]


class DataCopier:
    """Paginated source -> target copy over the tables in dependency order."""

    def __init__(self, client_factory: ClientFactory = DatabaseClient.from_credentials,
                 engine: Optional[AnonymizationEngine] = None,
                 relationship_manager: Optional[RelationshipManager] = None,
                 log: Optional[OperationLog] = None,
                 cancel_token: Optional[CancellationToken] = None,
                 statistics: Optional[CloneStatistics] = None,
                 table_order: Sequence[str] = COPY_ORDER,
                 relationships: Sequence[ForeignKeyRelationship] = RELATIONSHIPS):
        check_dependency_order(table_order, relationships)
        self.client_factory = client_factory
        self.engine = engine or AnonymizationEngine()
        self.relationship_manager = relationship_manager or RelationshipManager(PRIMARY_KEYS)
        self.log = log or OperationLog()
        self.cancel_token = cancel_token or CancellationToken()
        self.statistics = statistics or CloneStatistics()
        self.table_order = list(table_order)
        self.relationships = list(relationships)

    def _tables(self, options: CopyOptions) -> List[str]:
        if not options.tables:
            return list(self.table_order)
        wanted = set(options.tables)
        return [t for t in self.table_order if t in wanted] + \
            [t for t in options.tables if t not in self.table_order]

    def copy_all_data(self, source_credentials: Credentials, target_credentials: Credentials,
                      options: Optional[CopyOptions] = None) -> CopyResult:
        options = options or CopyOptions()
        if options.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        tables = self._tables(options)
        deadline = time.monotonic() + options.phase_timeout if options.phase_timeout else None
        result = CopyResult()
        self.statistics.add(tables_total=len(tables))

        mode = 'DRY RUN' if options.dry_run else 'LIVE'
        self.log.info(PHASE, f"Copying {len(tables)} tables ({mode}, batch size {options.batch_size})")

        with self.client_factory(source_credentials) as source, \
                self.client_factory(target_credentials) as target:
            for table in tables:
                self._check_interrupts(deadline, table)
                try:
                    self._copy_table(source, target, table, options, result, deadline)
                except (TableOperationError, SQLAlchemyError) as e:
                    message = f"Failed to copy {table}: {e}"
                    result.errors.append(message)
                    self.log.error(PHASE, message, table=table)
                self.statistics.add(tables_processed=1)

        result.success = not result.errors
        if result.success:
            self.log.success(PHASE, f"Copied {result.records_copied:,} records "
                                    f"from {len(result.tables_copied)} tables")
        else:
            self.log.error(PHASE, f"Copy finished with {len(result.errors)} failed table(s)")
        return result

    def _check_interrupts(self, deadline: Optional[float], table: str):
        self.cancel_token.raise_if_cancelled(f"copy of {table}")
        if deadline is not None and time.monotonic() > deadline:
            raise PhaseTimeoutError(f"Row copy exceeded its time limit while copying {table}")

    def _copy_table(self, source: DatabaseClient, target: DatabaseClient, table: str,
                    options: CopyOptions, result: CopyResult, deadline: Optional[float]):
        if not source.table_exists(table) or not target.table_exists(table):
            self.log.warning(PHASE, f"Skipping {table}: not present on both sides", table=table)
            result.tables_skipped.append(table)
            return

        target_columns = set(target.get_columns(table))
        dropped = [c for c in source.get_columns(table) if c not in target_columns]
        if dropped:
            self.log.warning(PHASE, f"{table}: columns missing on target, not copied: {', '.join(dropped)}",
                             table=table)

        rules = anonymization_rules(table) if options.anonymize else []
        self.log.info(PHASE, f"Copying {table}...", table=table)

        offset = 0
        copied = 0
        while True:
            self._check_interrupts(deadline, table)
            page = source.fetch_page(table, offset, options.batch_size)
            if not page:
                break

            rows = page
            if rules:
                batch = self.engine.anonymize_batch(rows, rules, table)
                rows = batch.anonymized_data
                result.records_anonymized += batch.report.anonymized_records
                self.statistics.add(records_anonymized=batch.report.anonymized_records)
                for error in batch.report.errors:
                    self.log.warning(PHASE, f"Anonymization kept original value: {error}", table=table)

            if options.remap_ids:
                rows = self.relationship_manager.map_rows(table, rows, self.relationships)

            rows = [{k: v for k, v in row.items() if k in target_columns} for row in rows]
            if not options.preserve_timestamps:
                now = datetime.now(timezone.utc)
                for row in rows:
                    if 'updated_at' in row:
                        row['updated_at'] = now

            if not options.dry_run:
                target.insert_rows(table, rows)

            copied += len(rows)
            self.statistics.add(records_processed=len(rows))
            self.log.info(PHASE, f"  ... {table}: {copied:,} rows", table=table, records=copied)

            if len(page) < options.batch_size:
                break
            offset += options.batch_size

        result.tables_copied[table] = copied
        result.records_copied += copied
        if copied:
            self.log.success(PHASE, f"{table}: {copied:,} rows copied", table=table)
        else:
            self.log.info(PHASE, f"{table}: empty", table=table)

    def verify_counts(self, source_credentials: Credentials, target_credentials: Credentials,
                      tables: Optional[Sequence[str]] = None) -> Dict[str, Tuple[Optional[int], Optional[int]]]:
        """Row counts per table on each side; None where the table is missing."""
        counts = {}
        with self.client_factory(source_credentials) as source, \
                self.client_factory(target_credentials) as target:
            for table in tables or self.table_order:
                counts[table] = (
                    source.count_rows(table) if source.table_exists(table) else None,
                    target.count_rows(table) if target.table_exists(table) else None,
                )
        return counts
