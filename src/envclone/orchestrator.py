"""
Clone orchestrator.

Runs one end-to-end clone: guard checks, connection resolution, target
wipe or reset, then either the native pg_dump/psql clone or the row-level
copy. Apart from the guard errors, every failure ends up in the returned
CloneResult instead of being raised.
"""

import logging
import time
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from envclone.anonymization import AnonymizationEngine
from envclone.cloner import ClonePhase, PgDumpCloner
from envclone.connection import resolve, resolve_host_to_ip
from envclone.copier import DataCopier
from envclone.database import DatabaseClient
from envclone.deleter import DataDeleter
from envclone.exceptions import (
    CloneError, ConfigurationError, OperationCancelledError, ProductionProtectionError,
)
from envclone.logging_utils import OperationLog, format_duration
from envclone.models import (
    CloneLog, CloneMode, CloneOptions, LogLevel, CloneRequest, CloneResult, CopyOptions, DeletionOptions,
)
from envclone.operation import CancellationToken, CloneOperation, OperationStatus
from envclone.pgtools import PgToolRunner
from envclone.relationships import RelationshipManager
from envclone.tables import PRIMARY_KEYS

logger = logging.getLogger(__name__)

# Progress reached when each native phase starts
NATIVE_PROGRESS = {
    ClonePhase.VERIFY_TOOLS: 5,
    ClonePhase.DUMP_SYSTEM: 10,
    ClonePhase.DUMP_USER: 25,
    ClonePhase.RESET_TARGET: 50,
    ClonePhase.RESTORE_SYSTEM: 60,
    ClonePhase.RESTORE_USER: 70,
    ClonePhase.CLEANUP: 95,
}


def validate_options(options: CloneOptions):
    """Reject numeric options that would only fail after the target was wiped."""
    if not isinstance(options.batch_size, int) or options.batch_size < 1:
        raise ConfigurationError(f"batch_size must be a positive integer (got {options.batch_size!r})")
    for name in ('dump_timeout', 'phase_timeout'):
        value = getattr(options, name)
        if value is not None and value <= 0:
            raise ConfigurationError(f"{name} must be positive (got {value!r})")


class CloneOrchestrator:
    """Sequence resolve -> delete/reset -> dump/copy -> restore/insert."""

    def __init__(self, relationship_manager: Optional[RelationshipManager] = None,
                 engine: Optional[AnonymizationEngine] = None,
                 client_factory=DatabaseClient.from_credentials,
                 runner_factory: Optional[Callable[[CancellationToken], PgToolRunner]] = None,
                 resolver=resolve_host_to_ip,
                 subscriber: Optional[Callable[[CloneLog], None]] = None):
        self.relationship_manager = relationship_manager or RelationshipManager(PRIMARY_KEYS)
        self.engine = engine or AnonymizationEngine()
        self.client_factory = client_factory
        self.runner_factory = runner_factory
        self.resolver = resolver
        self.subscriber = subscriber
        self.operation: Optional[CloneOperation] = None

    def clone(self, request: CloneRequest, cancel_token: Optional[CancellationToken] = None) -> CloneResult:
        """
        Run the clone described by ``request``.

        Raises:
            ProductionProtectionError: the target is a production environment.
            ConfigurationError: bad credentials or options, or deletion not confirmed.
        """
        source, target, options = request.source, request.target, request.options

        if target.is_production:
            raise ProductionProtectionError(
                f"Refusing to clone into production environment '{target.name}'"
            )
        if not options.confirm_deletion:
            raise ConfigurationError(
                f"Cloning replaces all data in '{target.name}'; set confirm_deletion to proceed"
            )
        validate_options(options)
        source_connection = resolve(source.credentials)
        target_connection = resolve(target.credentials)

        cancel_token = cancel_token or CancellationToken()
        operation = CloneOperation()
        self.operation = operation
        log = OperationLog(self.subscriber, entries=operation.logs)
        self.relationship_manager.reset()

        start = time.time()
        errors = []
        backup_id = None
        operation.transition(OperationStatus.IN_PROGRESS)
        log.info('start', f"Cloning {source.name} -> {target.name} ({options.mode.value} mode)",
                 operation_id=operation.operation_id)

        try:
            if options.mode is CloneMode.NATIVE:
                backup_id = self._run_native(request, source_connection, target_connection,
                                             operation, log, cancel_token)
            else:
                backup_id = self._run_rows(request, operation, log, cancel_token)
        except OperationCancelledError as e:
            errors.append(str(e))
            log.warning(operation.phase, str(e))
            self._finish(operation, start, OperationStatus.CANCELLED, str(e))
        except (CloneError, SQLAlchemyError, OSError) as e:
            errors.append(str(e))
            log.error(operation.phase, f"Clone failed: {e}")
            self._finish(operation, start, OperationStatus.FAILED, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in operation {operation.operation_id}")
            errors.append(f"{type(e).__name__}: {e}")
            log.error(operation.phase, f"Clone failed unexpectedly: {type(e).__name__}: {e}")
            self._finish(operation, start, OperationStatus.FAILED, str(e))
        else:
            log.success('completed', f"Clone finished in {format_duration(time.time() - start)}")
            operation.advance('completed', 100)
            self._finish(operation, start, OperationStatus.COMPLETED)

        duration = operation.statistics.duration
        warnings = []
        for entry in operation.logs:
            if entry.level is LogLevel.WARNING and entry.message not in warnings + errors:
                warnings.append(entry.message)

        return CloneResult(
            success=operation.status is OperationStatus.COMPLETED,
            operation_id=operation.operation_id,
            source_environment=source.name,
            target_environment=target.name,
            statistics=operation.statistics,
            duration=duration,
            completed_at=operation.completed_at,
            backup_id=backup_id,
            errors=errors,
            warnings=warnings,
            logs=list(operation.logs),
        )

    @staticmethod
    def _finish(operation, start, status, error=None):
        operation.statistics.duration = time.time() - start
        operation.transition(status, error=error)

    def _deleter(self, log, cancel_token) -> DataDeleter:
        return DataDeleter(self.client_factory, log=log, cancel_token=cancel_token)

    def _run_native(self, request, source_connection, target_connection, operation, log, cancel_token):
        options = request.options
        backup_id = None
        if options.anonymize:
            log.warning('start', "Native mode copies data as-is; anonymization applies to row mode only")
        if options.create_backup:
            operation.advance('backup', 2)
            backup_id = self._deleter(log, cancel_token).backup(
                request.target.credentials, request.target.name, options.backup_dir, options.tables)

        if self.runner_factory:
            runner = self.runner_factory(cancel_token)
        else:
            runner = PgToolRunner(timeout=options.dump_timeout, cancel_token=cancel_token)

        cloner = PgDumpCloner(
            runner=runner,
            resolver=self.resolver,
            log=log,
            statistics=operation.statistics,
            cancel_token=cancel_token,
            on_phase=lambda phase: operation.advance(phase.value, NATIVE_PROGRESS.get(phase)),
            temp_dir=options.temp_dir,
            verbose=options.verbose,
        )
        result = cloner.clone_database(source_connection, target_connection, options.dump_timeout)
        log.info('summary', f"{result.tables} tables, {result.functions} functions, "
                            f"{result.triggers} triggers cloned")
        return backup_id

    def _run_rows(self, request, operation, log, cancel_token):
        options = request.options
        deleter = self._deleter(log, cancel_token)

        operation.advance('delete', 5)
        deletion = deleter.delete_all_data(
            request.target.credentials,
            request.target.name,
            DeletionOptions(confirm_deletion=True, create_backup=options.create_backup,
                            backup_dir=options.backup_dir, tables=options.tables),
        )
        if not deletion.success:
            raise CloneError(f"Target wipe failed for {len(deletion.errors)} table(s): "
                             + '; '.join(deletion.errors))

        operation.advance('copy', 30)
        copier = DataCopier(
            client_factory=self.client_factory,
            engine=self.engine,
            relationship_manager=self.relationship_manager,
            log=log,
            cancel_token=cancel_token,
            statistics=operation.statistics,
        )
        copy_options = CopyOptions(
            batch_size=options.batch_size,
            anonymize=options.anonymize,
            preserve_timestamps=options.preserve_timestamps,
            remap_ids=options.remap_ids,
            tables=options.tables,
            phase_timeout=options.phase_timeout,
        )
        copied = copier.copy_all_data(request.source.credentials, request.target.credentials, copy_options)
        if not copied.success:
            raise CloneError(f"Row copy failed for {len(copied.errors)} table(s): "
                             + '; '.join(copied.errors))

        if options.validate_after_clone:
            operation.advance('validate', 90)
            counts = copier.verify_counts(request.source.credentials, request.target.credentials,
                                          list(copied.tables_copied))
            for table, (source_count, target_count) in counts.items():
                if source_count != target_count:
                    message = f"Row count mismatch for {table}: source {source_count}, target {target_count}"
                    log.warning('validate', message, table=table)
        return deletion.backup_id
