"""
Native-tool cloner.

Clones a Supabase database with pg_dump/psql in two passes: auth/storage
data first (INSERT ... ON CONFLICT DO NOTHING, transient tables excluded),
then the user schemas with structure and data. The target is reset before
restoring and each restore runs as a single transaction.
"""

import enum
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from envclone.connection import resolve_host_to_ip
from envclone.exceptions import CloneError
from envclone.logging_utils import OperationLog, format_bytes, format_duration
from envclone.models import CloneStatistics, PostgresConnection
from envclone.operation import CancellationToken
from envclone.pgtools import DumpOptions, PgToolRunner, with_dns_retry
from envclone.sanitize import SanitizeOptions, sanitize

logger = logging.getLogger(__name__)

SYSTEM_SCHEMAS = ['auth', 'storage']

# Regenerated on login or tied to a server version; never copied
SYSTEM_EXCLUDED_TABLES = [
    'auth.oauth_clients',
    'auth.oauth_authorizations',
    'auth.oauth_consents',
    'auth.sso_providers',
    'auth.sso_domains',
    'auth.saml_providers',
    'auth.saml_relay_states',
    'auth.schema_migrations',
    'auth.sessions',
    'auth.refresh_tokens',
    'auth.mfa_amr_claims',
    'auth.mfa_challenges',
    'auth.mfa_factors',
    'auth.flow_state',
    'auth.one_time_tokens',
    'auth.audit_log_entries',
    'storage.migrations',
]

USER_EXCLUDED_SCHEMAS = [
    'auth', 'storage', 'realtime', 'extensions', 'graphql', 'graphql_public',
    'vault', 'pgbouncer', 'pgsodium', 'pgsodium_masks', 'supabase_functions',
    'supabase_migrations',
]

RESET_TARGET_SQL = """\
DROP SCHEMA IF EXISTS public CASCADE;
CREATE SCHEMA public;
GRANT USAGE ON SCHEMA public TO postgres, anon, authenticated, service_role;
GRANT ALL ON SCHEMA public TO postgres;
ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON TABLES TO postgres, service_role;
ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON FUNCTIONS TO postgres, service_role;
ALTER DEFAULT PRIVILEGES IN SCHEMA public GRANT ALL ON SEQUENCES TO postgres, service_role;

ALTER TABLE auth.users DISABLE ROW LEVEL SECURITY;
TRUNCATE TABLE storage.objects CASCADE;
TRUNCATE TABLE storage.buckets CASCADE;
TRUNCATE TABLE auth.users CASCADE;
TRUNCATE TABLE auth.flow_state CASCADE;
TRUNCATE TABLE auth.mfa_challenges CASCADE;
TRUNCATE TABLE auth.saml_relay_states CASCADE;
TRUNCATE TABLE auth.sso_domains CASCADE;
TRUNCATE TABLE auth.sso_providers CASCADE;
TRUNCATE TABLE auth.audit_log_entries CASCADE;
ALTER TABLE auth.users ENABLE ROW LEVEL SECURITY;

DO $$
DECLARE
    remaining integer;
BEGIN
    SELECT count(*) INTO remaining FROM auth.users;
    IF remaining > 0 THEN
        RAISE EXCEPTION 'auth.users still holds % rows after reset', remaining;
    END IF;
END $$;
"""

# Dumps from SQL_ASCII or LATIN1 databases are not valid UTF-8; undecodable
# bytes are carried through unchanged via surrogateescape.
DUMP_ENCODING = 'utf-8'

TABLE_RE = re.compile(r'^CREATE TABLE ', re.MULTILINE)
FUNCTION_RE = re.compile(r'^CREATE (?:OR REPLACE )?FUNCTION ', re.MULTILINE)
TRIGGER_RE = re.compile(r'^CREATE (?:OR REPLACE )?(?:CONSTRAINT )?TRIGGER ', re.MULTILINE)


class ClonePhase(enum.Enum):
    VERIFY_TOOLS = 'verify-tools'
    DUMP_SYSTEM = 'dump-system-schemas'
    DUMP_USER = 'dump-user-schemas'
    RESET_TARGET = 'reset-target'
    RESTORE_SYSTEM = 'restore-system'
    RESTORE_USER = 'restore-user'
    CLEANUP = 'cleanup'
    COMPLETED = 'completed'
    FAILED = 'failed'


def system_dump_options(verbose=False) -> DumpOptions:
    return DumpOptions(
        schemas=list(SYSTEM_SCHEMAS),
        exclude_tables=list(SYSTEM_EXCLUDED_TABLES),
        data_only=True,
        use_inserts=True,
        on_conflict_do_nothing=True,
        verbose=verbose,
    )


def user_dump_options(verbose=False) -> DumpOptions:
    return DumpOptions(exclude_schemas=list(USER_EXCLUDED_SCHEMAS), verbose=verbose)


@dataclass
class PgCloneResult:
    success: bool
    duration: float
    dump_size: int
    tables: int = 0
    functions: int = 0
    triggers: int = 0
    phases: List[str] = field(default_factory=list)


class PgDumpCloner:
    """pg_dump/psql clone driven through an explicit phase sequence."""

    def __init__(self, runner: Optional[PgToolRunner] = None,
                 resolver: Callable[[str], Optional[str]] = resolve_host_to_ip,
                 log: Optional[OperationLog] = None,
                 statistics: Optional[CloneStatistics] = None,
                 cancel_token: Optional[CancellationToken] = None,
                 on_phase: Optional[Callable[[ClonePhase], None]] = None,
                 temp_dir: Optional[str] = None,
                 verbose: bool = False):
        self.cancel_token = cancel_token or CancellationToken()
        self.runner = runner or PgToolRunner(cancel_token=self.cancel_token)
        self.resolver = resolver
        self.log = log or OperationLog()
        self.statistics = statistics or CloneStatistics()
        self.on_phase = on_phase
        self.temp_dir = temp_dir
        self.verbose = verbose
        self.phase: Optional[ClonePhase] = None
        self.phases: List[str] = []

    def _enter(self, phase: ClonePhase, message: str):
        if phase not in (ClonePhase.COMPLETED, ClonePhase.FAILED):
            self.cancel_token.raise_if_cancelled(phase.value)
        self.phase = phase
        self.phases.append(phase.value)
        if self.on_phase:
            self.on_phase(phase)
        self.log.info(phase.value, message)

    def clone_database(self, source: PostgresConnection, target: PostgresConnection,
                       timeout: Optional[float] = None) -> PgCloneResult:
        """
        Clone ``source`` into ``target``.

        Raises the typed error of the failing phase. Temporary dump files are
        removed on every exit path.
        """
        start = time.time()
        self.phases = []
        try:
            result = self._clone(source, target, timeout)
        except CloneError as e:
            self.phase = ClonePhase.FAILED
            self.phases.append(ClonePhase.FAILED.value)
            self.log.error(ClonePhase.FAILED.value, f"Clone failed: {e}")
            raise

        result.duration = time.time() - start
        self._enter(ClonePhase.COMPLETED, f"Clone completed in {format_duration(result.duration)}")
        result.phases = list(self.phases)
        return result

    def _clone(self, source, target, timeout) -> PgCloneResult:
        self._enter(ClonePhase.VERIFY_TOOLS, "Checking pg_dump and psql")
        for tool, version in self.runner.verify().items():
            self.log.info(ClonePhase.VERIFY_TOOLS.value, f"{tool}: {version}")

        with tempfile.TemporaryDirectory(prefix='envclone-', dir=self.temp_dir) as workdir:
            system_file = os.path.join(workdir, 'system_schemas.sql')
            user_file = os.path.join(workdir, 'user_schemas.sql')

            self._enter(ClonePhase.DUMP_SYSTEM, f"Dumping {', '.join(SYSTEM_SCHEMAS)} data from {source.host}")
            source = with_dns_retry(
                lambda c: self.runner.dump(c, system_file, system_dump_options(self.verbose), timeout),
                source, self.resolver)

            self._enter(ClonePhase.DUMP_USER, "Dumping user schemas (structure and data)")
            source = with_dns_retry(
                lambda c: self.runner.dump(c, user_file, user_dump_options(self.verbose), timeout),
                source, self.resolver)

            system_size = self._sanitize_file(system_file, SanitizeOptions(system_dump=True))
            user_size = self._sanitize_file(user_file, SanitizeOptions())
            dump_size = system_size + user_size
            self.statistics.add(bytes_total=dump_size)
            self.log.info(ClonePhase.DUMP_USER.value, f"Dumps ready: {format_bytes(dump_size)}",
                          system_bytes=system_size, user_bytes=user_size)

            result = self._count_objects(user_file)
            result.dump_size = dump_size

            self._enter(ClonePhase.RESET_TARGET, f"Resetting target {target.host}")
            target = with_dns_retry(
                lambda c: self.runner.run_sql(c, RESET_TARGET_SQL, timeout), target, self.resolver)

            self._enter(ClonePhase.RESTORE_SYSTEM, "Restoring auth/storage data")
            target = with_dns_retry(
                lambda c: self.runner.restore(c, system_file, self.verbose, timeout), target, self.resolver)
            self.statistics.add(bytes_processed=system_size)

            self._enter(ClonePhase.RESTORE_USER, "Restoring user schemas")
            with_dns_retry(
                lambda c: self.runner.restore(c, user_file, self.verbose, timeout), target, self.resolver)
            self.statistics.add(bytes_processed=user_size, tables_total=result.tables,
                                tables_processed=result.tables, functions_cloned=result.functions,
                                triggers_cloned=result.triggers)

            self._enter(ClonePhase.CLEANUP, "Removing temporary dump files")
        return result

    @staticmethod
    def _sanitize_file(path: str, options: SanitizeOptions) -> int:
        with open(path, encoding=DUMP_ENCODING, errors='surrogateescape') as f:
            text = f.read()
        cleaned = sanitize(text, options)
        with open(path, 'w', encoding=DUMP_ENCODING, errors='surrogateescape') as f:
            f.write(cleaned)
        return len(cleaned.encode(DUMP_ENCODING, 'surrogateescape'))

    @staticmethod
    def _count_objects(path: str) -> PgCloneResult:
        with open(path, encoding=DUMP_ENCODING, errors='surrogateescape') as f:
            sql = f.read()
        return PgCloneResult(
            success=True,
            duration=0.0,
            dump_size=0,
            tables=len(TABLE_RE.findall(sql)),
            functions=len(FUNCTION_RE.findall(sql)),
            triggers=len(TRIGGER_RE.findall(sql)),
        )
