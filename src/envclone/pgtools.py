"""
Adapter around the PostgreSQL command-line tools (pg_dump, psql).

Everything that knows about tool arguments or stderr wording lives here.
Failures are translated into the envclone exception hierarchy; hostname
resolution failures become TransientConnectivityError so callers can retry
once against an IP address (see ``with_dns_retry``).
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Type

from envclone.connection import resolve_host_to_ip
from envclone.exceptions import (
    DumpError, PhaseTimeoutError, RestoreTransactionError, TargetResetError,
    ToolCommandError, ToolUnavailableError, TransientConnectivityError,
)
from envclone.models import PostgresConnection
from envclone.operation import CancellationToken

logger = logging.getLogger(__name__)

PG_DUMP = 'pg_dump'
PSQL = 'psql'
ROWS_PER_INSERT = 1000

DNS_ERROR_PATTERNS = (
    'could not translate host name',
    'name or service not known',
    'eai_noname',
    'nodename nor servname provided',
    'temporary failure in name resolution',
)


def is_dns_error(stderr: Optional[str]) -> bool:
    """True if tool output reports a hostname resolution failure."""
    text = (stderr or '').lower()
    return any(pattern in text for pattern in DNS_ERROR_PATTERNS)


def classify_failure(tool: str, returncode: int, stderr: str, host: str,
                     error_cls: Type[ToolCommandError] = ToolCommandError) -> Exception:
    stderr = (stderr or '').strip()
    if is_dns_error(stderr):
        return TransientConnectivityError(f"{tool} could not resolve host {host}", host=host, stderr=stderr)
    last_line = stderr.splitlines()[-1] if stderr else 'no error output'
    return error_cls(f"{tool} exited with code {returncode}: {last_line}", returncode=returncode, stderr=stderr)


@dataclass
class DumpOptions:
    schemas: List[str] = field(default_factory=list)
    exclude_schemas: List[str] = field(default_factory=list)
    exclude_tables: List[str] = field(default_factory=list)
    data_only: bool = False
    schema_only: bool = False
    use_inserts: bool = False
    on_conflict_do_nothing: bool = False
    compress: bool = False
    verbose: bool = False


def _connection_args(connection: PostgresConnection) -> List[str]:
    return [
        '-h', connection.host,
        '-p', str(connection.port),
        '-U', connection.user,
        '-d', connection.database,
        '--no-password',
    ]


def build_dump_args(connection: PostgresConnection, out_file: str, options: DumpOptions,
                    binary: str = PG_DUMP) -> List[str]:
    args = [binary] + _connection_args(connection) + ['-f', out_file, '--no-owner', '--no-acl']

    if options.data_only and options.schema_only:
        raise ValueError("data_only and schema_only are mutually exclusive")
    if options.data_only:
        args.append('--data-only')
    elif options.schema_only:
        args.append('--schema-only')

    for schema in options.schemas:
        args.extend(['--schema', schema])
    for schema in options.exclude_schemas:
        args.extend(['--exclude-schema', schema])
    for table in options.exclude_tables:
        args.extend(['--exclude-table', table])

    if options.use_inserts:
        args.extend(['--inserts', f'--rows-per-insert={ROWS_PER_INSERT}'])
        if options.on_conflict_do_nothing:
            args.append('--on-conflict-do-nothing')
    if options.compress:
        args.extend(['--compress', '9'])
    if options.verbose:
        args.append('--verbose')
    return args


def build_restore_args(connection: PostgresConnection, in_file: str, verbose: bool = False,
                       binary: str = PSQL) -> List[str]:
    args = [binary] + _connection_args(connection) + [
        '-f', in_file,
        '--single-transaction',
        '--set', 'ON_ERROR_STOP=on',
    ]
    if verbose:
        args.append('--echo-all')
    return args


def build_sql_args(connection: PostgresConnection, binary: str = PSQL) -> List[str]:
    """psql reading a script from stdin."""
    return [binary] + _connection_args(connection) + ['--set', 'ON_ERROR_STOP=on', '--no-psqlrc', '-q']


class PgToolRunner:
    """Runs pg_dump/psql as child processes with a timeout and cancellation."""

    def __init__(self, timeout: Optional[float] = 3600,
                 cancel_token: Optional[CancellationToken] = None,
                 popen: Callable = subprocess.Popen,
                 pg_dump: str = PG_DUMP, psql: str = PSQL):
        self.timeout = timeout
        self.cancel_token = cancel_token or CancellationToken()
        self.popen = popen
        self.pg_dump = pg_dump
        self.psql = psql

    def _run(self, args: List[str], env_extra: Dict[str, str], host: str,
             error_cls: Type[ToolCommandError], input_text: Optional[str] = None,
             timeout: Optional[float] = None) -> str:
        tool = os.path.basename(args[0])
        timeout = timeout if timeout is not None else self.timeout
        self.cancel_token.raise_if_cancelled(tool)

        env = dict(os.environ)
        env.update(env_extra)
        logger.debug(f"Running: {' '.join(args)}")

        try:
            proc = self.popen(
                args,
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=env,
            )
        except OSError as e:
            raise ToolUnavailableError(f"{tool} could not be started: {e}") from e

        unregister = self.cancel_token.on_cancel(proc.kill)
        try:
            stdout, stderr = proc.communicate(input=input_text, timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            raise PhaseTimeoutError(f"{tool} did not finish within {timeout} seconds")
        finally:
            unregister()

        self.cancel_token.raise_if_cancelled(tool)
        if proc.returncode != 0:
            raise classify_failure(tool, proc.returncode, stderr, host, error_cls)
        if stderr:
            logger.debug(f"{tool} stderr: {stderr.strip()}")
        return stdout

    def verify(self) -> Dict[str, str]:
        """Return ``{tool: version}``; raise ToolUnavailableError if either tool is unusable."""
        versions = {}
        for binary in (self.pg_dump, self.psql):
            if shutil.which(binary) is None:
                raise ToolUnavailableError(f"{binary} not found on PATH; install the PostgreSQL client tools")
            try:
                output = self._run([binary, '--version'], {}, host='', error_cls=ToolCommandError, timeout=30)
            except ToolCommandError as e:
                raise ToolUnavailableError(f"{binary} is not runnable: {e}") from e
            versions[os.path.basename(binary)] = output.strip()
        return versions

    def dump(self, connection: PostgresConnection, out_file: str, options: DumpOptions,
             timeout: Optional[float] = None):
        args = build_dump_args(connection, out_file, options, binary=self.pg_dump)
        self._run(args, connection.tool_env(), connection.host, DumpError, timeout=timeout)

    def restore(self, connection: PostgresConnection, in_file: str, verbose: bool = False,
                timeout: Optional[float] = None):
        args = build_restore_args(connection, in_file, verbose, binary=self.psql)
        self._run(args, connection.tool_env(), connection.host, RestoreTransactionError, timeout=timeout)

    def run_sql(self, connection: PostgresConnection, sql: str, timeout: Optional[float] = None,
                error_cls: Type[ToolCommandError] = TargetResetError) -> str:
        args = build_sql_args(connection, binary=self.psql)
        return self._run(args, connection.tool_env(), connection.host, error_cls,
                         input_text=sql, timeout=timeout)


def with_dns_retry(action: Callable[[PostgresConnection], None], connection: PostgresConnection,
                   resolver: Callable[[str], Optional[str]] = resolve_host_to_ip) -> PostgresConnection:
    """
    Run ``action(connection)``; on a DNS failure retry once against the IP.

    Returns the connection that succeeded so later steps can keep using the
    IP-substituted one. A connection that is already IP-resolved is never
    retried.
    """
    try:
        action(connection)
        return connection
    except TransientConnectivityError:
        if connection.is_ip_resolved:
            raise
        ip = resolver(connection.host)
        if not ip:
            raise
        logger.warning(f"DNS resolution failed for {connection.host}; retrying with {ip}")

    retried = connection.with_host(ip)
    action(retried)
    return retried
