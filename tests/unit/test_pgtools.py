"""
Unit tests for the pg_dump/psql adapter.
"""
from unittest import mock

import pytest

from envclone.cloner import system_dump_options, user_dump_options
from envclone.exceptions import (
    DumpError, OperationCancelledError, PhaseTimeoutError, RestoreTransactionError,
    TargetResetError, ToolUnavailableError, TransientConnectivityError,
)
from envclone.models import PostgresConnection
from envclone.operation import CancellationToken
from envclone.pgtools import (
    DumpOptions, PgToolRunner, build_dump_args, build_restore_args, build_sql_args,
    classify_failure, is_dns_error, with_dns_retry,
)

from fixtures.fake_tools import FakePopen, FakeProcess


CONN = PostgresConnection(host='db.abcd.supabase.co', port=5432, database='postgres',
                          user='postgres', password='s3cret')

DNS_STDERR = 'pg_dump: error: could not translate host name "db.abcd.supabase.co" to address: ' \
             'Name or service not known'


class TestArguments:
    """Test command-line construction."""

    def test_system_dump_args(self):
        """Test data-only INSERT dump of auth/storage with exclusions."""
        args = build_dump_args(CONN, '/tmp/system.sql', system_dump_options())

        assert args[0] == 'pg_dump'
        assert args[args.index('-h') + 1] == 'db.abcd.supabase.co'
        assert '--data-only' in args
        assert ['--schema', 'auth'] == args[args.index('auth') - 1:args.index('auth') + 1]
        assert '--inserts' in args
        assert '--rows-per-insert=1000' in args
        assert '--on-conflict-do-nothing' in args
        assert 'auth.sessions' in args
        assert '--no-owner' in args and '--no-acl' in args
        assert 's3cret' not in args

    def test_user_dump_args(self):
        """Test full structure-and-data dump excluding system schemas."""
        args = build_dump_args(CONN, '/tmp/user.sql', user_dump_options())

        assert '--data-only' not in args
        assert '--inserts' not in args
        excluded = [args[i + 1] for i, a in enumerate(args) if a == '--exclude-schema']
        assert {'auth', 'storage', 'realtime', 'supabase_migrations'} <= set(excluded)

    def test_conflicting_dump_modes(self):
        """Test that data-only and schema-only together are rejected."""
        with pytest.raises(ValueError):
            build_dump_args(CONN, '/tmp/x.sql', DumpOptions(data_only=True, schema_only=True))

    def test_restore_args(self):
        """Test single-transaction restore that stops on first error."""
        args = build_restore_args(CONN, '/tmp/user.sql')

        assert args[0] == 'psql'
        assert '--single-transaction' in args
        assert args[args.index('--set') + 1] == 'ON_ERROR_STOP=on'
        assert args[args.index('-f') + 1] == '/tmp/user.sql'
        assert '--echo-all' in build_restore_args(CONN, '/tmp/user.sql', verbose=True)

    def test_sql_args(self):
        """Test psql reading a script from stdin."""
        args = build_sql_args(CONN)
        assert '-f' not in args
        assert 'ON_ERROR_STOP=on' in args


class TestFailureClassification:
    """Test stderr classification."""

    def test_is_dns_error(self):
        """Test recognised DNS failure messages."""
        assert is_dns_error(DNS_STDERR)
        assert is_dns_error('psql: error: getaddrinfo EAI_NONAME')
        assert is_dns_error('Temporary failure in name resolution')
        assert not is_dns_error('FATAL: password authentication failed for user "postgres"')
        assert not is_dns_error(None)

    def test_dns_failure_is_transient(self):
        """Test that DNS failures become TransientConnectivityError."""
        error = classify_failure('pg_dump', 1, DNS_STDERR, 'db.abcd.supabase.co', DumpError)

        assert isinstance(error, TransientConnectivityError)
        assert error.host == 'db.abcd.supabase.co'

    def test_other_failure_uses_error_class(self):
        """Test that other failures keep the phase's error class and last stderr line."""
        error = classify_failure('psql', 3, 'line one\nERROR: relation "x" does not exist', 'h',
                                 RestoreTransactionError)

        assert isinstance(error, RestoreTransactionError)
        assert error.returncode == 3
        assert 'relation "x" does not exist' in str(error)


class TestPgToolRunner:
    """Test process execution through a fake Popen."""

    def test_dump_passes_password_in_environment(self):
        """Test that the password travels via PGPASSWORD, not argv."""
        popen = FakePopen()
        PgToolRunner(popen=popen).dump(CONN, '/tmp/x.sql', DumpOptions())

        args, kwargs = popen.calls[0]
        assert kwargs['env']['PGPASSWORD'] == 's3cret'
        assert 's3cret' not in args

    def test_nonzero_exit_raises_phase_error(self):
        """Test that a failing pg_dump raises DumpError."""
        popen = FakePopen(FakeProcess(returncode=1, stderr='pg_dump: error: permission denied'))
        with pytest.raises(DumpError, match='permission denied'):
            PgToolRunner(popen=popen).dump(CONN, '/tmp/x.sql', DumpOptions())

    def test_dns_failure_raises_transient_error(self):
        """Test DNS classification of tool failures."""
        popen = FakePopen(FakeProcess(returncode=1, stderr=DNS_STDERR))
        with pytest.raises(TransientConnectivityError):
            PgToolRunner(popen=popen).restore(CONN, '/tmp/x.sql')

    def test_run_sql_sends_script_on_stdin(self):
        """Test that run_sql feeds the script to psql."""
        process = FakeProcess()
        PgToolRunner(popen=FakePopen(process)).run_sql(CONN, 'SELECT 1;')
        assert process.inputs == ['SELECT 1;']

    def test_run_sql_failure_is_reset_error(self):
        """Test the default error class of run_sql."""
        popen = FakePopen(FakeProcess(returncode=3, stderr='ERROR: auth.users still holds 2 rows'))
        with pytest.raises(TargetResetError):
            PgToolRunner(popen=popen).run_sql(CONN, 'SELECT 1;')

    def test_timeout_kills_process(self):
        """Test that a hung process is killed and reported as a timeout."""
        process = FakeProcess(timeout_first=True)
        with pytest.raises(PhaseTimeoutError):
            PgToolRunner(timeout=1, popen=FakePopen(process)).dump(CONN, '/tmp/x.sql', DumpOptions())
        assert process.killed

    def test_missing_binary(self):
        """Test that an unstartable tool raises ToolUnavailableError."""
        popen = mock.Mock(side_effect=FileNotFoundError('pg_dump'))
        with pytest.raises(ToolUnavailableError):
            PgToolRunner(popen=popen).dump(CONN, '/tmp/x.sql', DumpOptions())

    def test_cancelled_before_start(self):
        """Test that nothing is started once cancelled."""
        token = CancellationToken()
        token.cancel()
        popen = FakePopen()
        with pytest.raises(OperationCancelledError):
            PgToolRunner(cancel_token=token, popen=popen).dump(CONN, '/tmp/x.sql', DumpOptions())
        assert popen.calls == []

    def test_cancel_while_running_kills_process(self):
        """Test that cancellation kills the running child process."""
        token = CancellationToken()
        process = FakeProcess(on_communicate=token.cancel)
        with pytest.raises(OperationCancelledError):
            PgToolRunner(cancel_token=token, popen=FakePopen(process)).dump(CONN, '/tmp/x.sql', DumpOptions())
        assert process.killed

    def test_verify_reports_versions(self):
        """Test tool detection and version output."""
        popen = FakePopen(FakeProcess(stdout='psql (PostgreSQL) 16.2\n'))
        with mock.patch('envclone.pgtools.shutil.which', return_value='/usr/bin/tool'):
            versions = PgToolRunner(popen=popen).verify()

        assert versions == {'pg_dump': 'psql (PostgreSQL) 16.2', 'psql': 'psql (PostgreSQL) 16.2'}

    def test_verify_missing_tool(self):
        """Test that a tool missing from PATH is reported."""
        with mock.patch('envclone.pgtools.shutil.which', return_value=None):
            with pytest.raises(ToolUnavailableError, match='pg_dump not found'):
                PgToolRunner(popen=FakePopen()).verify()


class TestDnsRetry:
    """Test the single IP-substitution retry."""

    def test_retries_once_with_ip(self):
        """Test retry against the resolved IP and the returned connection."""
        hosts = []

        def action(connection):
            hosts.append(connection.host)
            if not connection.is_ip_resolved:
                raise TransientConnectivityError('dns', host=connection.host)

        used = with_dns_retry(action, CONN, resolver=lambda host: '10.0.0.5')

        assert hosts == ['db.abcd.supabase.co', '10.0.0.5']
        assert used.host == '10.0.0.5'
        assert used.is_ip_resolved

    def test_retry_bounded(self):
        """Test that a second DNS failure propagates without further retries."""
        action = mock.Mock(side_effect=TransientConnectivityError('dns'))
        with pytest.raises(TransientConnectivityError):
            with_dns_retry(action, CONN, resolver=lambda host: '10.0.0.5')
        assert action.call_count == 2

    def test_unresolvable_host_propagates(self):
        """Test that the original error propagates when no IP is found."""
        action = mock.Mock(side_effect=TransientConnectivityError('dns'))
        with pytest.raises(TransientConnectivityError):
            with_dns_retry(action, CONN, resolver=lambda host: None)
        assert action.call_count == 1

    def test_ip_connection_not_retried(self):
        """Test that an already IP-resolved connection is never retried."""
        action = mock.Mock(side_effect=TransientConnectivityError('dns'))
        resolver = mock.Mock(return_value='10.0.0.6')
        with pytest.raises(TransientConnectivityError):
            with_dns_retry(action, CONN.with_host('10.0.0.5'), resolver=resolver)
        resolver.assert_not_called()

    def test_other_errors_not_retried(self):
        """Test that non-DNS failures propagate immediately."""
        action = mock.Mock(side_effect=DumpError('boom'))
        with pytest.raises(DumpError):
            with_dns_retry(action, CONN, resolver=lambda host: '10.0.0.5')
        assert action.call_count == 1

    def test_success_returns_original_connection(self):
        """Test that no retry happens on success."""
        assert with_dns_retry(lambda c: None, CONN) is CONN
