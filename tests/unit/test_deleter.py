"""
Unit tests for DataDeleter against SQLite databases.
"""
import json
import os
from unittest import mock

import pytest

from envclone.database import DatabaseClient
from envclone.deleter import DataDeleter, ensure_not_production
from envclone.exceptions import (
    ConfigurationError, OperationCancelledError, ProductionProtectionError,
)
from envclone.models import DeletionOptions
from envclone.operation import CancellationToken

from fixtures.databases import SAMPLE_ROWS, TOTAL_ROWS


@pytest.fixture
def populated(make_database):
    """A populated database and a client factory pointing at it."""
    engine = make_database('staging', SAMPLE_ROWS)
    return engine, lambda credentials: DatabaseClient(engine)


class TestProductionGuard:
    """Test that production environments are never touched."""

    @pytest.mark.parametrize('name', ['production', 'PROD-eu', 'my-prod-copy', 'Preprod'])
    def test_production_names_rejected(self, name, target_credentials):
        """Test rejection before any database access."""
        factory = mock.Mock()
        deleter = DataDeleter(client_factory=factory)

        with pytest.raises(ProductionProtectionError):
            deleter.delete_all_data(target_credentials, name, DeletionOptions(confirm_deletion=True))
        factory.assert_not_called()

    def test_other_names_allowed(self):
        """Test that non-production names pass the guard."""
        ensure_not_production('staging')
        ensure_not_production('dev')

    def test_confirmation_required(self, target_credentials):
        """Test that deletion without explicit confirmation is refused."""
        factory = mock.Mock()
        with pytest.raises(ConfigurationError, match="confirm"):
            DataDeleter(client_factory=factory).delete_all_data(target_credentials, 'staging')
        factory.assert_not_called()


class TestDeleteAllData:
    """Test wiping of known tables."""

    def test_clears_existing_tables_children_first(self, populated, target_credentials):
        """Test reverse dependency order and per-table counts."""
        engine, factory = populated
        result = DataDeleter(client_factory=factory).delete_all_data(
            target_credentials, 'staging', DeletionOptions(confirm_deletion=True))

        assert result.success
        assert result.tables_cleared == ['messages', 'reservations', 'lofts', 'profiles']
        assert result.rows_deleted == {'messages': 2, 'reservations': 5, 'lofts': 2, 'profiles': 3}
        assert result.total_rows_deleted == TOTAL_ROWS

        client = DatabaseClient(engine)
        assert all(client.count_rows(t) == 0 for t in result.tables_cleared)

    def test_missing_tables_not_reported_as_cleared(self, populated, target_credentials, operation_log):
        """Test that absent tables are skipped, not listed."""
        _, factory = populated
        result = DataDeleter(client_factory=factory, log=operation_log).delete_all_data(
            target_credentials, 'staging', DeletionOptions(confirm_deletion=True))

        assert 'currencies' not in result.tables_cleared
        assert any('Skipping currencies' in m for m in operation_log.messages())

    def test_table_subset(self, populated, target_credentials):
        """Test limiting deletion to selected tables."""
        engine, factory = populated
        result = DataDeleter(client_factory=factory).delete_all_data(
            target_credentials, 'staging', DeletionOptions(confirm_deletion=True, tables=['messages']))

        assert result.tables_cleared == ['messages']
        assert DatabaseClient(engine).count_rows('profiles') == 3

    def test_backup_written_before_delete(self, populated, target_credentials, tmp_path):
        """Test the JSON backup of every table that is about to be wiped."""
        _, factory = populated
        backup_dir = tmp_path / 'backups'
        result = DataDeleter(client_factory=factory).delete_all_data(
            target_credentials, 'staging',
            DeletionOptions(confirm_deletion=True, create_backup=True, backup_dir=str(backup_dir)))

        assert result.backup_id.startswith('backup_staging_')
        with open(backup_dir / f"{result.backup_id}.json") as f:
            snapshot = json.load(f)
        assert {t: len(rows) for t, rows in snapshot.items()} == \
            {'messages': 2, 'reservations': 5, 'lofts': 2, 'profiles': 3}
        assert snapshot['profiles'][0]['email'] == 'karim@example.com'

    def test_backup_only(self, populated, target_credentials, tmp_path):
        """Test a backup without deletion."""
        engine, factory = populated
        backup_id = DataDeleter(client_factory=factory).backup(
            target_credentials, 'staging', str(tmp_path))

        assert os.path.exists(tmp_path / f"{backup_id}.json")
        assert DatabaseClient(engine).count_rows('profiles') == 3

    def test_cancelled(self, populated, target_credentials):
        """Test that cancellation stops before deleting."""
        engine, factory = populated
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            DataDeleter(client_factory=factory, cancel_token=token).delete_all_data(
                target_credentials, 'staging', DeletionOptions(confirm_deletion=True))
        assert DatabaseClient(engine).count_rows('messages') == 2
