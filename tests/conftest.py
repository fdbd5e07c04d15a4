#-------------------------------------------------------------------------bh-
# pytest configuration and fixtures for envclone tests
#-------------------------------------------------------------------------eh-

import sys
from pathlib import Path

import pytest

# Add project src and tests to path for imports
PROJ_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJ_ROOT / 'src'))
sys.path.insert(0, str(PROJ_ROOT / 'tests'))

from envclone.database import DatabaseClient
from envclone.logging_utils import OperationLog

from fixtures.databases import (
    SAMPLE_ROWS, SOURCE_CREDENTIALS, TARGET_CREDENTIALS, create_database,
)


@pytest.fixture
def make_database(tmp_path):
    """Factory creating SQLite databases under tmp_path; disposed at teardown."""
    engines = []

    def _make(name, rows=None, drop_columns=None):
        engine = create_database(tmp_path / f"{name}.db", rows, drop_columns)
        engines.append(engine)
        return engine

    yield _make
    for engine in engines:
        engine.dispose()


@pytest.fixture
def source_engine(make_database):
    return make_database('source', SAMPLE_ROWS)


@pytest.fixture
def target_engine(make_database):
    return make_database('target')


@pytest.fixture
def source_credentials():
    return SOURCE_CREDENTIALS


@pytest.fixture
def target_credentials():
    return TARGET_CREDENTIALS


@pytest.fixture
def client_factory(source_engine, target_engine):
    """Map the source/target credentials onto the SQLite engines."""
    engines = {
        SOURCE_CREDENTIALS.url: source_engine,
        TARGET_CREDENTIALS.url: target_engine,
    }

    def factory(credentials):
        return DatabaseClient(engines[credentials.url])

    return factory


@pytest.fixture
def operation_log():
    return OperationLog()
