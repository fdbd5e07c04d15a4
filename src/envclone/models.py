"""
Data model for clone operations.

Plain dataclasses describing environments, options and results. Secrets
(keys, passwords) are excluded from ``repr`` so they never end up in logs.
"""

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.engine import URL


class EnvironmentType(enum.Enum):
    PRODUCTION = 'production'
    STAGING = 'staging'
    DEVELOPMENT = 'development'
    TEST = 'test'
    LEARNING = 'learning'


class CloneMode(enum.Enum):
    """How data moves from source to target."""
    NATIVE = 'native'   # pg_dump / psql
    ROWS = 'rows'       # paginated row copy


class LogLevel(enum.Enum):
    INFO = 'info'
    WARNING = 'warning'
    ERROR = 'error'
    SUCCESS = 'success'


@dataclass
class Credentials:
    """Credentials identifying one Supabase database."""
    url: str
    anon_key: str = field(default='', repr=False)
    service_key: str = field(default='', repr=False)
    password: Optional[str] = field(default=None, repr=False)
    host: Optional[str] = None
    port: Optional[int] = None


@dataclass(frozen=True)
class PostgresConnection:
    """Concrete connection parameters derived from Credentials."""
    host: str
    port: int
    database: str
    user: str
    password: str = field(repr=False)
    is_ip_resolved: bool = False

    def with_host(self, ip: str) -> 'PostgresConnection':
        """Return a copy pointing at ``ip``; marks the DNS retry as spent."""
        return replace(self, host=ip, is_ip_resolved=True)

    def sqlalchemy_url(self) -> URL:
        return URL.create(
            'postgresql+psycopg2',
            username=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    def tool_env(self) -> Dict[str, str]:
        """Environment variables passed to pg_dump/psql."""
        return {'PGPASSWORD': self.password}


@dataclass
class Environment:
    id: str
    name: str
    type: EnvironmentType
    credentials: Credentials
    description: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.type is EnvironmentType.PRODUCTION or 'prod' in self.name.lower()


@dataclass
class CloneOptions:
    mode: CloneMode = CloneMode.NATIVE
    anonymize: bool = True
    confirm_deletion: bool = False
    create_backup: bool = False
    preserve_timestamps: bool = True
    validate_after_clone: bool = True
    remap_ids: bool = False
    batch_size: int = 1000
    tables: Optional[List[str]] = None
    verbose: bool = False
    dump_timeout: Optional[float] = 3600
    phase_timeout: Optional[float] = 7200
    backup_dir: Optional[str] = None
    temp_dir: Optional[str] = None


@dataclass
class CopyOptions:
    batch_size: int = 1000
    anonymize: bool = True
    preserve_timestamps: bool = True
    dry_run: bool = False
    remap_ids: bool = False
    tables: Optional[List[str]] = None
    phase_timeout: Optional[float] = None


@dataclass
class DeletionOptions:
    confirm_deletion: bool = False
    create_backup: bool = False
    backup_dir: Optional[str] = None
    tables: Optional[List[str]] = None


@dataclass
class CloneLog:
    timestamp: datetime
    level: LogLevel
    phase: str
    message: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class CloneStatistics:
    """Counters for one operation. They only ever grow."""
    tables_processed: int = 0
    tables_total: int = 0
    records_processed: int = 0
    records_total: int = 0
    records_anonymized: int = 0
    bytes_processed: int = 0
    bytes_total: int = 0
    functions_cloned: int = 0
    triggers_cloned: int = 0
    duration: float = 0.0

    def add(self, **increments):
        for name, amount in increments.items():
            if not hasattr(self, name):
                raise AttributeError(f"Unknown statistic: {name}")
            if amount < 0:
                raise ValueError(f"Statistic {name} cannot decrease (got {amount})")
            setattr(self, name, getattr(self, name) + amount)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class CloneRequest:
    source: Environment
    target: Environment
    options: CloneOptions = field(default_factory=CloneOptions)


@dataclass
class CloneResult:
    success: bool
    operation_id: str
    source_environment: str
    target_environment: str
    statistics: CloneStatistics
    duration: float
    completed_at: datetime
    backup_id: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    logs: List[CloneLog] = field(default_factory=list)


@dataclass
class CopyResult:
    success: bool = True
    tables_copied: Dict[str, int] = field(default_factory=dict)
    tables_skipped: List[str] = field(default_factory=list)
    records_copied: int = 0
    records_anonymized: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class DeletionResult:
    success: bool = True
    tables_cleared: List[str] = field(default_factory=list)
    rows_deleted: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    backup_id: Optional[str] = None

    @property
    def total_rows_deleted(self) -> int:
        return sum(self.rows_deleted.values())
