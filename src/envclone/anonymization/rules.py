"""Anonymization rule types."""

import enum
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from envclone.exceptions import ConfigurationError


class AnonymizationType(enum.Enum):
    EMAIL = 'email'
    NAME = 'name'
    PHONE = 'phone'
    ADDRESS = 'address'
    FINANCIAL = 'financial'
    CUSTOM = 'custom'


@dataclass(frozen=True)
class RuleConstraints:
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    min_value: Optional[float] = None
    max_value: Optional[float] = None


@dataclass(frozen=True)
class AnonymizationRule:
    """One rule governs one column of one table."""
    table_name: str
    column_name: str
    anonymization_type: AnonymizationType
    preserve_format: bool = False
    preserve_length: bool = False
    constraints: Optional[RuleConstraints] = None

    def applies_to(self, table_name: str) -> bool:
        return self.table_name == table_name


@dataclass(frozen=True)
class CustomRule(AnonymizationRule):
    """Rule whose replacement comes from a caller-supplied function."""
    anonymization_type: AnonymizationType = AnonymizationType.CUSTOM
    generator: Optional[Callable[[Any], Any]] = None

    def __post_init__(self):
        if not callable(self.generator):
            raise ConfigurationError(
                f"Custom rule for {self.table_name}.{self.column_name} needs a callable generator"
            )
        if self.anonymization_type is not AnonymizationType.CUSTOM:
            raise ConfigurationError("CustomRule must have anonymization type 'custom'")


@dataclass
class AnonymizationContext:
    table_name: str
    column_name: str
    original_value: Any = None
    row: Optional[Dict[str, Any]] = None
    preserve_relationships: bool = False
