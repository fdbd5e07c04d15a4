"""
Anonymization engine.

Maps raw field values to realistic, non-identifying substitutes. Failures
never propagate to the caller: the original value is kept and the error is
reported in the result metadata (single values) or the batch report.
"""

import logging
import random
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence, Set

from envclone.anonymization.anonymizers import (
    AddressAnonymizer, EmailAnonymizer, FinancialAnonymizer, NameAnonymizer,
    PhoneAnonymizer,
)
from envclone.anonymization.pools import TEST_DOMAIN
from envclone.anonymization.rules import (
    AnonymizationContext, AnonymizationRule, AnonymizationType, CustomRule,
)
from envclone.exceptions import AnonymizationError, ConfigurationError

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$', re.I
)
DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:?\d{2})?)?$')

FINANCIAL_KEYWORDS = ('amount', 'price', 'cost', 'payment', 'salary')
PHONE_KEYWORDS = ('phone', 'mobile', 'telephone')
ADDRESS_KEYWORDS = ('address', 'street', 'adresse')


@dataclass
class AnonymizationResult:
    anonymized_value: Any
    was_anonymized: bool
    preserved_format: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FieldError:
    table_name: str
    column_name: str
    row_index: int
    message: str

    def __str__(self):
        return f"{self.table_name}.{self.column_name} (row {self.row_index}): {self.message}"


@dataclass
class AnonymizationReport:
    total_records: int = 0
    anonymized_records: int = 0
    anonymized_fields: Set[str] = field(default_factory=set)
    errors: List[FieldError] = field(default_factory=list)


@dataclass
class BatchResult:
    anonymized_data: List[Dict[str, Any]]
    report: AnonymizationReport


class AnonymizationEngine:
    """Apply anonymization rules to single values or batches of rows."""

    def __init__(self, rng: Optional[random.Random] = None, test_domain: str = TEST_DOMAIN):
        self.email = EmailAnonymizer(test_domain)
        self.name = NameAnonymizer()
        self.phone = PhoneAnonymizer()
        self.address = AddressAnonymizer(rng)
        self.financial = FinancialAnonymizer()
        self._anonymizers = {
            AnonymizationType.EMAIL: self.email,
            AnonymizationType.NAME: self.name,
            AnonymizationType.PHONE: self.phone,
            AnonymizationType.ADDRESS: self.address,
            AnonymizationType.FINANCIAL: self.financial,
        }

    def anonymize_value(self, value: Any, rule: AnonymizationRule,
                        context: Optional[AnonymizationContext] = None) -> AnonymizationResult:
        metadata = {
            'anonymization_type': rule.anonymization_type.value,
            'table': rule.table_name,
            'column': rule.column_name,
        }
        if value is None:
            return AnonymizationResult(value, False, False, metadata)

        if context is None:
            context = AnonymizationContext(rule.table_name, rule.column_name, value)

        try:
            new_value = self._generate(value, rule, context)
            new_value = self._apply_constraints(value, new_value, rule)
        except Exception as e:  # reported through metadata, original value kept
            logger.debug(f"Anonymization failed for {rule.table_name}.{rule.column_name}: {e}")
            metadata['error'] = str(e)
            return AnonymizationResult(value, False, False, metadata)

        changed = new_value != value
        return AnonymizationResult(new_value, changed, rule.preserve_format and changed, metadata)

    def _generate(self, value, rule, context):
        if rule.anonymization_type is AnonymizationType.CUSTOM:
            if not isinstance(rule, CustomRule):
                raise ConfigurationError(
                    f"Custom rule for {rule.table_name}.{rule.column_name} has no generator"
                )
            return rule.generator(value)

        anonymizer = self._anonymizers.get(rule.anonymization_type)
        if anonymizer is None:
            raise ConfigurationError(f"Unsupported anonymization type: {rule.anonymization_type}")
        return anonymizer.anonymize(value, rule, context)

    @staticmethod
    def _apply_constraints(original, new_value, rule):
        if not isinstance(new_value, str):
            return new_value

        if rule.preserve_length and isinstance(original, str) and new_value:
            target = len(original)
            while len(new_value) < target:
                new_value += new_value
            new_value = new_value[:target]

        constraints = rule.constraints
        if constraints is None:
            return new_value
        if constraints.max_length is not None:
            new_value = new_value[:constraints.max_length]
        if constraints.min_length is not None and len(new_value) < constraints.min_length:
            raise AnonymizationError(
                f"Replacement shorter than minimum length {constraints.min_length}"
            )
        if constraints.pattern and not re.fullmatch(constraints.pattern, new_value):
            raise AnonymizationError(f"Replacement does not match pattern {constraints.pattern!r}")
        return new_value

    def anonymize_batch(self, rows: Sequence[Dict[str, Any]], rules: Sequence[AnonymizationRule],
                        table_name: str) -> BatchResult:
        """
        Apply every rule for ``table_name`` to every row.

        Rows are copied, never modified in place. A failing field keeps its
        original value and adds one entry to ``report.errors``.
        """
        table_rules = [r for r in rules if r.applies_to(table_name)]
        report = AnonymizationReport(total_records=len(rows))
        anonymized = []

        for index, row in enumerate(rows):
            new_row = dict(row)
            changed = False
            for rule in table_rules:
                column = rule.column_name
                if column not in row:
                    continue
                context = AnonymizationContext(table_name, column, row[column], row)
                result = self.anonymize_value(row[column], rule, context)
                if 'error' in result.metadata:
                    report.errors.append(FieldError(table_name, column, index, result.metadata['error']))
                elif result.was_anonymized:
                    new_row[column] = result.anonymized_value
                    report.anonymized_fields.add(column)
                    changed = True
            if changed:
                report.anonymized_records += 1
            anonymized.append(new_row)

        return BatchResult(anonymized, report)

    @staticmethod
    def detect_data_type(value: Any) -> str:
        if value is None:
            return 'string'
        if isinstance(value, bool):
            return 'boolean'
        if isinstance(value, (int, float)):
            return 'number'
        if isinstance(value, (datetime, date)):
            return 'date'
        if isinstance(value, uuid.UUID):
            return 'uuid'
        if isinstance(value, (dict, list)):
            return 'json'
        if isinstance(value, str):
            if UUID_PATTERN.match(value):
                return 'uuid'
            if DATE_PATTERN.match(value):
                try:
                    datetime.fromisoformat(value[:10])
                    return 'date'
                except ValueError:
                    pass
            return 'string'
        return 'string'

    @staticmethod
    def suggest_anonymization_type(column_name: str, data_type: str = 'string') -> AnonymizationType:
        """Guess a rule type from the column name; CUSTOM means no automatic rule."""
        column = column_name.lower()
        if column == 'id' or column.endswith('_id') or data_type in ('uuid', 'boolean', 'date'):
            return AnonymizationType.CUSTOM
        if 'email' in column or 'mail' in column:
            return AnonymizationType.EMAIL
        if any(k in column for k in PHONE_KEYWORDS):
            return AnonymizationType.PHONE
        if any(k in column for k in ADDRESS_KEYWORDS):
            return AnonymizationType.ADDRESS
        if 'name' in column:
            return AnonymizationType.NAME
        if any(k in column for k in FINANCIAL_KEYWORDS):
            return AnonymizationType.FINANCIAL
        return AnonymizationType.CUSTOM

    def generate_rules(self, table_name: str, sample_row: Dict[str, Any]) -> List[AnonymizationRule]:
        rules = []
        for column, value in sample_row.items():
            suggested = self.suggest_anonymization_type(column, self.detect_data_type(value))
            if suggested is not AnonymizationType.CUSTOM:
                rules.append(AnonymizationRule(table_name, column, suggested))
        return rules
