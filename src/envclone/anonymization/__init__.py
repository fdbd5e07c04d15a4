"""Field-level anonymization: rules, fake data pools and the engine."""

from envclone.anonymization.engine import (
    AnonymizationEngine, AnonymizationReport, AnonymizationResult, BatchResult, FieldError,
)
from envclone.anonymization.rules import (
    AnonymizationContext, AnonymizationRule, AnonymizationType, CustomRule, RuleConstraints,
)

__all__ = [
    'AnonymizationEngine', 'AnonymizationReport', 'AnonymizationResult', 'BatchResult',
    'FieldError', 'AnonymizationContext', 'AnonymizationRule', 'AnonymizationType',
    'CustomRule', 'RuleConstraints',
]
