"""
Well-known application tables, their dependency order and sensitive fields.
"""

from typing import Dict, List

from envclone.anonymization.pools import MESSAGE_PLACEHOLDER
from envclone.anonymization.rules import AnonymizationRule, AnonymizationType, CustomRule
from envclone.relationships import ForeignKeyRelationship as FK

# Parents before children
COPY_ORDER = [
    'currencies',
    'categories',
    'zone_areas',
    'internet_connection_types',
    'payment_methods',
    'loft_owners',
    'teams',
    'profiles',
    'lofts',
    'team_members',
    'tasks',
    'customers',
    'reservations',
    'transactions',
    'transaction_category_references',
    'settings',
    'notifications',
    'messages',
]

DELETE_ORDER = list(reversed(COPY_ORDER))

PRIMARY_KEYS = {
    'team_members': ['user_id', 'team_id'],
    'settings': ['key'],
}

RELATIONSHIPS = [
    FK('lofts', 'owner_id', 'loft_owners'),
    FK('lofts', 'zone_area_id', 'zone_areas'),
    FK('lofts', 'internet_connection_type_id', 'internet_connection_types'),
    FK('team_members', 'team_id', 'teams'),
    FK('team_members', 'user_id', 'profiles'),
    FK('tasks', 'assigned_to', 'profiles'),
    FK('tasks', 'team_id', 'teams'),
    FK('tasks', 'loft_id', 'lofts'),
    FK('reservations', 'loft_id', 'lofts'),
    FK('reservations', 'customer_id', 'customers'),
    FK('transactions', 'loft_id', 'lofts'),
    FK('transactions', 'currency_id', 'currencies'),
    FK('transactions', 'payment_method_id', 'payment_methods'),
    FK('transactions', 'reservation_id', 'reservations'),
    FK('transaction_category_references', 'transaction_id', 'transactions'),
    FK('transaction_category_references', 'category_id', 'categories'),
    FK('notifications', 'user_id', 'profiles'),
    FK('messages', 'sender_id', 'profiles'),
]


def _clear(value):
    return None


def _placeholder(value):
    return MESSAGE_PLACEHOLDER


SENSITIVE_FIELDS: Dict[str, Dict[str, AnonymizationType]] = {
    'profiles': {
        'email': AnonymizationType.EMAIL,
        'phone': AnonymizationType.PHONE,
        'full_name': AnonymizationType.NAME,
    },
    'reservations': {
        'guest_name': AnonymizationType.NAME,
        'guest_email': AnonymizationType.EMAIL,
        'guest_phone': AnonymizationType.PHONE,
    },
    'customers': {
        'first_name': AnonymizationType.NAME,
        'last_name': AnonymizationType.NAME,
        'email': AnonymizationType.EMAIL,
        'phone': AnonymizationType.PHONE,
    },
    'loft_owners': {
        'name': AnonymizationType.NAME,
        'company_name': AnonymizationType.NAME,
        'email': AnonymizationType.EMAIL,
        'phone': AnonymizationType.PHONE,
        'address': AnonymizationType.ADDRESS,
    },
}

# Columns replaced wholesale rather than anonymized
CLEARED_FIELDS = {
    'profiles': ['airbnb_access_token', 'airbnb_refresh_token'],
}
PLACEHOLDER_FIELDS = {
    'messages': ['content'],
}


def anonymization_rules(table: str) -> List[AnonymizationRule]:
    """Rules applied by the row copier to ``table``."""
    rules: List[AnonymizationRule] = [
        AnonymizationRule(table, column, kind, preserve_format=kind is AnonymizationType.PHONE)
        for column, kind in SENSITIVE_FIELDS.get(table, {}).items()
    ]
    rules.extend(CustomRule(table, column, generator=_clear) for column in CLEARED_FIELDS.get(table, []))
    rules.extend(CustomRule(table, column, generator=_placeholder)
                 for column in PLACEHOLDER_FIELDS.get(table, []))
    return rules
