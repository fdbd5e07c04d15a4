"""
Per-type value anonymizers.

Email, name, phone and financial replacements are pure functions of the
original value and the table name, so repeated runs produce identical
output. Addresses are drawn from a ``random.Random`` the caller controls.
"""

import random
import re
from decimal import Decimal
from typing import Any, Optional

from envclone.anonymization.pools import (
    CITIES, COMPANY_SUFFIXES, COMPANY_WORDS, FIRST_NAMES, INTERNATIONAL_PREFIX,
    LANDLINE_PREFIXES, LAST_NAMES, MOBILE_PREFIXES, STREET_NAMES, STREET_TYPES,
    TEST_DOMAIN,
)
from envclone.anonymization.rules import AnonymizationContext, AnonymizationRule
from envclone.exceptions import AnonymizationError
from envclone.hashing import deterministic_hash, hash_int, pick

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_SEPARATORS = re.compile(r'[-. ]')

# Replacement ranges per transaction type, in DZD
FINANCIAL_RANGES = {
    'rent': (15000, 80000),
    'deposit': (30000, 160000),
    'fee': (1000, 10000),
    'utility': (2000, 15000),
    'maintenance': (5000, 25000),
    'other': (1000, 50000),
}


class EmailAnonymizer:
    """user@example.com -> user<hash>@test.local"""

    def __init__(self, test_domain: str = TEST_DOMAIN):
        self.test_domain = test_domain

    def anonymize(self, value: Any, rule: AnonymizationRule, context: AnonymizationContext) -> Any:
        if not isinstance(value, str) or not EMAIL_PATTERN.match(value.strip()):
            return value

        email = value.strip()
        digest = deterministic_hash(email.lower(), context.table_name)[:8]
        domain = email.rsplit('@', 1)[1] if rule.preserve_format else self.test_domain
        return f"user{digest}@{domain}"


class NameAnonymizer:
    """
    Token-wise name replacement.

    Each token maps through a table-scoped lookup, so "John Doe" and
    "Jane Doe" keep a shared family name. Names with three or more parts
    collapse to a (first, last) pair unless ``preserve_format`` is set.
    Columns holding company names get a company-style replacement.
    """

    def anonymize(self, value: Any, rule: AnonymizationRule, context: AnonymizationContext) -> Any:
        if not isinstance(value, str):
            raise AnonymizationError(f"Expected a string name, got {type(value).__name__}")

        if 'company' in context.column_name.lower():
            return self.anonymize_company_name(value, context)

        parts = value.split()
        if not parts:
            return value

        table = context.table_name
        if len(parts) == 1:
            return self._first_name(parts[0], table)

        if len(parts) >= 3 and not rule.preserve_format:
            h = hash_int(' '.join(parts).lower(), f"{table}:fullname")
            first = FIRST_NAMES[h % len(FIRST_NAMES)]
            last = LAST_NAMES[(h // len(FIRST_NAMES)) % len(LAST_NAMES)]
            return f"{first} {last}"

        mapped = [self._first_name(p, table) for p in parts[:-1]]
        mapped.append(self._last_name(parts[-1], table))
        return ' '.join(mapped)

    def anonymize_company_name(self, value: Any, context: AnonymizationContext) -> Any:
        if not isinstance(value, str) or not value.strip():
            return value
        key = value.strip().lower()
        word = pick(COMPANY_WORDS, key, f"{context.table_name}:company")
        suffix = pick(COMPANY_SUFFIXES, key, f"{context.table_name}:company-suffix")
        return f"{word} {suffix}"

    @staticmethod
    def _first_name(token: str, table: str) -> str:
        return pick(FIRST_NAMES, token.lower(), f"{table}:first")

    @staticmethod
    def _last_name(token: str, table: str) -> str:
        return pick(LAST_NAMES, token.lower(), f"{table}:last")


class PhoneAnonymizer:
    """
    Algerian phone numbers.

    The replacement keeps the mobile/landline category of the original
    prefix and any +213/213 international prefix. Local output is a 3-digit
    prefix plus 6 digits; international output is 213 plus 9 digits.
    """

    def anonymize(self, value: Any, rule: AnonymizationRule, context: AnonymizationContext) -> Any:
        text = str(value).strip()
        digits = re.sub(r'\D', '', text)
        if not digits:
            return value

        intl, local = self._split_international(text, digits)
        pool = LANDLINE_PREFIXES if self.category(local) == 'landline' else MOBILE_PREFIXES

        h = hash_int(digits, f"{context.table_name}:phone")
        prefix = pool[h % len(pool)]
        rest = h // len(pool)

        if intl:
            new_digits = INTERNATIONAL_PREFIX + prefix[1:] + f"{rest % 10**7:07d}"
        else:
            new_digits = prefix + f"{rest % 10**6:06d}"

        if rule.preserve_format and PHONE_SEPARATORS.search(text):
            return self._apply_pattern(text, new_digits, intl)
        if intl == '+':
            return '+' + new_digits
        return new_digits

    @staticmethod
    def _split_international(text: str, digits: str):
        """Return ('+' | '213' | '', local number with trunk 0)."""
        if text.startswith('+' + INTERNATIONAL_PREFIX):
            return '+', '0' + digits[len(INTERNATIONAL_PREFIX):]
        if digits.startswith(INTERNATIONAL_PREFIX) and len(digits) >= 11:
            return INTERNATIONAL_PREFIX, '0' + digits[len(INTERNATIONAL_PREFIX):]
        return '', digits

    @staticmethod
    def category(local: str) -> Optional[str]:
        if local[:3] in MOBILE_PREFIXES:
            return 'mobile'
        if local[:3] in LANDLINE_PREFIXES:
            return 'landline'
        return None

    @staticmethod
    def _apply_pattern(original: str, new_digits: str, intl: str) -> str:
        """Lay ``new_digits`` over the digit positions of ``original``."""
        if sum(c.isdigit() for c in original) == len(new_digits):
            it = iter(new_digits)
            return ''.join(next(it) if c.isdigit() else c for c in original)

        separator = PHONE_SEPARATORS.search(original).group(0)
        groups = [new_digits[i:i + 3] for i in range(0, len(new_digits), 3)]
        formatted = separator.join(groups)
        return '+' + formatted if intl == '+' else formatted

    def is_valid_algerian_phone(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        text = value.strip()
        if re.search(r'[^\d+\-. ]', text):
            return False
        digits = re.sub(r'\D', '', text)
        if not digits:
            return False
        _, local = self._split_international(text, digits)
        return len(local) in (9, 10) and self.category(local) is not None


class AddressAnonymizer:
    """<number> <street type> <street name>, <city>"""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def anonymize(self, value: Any, rule: AnonymizationRule, context: AnonymizationContext) -> Any:
        number = self.rng.randint(1, 999)
        street_type = self.rng.choice(STREET_TYPES)
        street_name = self.rng.choice(STREET_NAMES)
        city = self.rng.choice(CITIES)
        return f"{number} {street_type} {street_name}, {city}"


def magnitude_range(amount: float):
    """Replacement range that keeps the order of magnitude of ``amount``."""
    amount = abs(amount)
    if amount < 100:
        return 10, 100
    if amount < 1000:
        return 100, 1000
    if amount < 10000:
        return 1000, 10000
    if amount < 100000:
        return 10000, 100000
    return 100000, 1000000


class FinancialAnonymizer:
    """
    Numeric amounts.

    The range comes from the rule constraints, then from the row's
    transaction type, then from the original magnitude. The draw is seeded
    by the original value so reruns agree.
    """

    def anonymize(self, value: Any, rule: AnonymizationRule, context: AnonymizationContext) -> Any:
        if isinstance(value, bool):
            raise AnonymizationError("Boolean is not a financial amount")
        try:
            amount = float(value)
        except (TypeError, ValueError):
            raise AnonymizationError(f"Not a numeric amount: {value!r}")

        low, high = self._range(amount, rule, context)
        rng = random.Random(hash_int(value, f"{context.table_name}:{context.column_name}"))
        drawn = rng.uniform(low, high)
        if amount < 0:
            drawn = -drawn

        if isinstance(value, int):
            return int(round(drawn))
        if isinstance(value, Decimal):
            return Decimal(f"{drawn:.2f}")
        if isinstance(value, str):
            return f"{drawn:.2f}"
        return round(drawn, 2)

    @staticmethod
    def _range(amount, rule, context):
        constraints = rule.constraints
        if constraints and constraints.min_value is not None and constraints.max_value is not None:
            return constraints.min_value, constraints.max_value

        row = context.row or {}
        transaction_type = row.get('transaction_type') or row.get('type')
        if isinstance(transaction_type, str) and transaction_type.lower() in FINANCIAL_RANGES:
            return FINANCIAL_RANGES[transaction_type.lower()]

        return magnitude_range(amount)
