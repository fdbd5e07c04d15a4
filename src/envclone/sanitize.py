"""
Dump sanitization.

Pure text transformations that make a pg_dump produced against one
Supabase project restorable into another (possibly older) server. Each
rule is its own function; ``sanitize`` applies them in a fixed order.
"""

import logging
import re
from dataclasses import dataclass

logger = logging.getLogger(__name__)

COMMENT_PREFIX = '-- '
REMOVED_MARKER = ' -- Removed by envclone'

TRANSACTION_TIMEOUT_RE = re.compile(r'\btransaction_timeout\b')
EVENT_TRIGGER_RE = re.compile(r'^(?:DROP|CREATE|ALTER) EVENT TRIGGER[\s\S]+?;', re.MULTILINE)
REALTIME_PUBLICATION_RE = re.compile(
    r'^(?:CREATE|ALTER|DROP) PUBLICATION\s+"?supabase_realtime"?(?=[\s;])[\s\S]*?;', re.MULTILINE
)
CREATE_SCHEMA_RE = re.compile(r'^CREATE SCHEMA (?!IF NOT EXISTS)"?(\w+)"?;', re.MULTILINE)
ADMIN_ROLE_DDL_RE = re.compile(
    r'^(?:CREATE|DROP|ALTER) (?:USER|ROLE) (?:IF EXISTS )?"?admin"?(?:\W.*)?$', re.MULTILINE | re.IGNORECASE
)
ADMIN_ROLE_REF_RE = re.compile(
    r'\b(OWNER\s+TO|GRANTED\s+BY|TO|FROM|ROLE)\s+(?:"admin"|admin\b)', re.IGNORECASE
)
# Statements that may name a role; everything else is left alone
ROLE_STATEMENT_PREFIXES = (
    'GRANT', 'REVOKE', 'ALTER', 'CREATE POLICY', 'SET ROLE', 'SET SESSION AUTHORIZATION',
)
COPY_START_RE = re.compile(r'^COPY\s.+\sFROM\s+stdin;\s*$', re.IGNORECASE)
COPY_END = '\\.'

SYSTEM_TRUNCATE_SQL = """\
-- Clear system tables before loading data
ALTER TABLE auth.users DISABLE ROW LEVEL SECURITY;
TRUNCATE TABLE auth.users CASCADE;
TRUNCATE TABLE storage.objects CASCADE;
ALTER TABLE auth.users ENABLE ROW LEVEL SECURITY;

"""


@dataclass
class SanitizeOptions:
    system_dump: bool = False
    admin_role: str = 'admin'
    replacement_role: str = 'service_role'


def _comment_out(match: re.Match) -> str:
    return '\n'.join(COMMENT_PREFIX + line for line in match.group(0).split('\n'))


def rename_transaction_timeout(text: str) -> str:
    return TRANSACTION_TIMEOUT_RE.sub('statement_timeout', text)


def comment_out_event_triggers(text: str) -> str:
    return EVENT_TRIGGER_RE.sub(_comment_out, text)


def comment_out_realtime_publication(text: str) -> str:
    def replace(match):
        return _comment_out(match) + REMOVED_MARKER
    return REALTIME_PUBLICATION_RE.sub(replace, text)


def make_create_schema_idempotent(text: str) -> str:
    return CREATE_SCHEMA_RE.sub(r'CREATE SCHEMA IF NOT EXISTS "\1";', text)


def inject_system_truncate(text: str) -> str:
    if text.startswith(SYSTEM_TRUNCATE_SQL):
        return text
    return SYSTEM_TRUNCATE_SQL + text


def rewrite_admin_role(text: str, admin_role: str = 'admin', replacement_role: str = 'service_role') -> str:
    """
    Point every reference to the custom admin role at ``replacement_role``.

    Statements that create or drop the admin role itself are commented out.
    Only privilege and ownership statements are rewritten; COPY data blocks
    and INSERT values pass through untouched.
    """
    ddl_re, ref_re = ADMIN_ROLE_DDL_RE, ADMIN_ROLE_REF_RE
    if admin_role != 'admin':
        name = re.escape(admin_role)
        ddl_re = re.compile(ADMIN_ROLE_DDL_RE.pattern.replace('admin', name), ddl_re.flags)
        ref_re = re.compile(ADMIN_ROLE_REF_RE.pattern.replace('admin', name), ref_re.flags)

    lines = []
    in_copy = False
    for line in text.split('\n'):
        if in_copy:
            in_copy = line != COPY_END
        elif COPY_START_RE.match(line):
            in_copy = True
        elif not line.startswith('--'):
            if ddl_re.match(line):
                line = COMMENT_PREFIX + line
            elif line.lstrip().upper().startswith(ROLE_STATEMENT_PREFIXES):
                line = ref_re.sub(lambda m: f'{m.group(1)} "{replacement_role}"', line)
        lines.append(line)
    return '\n'.join(lines)


def sanitize(dump_text: str, options: SanitizeOptions = None) -> str:
    options = options or SanitizeOptions()
    steps = [
        ('transaction_timeout', rename_transaction_timeout),
        ('event_triggers', comment_out_event_triggers),
        ('realtime_publication', comment_out_realtime_publication),
        ('create_schema', make_create_schema_idempotent),
        ('admin_role', lambda t: rewrite_admin_role(t, options.admin_role, options.replacement_role)),
    ]
    if options.system_dump:
        steps.append(('system_truncate', inject_system_truncate))

    for name, step in steps:
        updated = step(dump_text)
        if updated != dump_text:
            logger.debug(f"Sanitize rule applied: {name}")
        dump_text = updated
    return dump_text
