"""
SQLite stand-ins for source and target databases.

Only a handful of the well-known application tables are created; the
copier and deleter skip the rest as "not present".
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text, create_engine

from envclone.models import Credentials


SOURCE_CREDENTIALS = Credentials(url='https://sourceproj.supabase.co', password='source-pw')
TARGET_CREDENTIALS = Credentials(url='https://targetproj.supabase.co', password='target-pw')

UPDATED = datetime(2024, 3, 1, 12, 0, 0)

SAMPLE_ROWS = {
    'profiles': [
        {'id': 1, 'email': 'karim@example.com', 'phone': '0555123456', 'full_name': 'Karim Bouzid',
         'airbnb_access_token': 'tok-1', 'airbnb_refresh_token': 'ref-1', 'updated_at': UPDATED},
        {'id': 2, 'email': 'leila@example.com', 'phone': '021 23 45 67', 'full_name': 'Leila',
         'airbnb_access_token': None, 'airbnb_refresh_token': None, 'updated_at': UPDATED},
        {'id': 3, 'email': 'sam@example.com', 'phone': '+213661234567', 'full_name': 'Sam Ali Taleb',
         'airbnb_access_token': 'tok-3', 'airbnb_refresh_token': 'ref-3', 'updated_at': UPDATED},
    ],
    'lofts': [
        {'id': 1, 'name': 'Loft Hydra', 'owner_id': None},
        {'id': 2, 'name': 'Loft Bab Ezzouar', 'owner_id': None},
    ],
    'reservations': [
        {'id': i, 'loft_id': 1 + i % 2, 'customer_id': None, 'guest_name': f'Guest {i}',
         'guest_email': f'guest{i}@example.com', 'guest_phone': '0770001122'}
        for i in range(1, 6)
    ],
    'messages': [
        {'id': 1, 'sender_id': 1, 'content': 'Door code is 1234'},
        {'id': 2, 'sender_id': 3, 'content': 'Thanks!'},
    ],
}

TOTAL_ROWS = sum(len(rows) for rows in SAMPLE_ROWS.values())


def define_tables(metadata: MetaData, drop_columns=None):
    drop = drop_columns or {}
    specs = {
        'profiles': [
            Column('id', Integer, primary_key=True),
            Column('email', String(255)),
            Column('phone', String(32)),
            Column('full_name', String(255)),
            Column('airbnb_access_token', String(255)),
            Column('airbnb_refresh_token', String(255)),
            Column('updated_at', DateTime),
        ],
        'lofts': [
            Column('id', Integer, primary_key=True),
            Column('name', String(255)),
            Column('owner_id', Integer),
        ],
        'reservations': [
            Column('id', Integer, primary_key=True),
            Column('loft_id', Integer),
            Column('customer_id', Integer),
            Column('guest_name', String(255)),
            Column('guest_email', String(255)),
            Column('guest_phone', String(32)),
        ],
        'messages': [
            Column('id', Integer, primary_key=True),
            Column('sender_id', Integer),
            Column('content', Text),
        ],
    }
    for name, columns in specs.items():
        Table(name, metadata, *[c for c in columns if c.name not in drop.get(name, ())])
    return metadata


def create_database(path, rows=None, drop_columns=None):
    """Create a SQLite database at ``path`` holding ``rows`` (table -> list of dicts)."""
    engine = create_engine(f"sqlite:///{path}")
    metadata = define_tables(MetaData(), drop_columns)
    metadata.create_all(engine)
    with engine.begin() as conn:
        for name, table_rows in (rows or {}).items():
            if table_rows:
                conn.execute(metadata.tables[name].insert(), table_rows)
    return engine


def fetch_all(engine, table_name):
    metadata = MetaData()
    table = Table(table_name, metadata, autoload_with=engine)
    with engine.connect() as conn:
        return [dict(r._mapping) for r in conn.execute(table.select().order_by(table.c.id))]
