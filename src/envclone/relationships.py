"""
Foreign-key tracking and consistent ID remapping.

The RelationshipManager keeps, per ``table.column``, a deterministic map
from original identifiers to replacement identifiers, and rewrites primary
and foreign keys with it so remapped data stays referentially intact.
One manager belongs to one operation; call ``reset()`` between operations.
"""

import json
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from envclone.exceptions import ConfigurationError
from envclone.hashing import deterministic_hash

logger = logging.getLogger(__name__)

UUID_TEXT_LENGTH = 36


@dataclass(frozen=True)
class ForeignKeyRelationship:
    source_table: str
    source_column: str
    target_table: str
    target_column: str = 'id'
    relationship_type: str = 'many-to-one'

    @property
    def is_self_reference(self) -> bool:
        return self.source_table == self.target_table


@dataclass
class RelationalData:
    table_name: str
    data: List[Dict[str, Any]]
    relationships: List[ForeignKeyRelationship] = field(default_factory=list)


@dataclass
class IntegrityReport:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def topological_sort(tables: Sequence[str], relationships: Iterable[ForeignKeyRelationship],
                     strict: bool = True) -> List[str]:
    """
    Order ``tables`` so referenced tables come before referencing ones.

    Self-references and edges to tables outside ``tables`` do not affect
    the order. With ``strict`` a cycle raises ConfigurationError; otherwise
    the tables in the cycle are appended at the end with a warning.
    """
    all_tables = list(dict.fromkeys(tables))
    known = set(all_tables)
    children_of: Dict[str, Set[str]] = {}
    parents_of: Dict[str, Set[str]] = {}
    for rel in relationships:
        if rel.is_self_reference or rel.source_table not in known or rel.target_table not in known:
            continue
        children_of.setdefault(rel.target_table, set()).add(rel.source_table)
        parents_of.setdefault(rel.source_table, set()).add(rel.target_table)

    in_deg = {t: len(parents_of.get(t, ())) for t in all_tables}
    q = deque([t for t in all_tables if in_deg[t] == 0])
    res = []
    while q:
        n = q.popleft()
        res.append(n)
        for child in sorted(children_of.get(n, ()), key=all_tables.index):
            in_deg[child] -= 1
            if in_deg[child] == 0:
                q.append(child)

    remaining = [t for t in all_tables if in_deg[t] > 0]
    if remaining:
        if strict:
            raise ConfigurationError(f"Foreign-key cycle between tables: {', '.join(remaining)}")
        logger.warning(f"Foreign-key cycle detected; appending unresolved tables: {remaining}")
        res.extend(remaining)
    return res


def check_dependency_order(order: Sequence[str], relationships: Iterable[ForeignKeyRelationship]):
    """Raise ConfigurationError if ``order`` lists a child before its parent."""
    position = {t: i for i, t in enumerate(order)}
    for rel in relationships:
        if rel.is_self_reference:
            continue
        if rel.source_table in position and rel.target_table in position:
            if position[rel.target_table] > position[rel.source_table]:
                raise ConfigurationError(
                    f"{rel.source_table} is ordered before the table it references ({rel.target_table})"
                )


def _mapping_key(table: str, column: str) -> str:
    return f"{table}.{column}"


class RelationshipManager:
    """Tracks FK relationships and keeps ID remapping consistent across tables."""

    def __init__(self, primary_keys: Optional[Dict[str, List[str]]] = None):
        self.primary_keys = dict(primary_keys or {})
        self.relationships: List[ForeignKeyRelationship] = []
        self.id_mappings: Dict[str, Dict[Any, Any]] = {}
        self._used_ids: Dict[str, Set[Any]] = {}
        self._tables_processed: Set[str] = set()

    def register_relationships(self, relationships: Iterable[ForeignKeyRelationship]):
        for rel in relationships:
            if rel not in self.relationships:
                self.relationships.append(rel)
        logger.debug(f"{len(self.relationships)} relationships registered")

    def primary_key_columns(self, table: str) -> List[str]:
        return self.primary_keys.get(table, ['id'])

    def _relationship_for(self, table: str, column: str) -> Optional[ForeignKeyRelationship]:
        for rel in self.relationships:
            if rel.source_table == table and rel.source_column == column:
                return rel
        return None

    def _generate_consistent_id(self, value: Any, key: str) -> Any:
        """
        Replacement for ``value`` within mapping ``key``.

        UUIDs stay UUIDs, integers keep their number of digits where the
        space allows, other strings become ``anon_<hash>``. Collisions with
        IDs already handed out in the same mapping are resolved by probing.
        """
        if isinstance(value, bool) or not isinstance(value, (int, str, uuid.UUID)):
            return value
        used = self._used_ids.setdefault(key, set())
        attempt = 0
        while True:
            digest = deterministic_hash(value, f"{key}:{attempt}" if attempt else key)
            candidate = self._candidate(value, digest, attempt)
            if candidate not in used:
                used.add(candidate)
                return candidate
            attempt += 1

    @staticmethod
    def _candidate(value, digest, attempt):
        if isinstance(value, int):
            magnitude = max(len(str(abs(value))) - 1, 0)
            factor = 10 ** magnitude
            span = factor * 9
            if attempt < span:
                return int(digest[:12], 16) % span + factor
            # digit space exhausted; move up one order of magnitude
            return 10 ** (magnitude + 1) + attempt
        if isinstance(value, uuid.UUID):
            return uuid.UUID(bytes=bytes.fromhex(digest[:32]), version=4)
        if isinstance(value, str):
            try:
                if len(value) == UUID_TEXT_LENGTH:
                    uuid.UUID(value)
                    return str(uuid.UUID(bytes=bytes.fromhex(digest[:32]), version=4))
            except ValueError:
                pass
        return f"anon_{digest[:8]}"

    def create_id_mapping(self, table: str, column: str, original_ids: Iterable[Any]) -> Dict[Any, Any]:
        """
        Build (and replace) the mapping for ``table.column``.

        None values are never mapped. The same ID list always produces the
        same mapping.
        """
        key = _mapping_key(table, column)
        self.id_mappings[key] = {}
        self._used_ids[key] = set()
        return self._extend_mapping(table, column, original_ids)

    def _extend_mapping(self, table, column, original_ids) -> Dict[Any, Any]:
        key = _mapping_key(table, column)
        mapping = self.id_mappings.setdefault(key, {})
        for original in original_ids:
            if original is None or original in mapping:
                continue
            mapping[original] = self._generate_consistent_id(original, key)
        return mapping

    def get_anonymized_reference(self, original_id: Any, source_table: str, source_column: str) -> Any:
        if original_id is None:
            return None

        rel = self._relationship_for(source_table, source_column)
        if rel is None:
            mapping = self.id_mappings.get(_mapping_key(source_table, source_column), {})
            return mapping.get(original_id, original_id)

        key = _mapping_key(rel.target_table, rel.target_column)
        mapping = self.id_mappings.get(key)
        if mapping is not None and original_id in mapping:
            return mapping[original_id]
        # Dangling reference: map it the same way the parent would have been
        return self._extend_mapping(rel.target_table, rel.target_column, [original_id])[original_id]

    def map_rows(self, table: str, rows: Sequence[Dict[str, Any]],
                 relationships: Iterable[ForeignKeyRelationship] = ()) -> List[Dict[str, Any]]:
        """
        Remap primary and foreign keys of ``rows``, extending the mappings.

        Primary-key columns that are also foreign keys (composite join
        tables) follow the referenced table's mapping.
        """
        self.register_relationships(relationships)
        fk_columns = {rel.source_column for rel in self.relationships if rel.source_table == table}
        pk_columns = [c for c in self.primary_key_columns(table) if c not in fk_columns]

        for column in pk_columns:
            self._extend_mapping(table, column, [row.get(column) for row in rows])

        mapped = []
        for row in rows:
            new_row = dict(row)
            for column in pk_columns:
                if column in row and row[column] is not None:
                    new_row[column] = self.id_mappings[_mapping_key(table, column)][row[column]]
            for column in fk_columns:
                if column in row:
                    new_row[column] = self.get_anonymized_reference(row[column], table, column)
            mapped.append(new_row)

        self._tables_processed.add(table)
        return mapped

    def process_relational_data(self, tables: Sequence[RelationalData]) -> List[RelationalData]:
        """Remap every table, parents first, and return them in processing order."""
        for item in tables:
            self.register_relationships(item.relationships)

        by_name = {item.table_name: item for item in tables}
        order = topological_sort(list(by_name), self.relationships, strict=False)

        processed = []
        for name in order:
            item = by_name[name]
            rows = self.map_rows(name, item.data)
            processed.append(RelationalData(name, rows, list(item.relationships)))
            logger.debug(f"Remapped {len(rows)} rows of {name}")
        return processed

    def validate_referential_integrity(self, tables: Sequence[RelationalData]) -> IntegrityReport:
        by_name = {item.table_name: item for item in tables}
        relationships = list(self.relationships)
        for item in tables:
            for rel in item.relationships:
                if rel not in relationships:
                    relationships.append(rel)

        errors: List[str] = []
        warnings: List[str] = []
        for rel in relationships:
            source = by_name.get(rel.source_table)
            if source is None:
                warnings.append(
                    f"Relationship {rel.source_table}.{rel.source_column} -> "
                    f"{rel.target_table}.{rel.target_column} skipped: no data for {rel.source_table}"
                )
                continue
            target = by_name.get(rel.target_table)
            if target is None:
                errors.append(
                    f"Target table {rel.target_table} not found for relationship "
                    f"{rel.source_table}.{rel.source_column}"
                )
                continue

            target_values = {row.get(rel.target_column) for row in target.data}
            for row in source.data:
                value = row.get(rel.source_column)
                if value is not None and value not in target_values:
                    errors.append(
                        f"Referential integrity violation: {rel.source_table}.{rel.source_column} "
                        f"references non-existent {rel.target_table}.{rel.target_column} = {value}"
                    )

        return IntegrityReport(is_valid=not errors, errors=errors, warnings=warnings)

    def get_relationship_statistics(self) -> Dict[str, Any]:
        return {
            'total_relationships': len(self.relationships),
            'tables_processed': len(self._tables_processed),
            'id_mappings_created': sum(len(m) for m in self.id_mappings.values()),
            'mappings_by_table': {key: len(m) for key, m in self.id_mappings.items()},
        }

    def export_mappings(self) -> Dict[str, List[List[Any]]]:
        """Mappings as JSON-safe ``{"table.column": [[original, replacement], ...]}``."""
        exported = {}
        for key, mapping in self.id_mappings.items():
            exported[key] = [[_to_json(k), _to_json(v)] for k, v in mapping.items()]
        return exported

    def import_mappings(self, mappings: Dict[str, Any]):
        for key, pairs in mappings.items():
            if isinstance(pairs, dict):
                pairs = list(pairs.items())
            mapping = self.id_mappings.setdefault(key, {})
            used = self._used_ids.setdefault(key, set())
            for original, replacement in pairs:
                mapping[original] = replacement
                used.add(replacement)

    def save_mappings(self, filepath: str):
        with open(filepath, 'w') as f:
            json.dump(self.export_mappings(), f, indent=2)
        logger.info(f"Mappings exported to {filepath}")

    def load_mappings(self, filepath: str):
        with open(filepath) as f:
            self.import_mappings(json.load(f))
        logger.info(f"Mappings loaded from {filepath}")

    def reset(self):
        self.relationships.clear()
        self.id_mappings.clear()
        self._used_ids.clear()
        self._tables_processed.clear()


def _to_json(value):
    return str(value) if isinstance(value, uuid.UUID) else value
