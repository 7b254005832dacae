"""
Index Controller - declarative secondary index management
=========================================================

Index descriptors describe an index by name and an ordered list of column
specs. Applying a descriptor means "ensure this index exists": a duplicate
key name reported by the store is a warning, not an error.

Which indexes are active is never cached. Every call to list_active() asks
the store, so the controller cannot drift from what the table really has.

Examples:
--------
    controller = IndexController(config, connection)
    controller.apply(IndexDescriptor.from_dict(
        {'name': 'idx_user_issued', 'columns': ['user_id', 'issued_at DESC']}
    ))
    controller.list_active('oauth_tokens')   # ['idx_user_issued']
"""

import re
import time
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Union

import yaml
import mysql.connector
from mysql.connector import errorcode

from base import BaseModule, TOKEN_COLUMNS, IdentifierError, quote_identifier, validate_identifier, mysql_errno

# "issued_at", "issued_at DESC", "access_token(8)", "access_token(8) ASC"
COLUMN_SPEC_PATTERN = re.compile(
    r'^\s*(?P<name>\w+)\s*(?:\(\s*(?P<prefix>\d+)\s*\))?\s*(?P<direction>ASC|DESC)?\s*$',
    re.IGNORECASE
)

INDEXABLE_COLUMNS = tuple(c for c in TOKEN_COLUMNS if c != 'id')


@dataclass
class ColumnSpec:
    name: str
    direction: Optional[str] = None
    prefix_length: Optional[int] = None

    def __post_init__(self):
        validate_identifier(self.name, 'column', INDEXABLE_COLUMNS)
        if self.direction is not None:
            self.direction = self.direction.upper()
            if self.direction not in ('ASC', 'DESC'):
                raise IdentifierError(f"Invalid sort direction {self.direction!r} for column {self.name}")
        if self.prefix_length is not None:
            self.prefix_length = int(self.prefix_length)
            if self.prefix_length <= 0:
                raise IdentifierError(f"Prefix length for {self.name} must be positive")

    @classmethod
    def parse(cls, spec: Union[str, Dict[str, Any], 'ColumnSpec']) -> 'ColumnSpec':
        """Build a ColumnSpec from shorthand text or a mapping"""
        if isinstance(spec, ColumnSpec):
            return spec
        if isinstance(spec, dict):
            return cls(
                name=spec.get('name'),
                direction=spec.get('direction'),
                prefix_length=spec.get('prefix_length', spec.get('prefix')),
            )
        match = COLUMN_SPEC_PATTERN.match(str(spec))
        if not match:
            raise IdentifierError(f"Cannot parse column spec {spec!r}")
        prefix = match.group('prefix')
        return cls(
            name=match.group('name'),
            direction=match.group('direction'),
            prefix_length=int(prefix) if prefix else None,
        )

    def to_sql(self) -> str:
        sql = quote_identifier(self.name, 'column', INDEXABLE_COLUMNS)
        if self.prefix_length:
            sql += f"({self.prefix_length})"
        if self.direction:
            sql += f" {self.direction}"
        return sql

    def __str__(self) -> str:
        text = self.name
        if self.prefix_length:
            text += f"({self.prefix_length})"
        if self.direction:
            text += f" {self.direction}"
        return text


@dataclass
class IndexDescriptor:
    name: str
    columns: List[ColumnSpec] = field(default_factory=list)

    def __post_init__(self):
        validate_identifier(self.name, 'index')
        if self.name.upper() == 'PRIMARY':
            raise IdentifierError("The primary key cannot be managed as a secondary index")
        self.columns = [ColumnSpec.parse(c) for c in self.columns]
        if not self.columns:
            raise IdentifierError(f"Index {self.name} must have at least one column")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IndexDescriptor':
        columns = data.get('columns')
        if columns is None and 'column' in data:
            columns = [data['column']]
        return cls(name=data.get('name'), columns=list(columns or []))

    def column_sql(self) -> str:
        return ", ".join(c.to_sql() for c in self.columns)

    def __str__(self) -> str:
        return f"{self.name} ({', '.join(str(c) for c in self.columns)})"


@dataclass
class IndexApplyResult:
    name: str
    created: bool
    elapsed_ms: float


def _descriptors(items: List[Dict[str, Any]]) -> List[IndexDescriptor]:
    return [IndexDescriptor.from_dict(item) for item in items]


# Single-column, compound, covering and sort-oriented indexes
DEFAULT_INDEX_SET: List[IndexDescriptor] = _descriptors([
    {'name': 'idx_user_id', 'columns': ['user_id']},
    {'name': 'idx_client_id', 'columns': ['client_id']},
    {'name': 'idx_token_type', 'columns': ['token_type']},
    {'name': 'idx_access_token', 'columns': ['access_token(8)']},
    {'name': 'idx_refresh_token', 'columns': ['refresh_token']},
    {'name': 'idx_expires_at', 'columns': ['expires_at']},
    {'name': 'idx_user_token_type', 'columns': ['user_id', 'token_type']},
    {'name': 'idx_user_covering', 'columns': ['user_id', 'token_type', 'client_id', 'issued_at']},
    {'name': 'idx_user_issued', 'columns': ['user_id', 'issued_at DESC']},
])


def load_index_set(file_path: str) -> List[IndexDescriptor]:
    """Load a named index set from a YAML recipe with an `indexes` list"""
    with open(file_path, 'r') as f:
        recipe = yaml.safe_load(f)

    if not isinstance(recipe, dict) or not isinstance(recipe.get('indexes'), list):
        raise ValueError(f"Index recipe {file_path} must contain an 'indexes' list")

    descriptors = _descriptors(recipe['indexes'])
    names = [d.name for d in descriptors]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Index recipe {file_path} defines {', '.join(duplicates)} more than once")
    return descriptors


class IndexController(BaseModule):
    """Adds, drops and lists secondary indexes on the token table"""

    def __init__(self, config: Dict[str, Any], connection):
        super().__init__(config, connection)
        self.table = config['database']['table']

    def _table_sql(self, table: str = None) -> str:
        return quote_identifier(table or self.table, 'table')

    def apply(self, descriptor: IndexDescriptor, table: str = None) -> IndexApplyResult:
        """Ensure the index exists; an existing index is a reported no-op"""
        table = table or self.table
        query = f"CREATE INDEX {quote_identifier(descriptor.name, 'index')} ON {self._table_sql(table)} ({descriptor.column_sql()})"
        self.logger.info(f"Creating index with query: {query}")

        start = time.perf_counter()
        try:
            self._execute(query)
        except mysql.connector.Error as e:
            if mysql_errno(e) == errorcode.ER_DUP_KEYNAME:
                self.logger.warning(f"Index {descriptor.name} already exists on {table}, skipping: {e}")
                return IndexApplyResult(name=descriptor.name, created=False, elapsed_ms=0.0)
            self.logger.error(f"Error creating index {descriptor.name} on {table}: {e}")
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        self.logger.info(f"Created index {descriptor} on {table} in {elapsed_ms:.2f} ms")
        return IndexApplyResult(name=descriptor.name, created=True, elapsed_ms=elapsed_ms)

    def apply_all(self, descriptors: List[IndexDescriptor], table: str = None) -> List[IndexApplyResult]:
        results = [self.apply(descriptor, table) for descriptor in descriptors]
        created = sum(1 for r in results if r.created)
        self.logger.info(f"All requested indexes have been processed ({created} created, "
                         f"{len(results) - created} already present).")
        return results

    def drop(self, name: str, table: str = None) -> None:
        table = table or self.table
        self.logger.info(f"Dropping index {name} from {table}...")
        self._execute(f"DROP INDEX {quote_identifier(name, 'index')} ON {self._table_sql(table)}")
        self.logger.info(f"Index {name} dropped successfully.")

    def drop_all(self, table: str = None) -> List[str]:
        """Drop every secondary index; an index that fails to drop is logged and skipped"""
        table = table or self.table
        names = self.list_active(table)
        if not names:
            self.logger.info(f"No non-primary indexes found on table {table}")
            return []

        self.logger.info(f"Found {len(names)} indexes to remove: {', '.join(names)}")
        dropped = []
        for name in names:
            try:
                self.drop(name, table)
                dropped.append(name)
            except (mysql.connector.Error, IdentifierError) as e:
                self.logger.warning(f"Could not drop index {name} from {table}: {e}")
        return dropped

    def _index_rows(self, table: str) -> List[Dict[str, Any]]:
        return self._execute(
            f"SHOW INDEX FROM {self._table_sql(table)} WHERE Key_name != 'PRIMARY'",
            dictionary=True
        )

    def list_active(self, table: str = None) -> List[str]:
        """Names of the secondary indexes currently on the table, as reported by the store"""
        names: List[str] = []
        for row in self._index_rows(table or self.table):
            if row['Key_name'] not in names:
                names.append(row['Key_name'])
        return names

    def describe_active(self, table: str = None) -> List[IndexDescriptor]:
        """Rebuild descriptors for the active secondary indexes from SHOW INDEX rows"""
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for row in self._index_rows(table or self.table):
            grouped.setdefault(row['Key_name'], []).append(row)

        descriptors = []
        for name, rows in grouped.items():
            rows.sort(key=lambda r: int(r['Seq_in_index']))
            try:
                columns = [
                    ColumnSpec(
                        name=r['Column_name'],
                        direction='DESC' if r.get('Collation') == 'D' else None,
                        prefix_length=r.get('Sub_part'),
                    )
                    for r in rows
                ]
                descriptors.append(IndexDescriptor(name=name, columns=columns))
            except IdentifierError as e:
                # Functional indexes and indexes on id are not expressible as descriptors
                self.logger.warning(f"Cannot describe index {name}: {e}")
        return descriptors
