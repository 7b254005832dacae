"""
Shared fixtures: an in-memory stand-in for a mysql.connector connection.

FakeConnection understands only the statements the harness issues (session
flags, CREATE/DROP INDEX, SHOW INDEX, multi-row INSERT, EXPLAIN and SELECT)
and records everything it was asked to run.
"""

import os
import re
import sys
import copy

import pytest
from mysql.connector import errors, errorcode

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from config import DEFAULT_CONFIG

CREATE_INDEX = re.compile(r"^CREATE INDEX `(?P<name>\w+)` ON `(?P<table>\w+)` \((?P<columns>.+)\)$")
DROP_INDEX = re.compile(r"^DROP INDEX `(?P<name>\w+)` ON `(?P<table>\w+)`$")
SHOW_INDEX = re.compile(r"^SHOW INDEX FROM `(?P<table>\w+)`")
INDEX_COLUMN = re.compile(r"`(?P<name>\w+)`(?:\((?P<prefix>\d+)\))?(?: (?P<direction>ASC|DESC))?")
SET_FLAG = re.compile(r"^SET (?P<flag>FOREIGN_KEY_CHECKS|autocommit)=(?P<value>\d)$")

KNOWN_COLUMNS = {
    'id', 'user_id', 'client_id', 'access_token', 'token_type', 'refresh_token',
    'issued_at', 'revoked_at', 'expires_at', 'refresh_token_expires_at',
}


class FakeCursor:
    def __init__(self, connection, dictionary=False):
        self.connection = connection
        self.dictionary = dictionary
        self._rows = None
        self.closed = False

    @property
    def with_rows(self):
        return self._rows is not None

    def execute(self, sql, params=()):
        sql = " ".join(sql.split())
        self.connection.executed.append((sql, tuple(params or ())))
        self._rows = self.connection.handle(sql, list(params or ()), self.dictionary)

    def fetchall(self):
        rows, self._rows = self._rows or [], None
        return rows

    def fetchone(self):
        rows = self._rows or []
        self._rows = None
        return rows[0] if rows else None

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self):
        self.executed = []
        self.indexes = {}
        self.flags = {'autocommit': 1, 'foreign_key_checks': 1}
        self.rows_inserted = 0
        self.insert_statements = 0
        self.commits = 0
        self.rollbacks = 0
        self.fail_insert_on = None
        self.lost = False
        self.lose_connection_on_failure = False
        self.query_rows = []
        self.closed = False

    def cursor(self, dictionary=False, **kwargs):
        return FakeCursor(self, dictionary)

    def commit(self):
        self.commits += 1

    def rollback(self):
        if self.lost:
            raise errors.InterfaceError(msg="Lost connection to MySQL server", errno=2055)
        self.rollbacks += 1

    def is_connected(self):
        return not self.closed

    def close(self):
        self.closed = True

    def _unknown_column(self, sql):
        for name in re.findall(r"\b([a-z_]+_(?:id|at|type|token|column))\b", sql):
            if name not in KNOWN_COLUMNS:
                return name
        return None

    def handle(self, sql, params, dictionary):
        if self.lost:
            raise errors.InterfaceError(msg="Lost connection to MySQL server", errno=2055)

        if sql.startswith("SELECT @@session.autocommit"):
            return [(self.flags['autocommit'], self.flags['foreign_key_checks'])]

        match = SET_FLAG.match(sql)
        if match:
            self.flags[match.group('flag').lower()] = int(match.group('value'))
            return None

        match = CREATE_INDEX.match(sql)
        if match:
            name = match.group('name')
            if name in self.indexes:
                raise errors.ProgrammingError(msg=f"Duplicate key name '{name}'",
                                              errno=errorcode.ER_DUP_KEYNAME)
            self.indexes[name] = [m.groupdict() for m in INDEX_COLUMN.finditer(match.group('columns'))]
            return None

        match = DROP_INDEX.match(sql)
        if match:
            name = match.group('name')
            if name not in self.indexes:
                raise errors.ProgrammingError(msg=f"Can't DROP '{name}'; check that column/key exists",
                                              errno=errorcode.ER_CANT_DROP_FIELD_OR_KEY)
            del self.indexes[name]
            return None

        if SHOW_INDEX.match(sql):
            rows = []
            for name, columns in self.indexes.items():
                for seq, column in enumerate(columns, start=1):
                    rows.append({
                        'Key_name': name,
                        'Seq_in_index': seq,
                        'Column_name': column['name'],
                        'Sub_part': int(column['prefix']) if column['prefix'] else None,
                        'Collation': 'D' if column['direction'] == 'DESC' else 'A',
                    })
            return rows

        if sql.startswith("INSERT INTO"):
            self.insert_statements += 1
            if self.fail_insert_on == self.insert_statements:
                self.lost = self.lose_connection_on_failure
                raise errors.OperationalError(msg="Lost connection to MySQL server during query",
                                              errno=2013)
            self.rows_inserted += len(params) // 9
            return None

        if sql.startswith("EXPLAIN") or sql.startswith("SELECT"):
            column = self._unknown_column(sql)
            if column:
                raise errors.ProgrammingError(msg=f"Unknown column '{column}' in 'where clause'",
                                              errno=errorcode.ER_BAD_FIELD_ERROR)
            if sql.startswith("EXPLAIN"):
                return [{'id': 1, 'select_type': 'SIMPLE', 'table': 'oauth_tokens',
                         'type': 'ref' if self.indexes else 'ALL', 'key': None, 'rows': 10}]
            return list(self.query_rows)

        return None


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def test_config(tmp_path):
    config = copy.deepcopy(DEFAULT_CONFIG)
    config['reporting'] = {
        'logs_dir': str(tmp_path / 'logs'),
        'results_dir': str(tmp_path / 'results'),
        'prefix': 'test-run',
    }
    return config
