"""
Schema Manager - provisions the token database and table
"""

from typing import Dict, Any, List

import mysql.connector
from mysql.connector import errorcode

from base import BaseModule, quote_identifier, mysql_errno
from indexes import IndexController

# The table is created without any secondary index so index effects are
# always measured from a clean baseline.
TOKEN_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    id BIGINT UNSIGNED AUTO_INCREMENT PRIMARY KEY,
    user_id INT UNSIGNED NOT NULL,
    client_id INT UNSIGNED NOT NULL,
    access_token VARCHAR(255) NOT NULL,
    token_type VARCHAR(20) NOT NULL,
    refresh_token VARCHAR(255) NOT NULL,
    issued_at DATETIME NOT NULL,
    revoked_at DATETIME NULL,
    expires_at DATETIME NOT NULL,
    refresh_token_expires_at DATETIME NOT NULL
) ENGINE=InnoDB
"""

# Conflicts reported for objects that already exist
EXISTS_ERRNOS = (errorcode.ER_DB_CREATE_EXISTS, errorcode.ER_TABLE_EXISTS_ERROR)


class SchemaManager(BaseModule):
    """Creates and resets the benchmark database, table and its indexes"""

    def __init__(self, config: Dict[str, Any], connection):
        super().__init__(config, connection)
        self.table = config['database']['table']

    def _ddl(self, sql: str, description: str) -> bool:
        """Run DDL; an 'already exists' conflict is a warning and returns False"""
        try:
            self._execute(sql)
        except mysql.connector.Error as e:
            if mysql_errno(e) in EXISTS_ERRNOS:
                self.logger.warning(f"{description} already exists: {e}")
                return False
            self.logger.error(f"Failed to create {description}: {e}")
            raise
        return True

    def ensure_database(self, name: str) -> bool:
        created = self._ddl(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(name, 'database')}",
                            f"Database {name}")
        self.logger.info(f"Database {name} created or already exists.")
        return created

    def use_database(self, name: str) -> None:
        self._execute(f"USE {quote_identifier(name, 'database')}")

    def ensure_table(self, table: str = None) -> bool:
        table = table or self.table
        created = self._ddl(TOKEN_TABLE_DDL.format(table=quote_identifier(table, 'table')),
                            f"Table {table}")
        self.logger.info(f"Table {table} created or already exists (without indexes).")
        return created

    def drop_table(self, table: str = None) -> None:
        table = table or self.table
        self._execute(f"DROP TABLE IF EXISTS {quote_identifier(table, 'table')}")
        self.logger.info(f"Table {table} dropped.")

    def drop_all_secondary_indexes(self, table: str = None) -> List[str]:
        """Remove every non-primary index; individual failures are logged and skipped"""
        table = table or self.table
        self.logger.info(f"Getting all non-primary indexes for table {table}...")
        dropped = IndexController(self.config, self.connection).drop_all(table)
        self.logger.info(f"All indexes removed from {table}.")
        return dropped

    def row_count(self, table: str = None) -> int:
        rows = self._execute(f"SELECT COUNT(*) FROM {quote_identifier(table or self.table, 'table')}")
        return int(rows[0][0]) if rows else 0

    def table_status(self, table: str = None) -> Dict[str, Any]:
        """Row estimate, data and index size and engine as reported by SHOW TABLE STATUS"""
        table = table or self.table
        rows = self._execute("SHOW TABLE STATUS WHERE Name = %s", (table,), dictionary=True)
        if not rows:
            return {}
        info = rows[0]
        return {
            'table': table,
            'rows': info.get('Rows'),
            'data_mb': (info.get('Data_length') or 0) / (1024 * 1024),
            'index_mb': (info.get('Index_length') or 0) / (1024 * 1024),
            'engine': info.get('Engine'),
        }

    def analyze_table(self, table: str = None) -> List[Any]:
        table = table or self.table
        self.logger.info(f"Analyzing table {table}...")
        return self._execute(f"ANALYZE TABLE {quote_identifier(table, 'table')}")

    def optimize_table(self, table: str = None) -> List[Any]:
        table = table or self.table
        self.logger.info(f"Optimizing table {table}...")
        return self._execute(f"OPTIMIZE TABLE {quote_identifier(table, 'table')}")

    def apply_session_settings(self, settings: List[str]) -> List[str]:
        """Apply configured SET SESSION statements; rejected settings are skipped"""
        applied = []
        for setting in settings or []:
            if not setting.strip().upper().startswith('SET SESSION '):
                self.logger.warning(f"Ignoring non-session setting: {setting}")
                continue
            try:
                self._execute(setting)
                applied.append(setting)
                self.logger.info(f"Applied MySQL optimization: {setting}")
            except mysql.connector.Error as e:
                self.logger.warning(f'Could not apply setting "{setting}": {e}')
        return applied
