"""
Batch Loader - bulk inserts synthetic token records
"""

import time
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Any, List

import mysql.connector

from base import BaseModule, LoadError, quote_identifier
from generator import TokenGenerator, TokenRecord, INSERT_COLUMNS

logger = logging.getLogger(__name__)


@dataclass
class LoadSummary:
    inserted: int
    batches: int
    elapsed: float

    @property
    def rows_per_second(self) -> float:
        return self.inserted / self.elapsed if self.elapsed > 0 else 0.0


def _read_session_flags(connection) -> Dict[str, int]:
    cursor = connection.cursor()
    try:
        cursor.execute("SELECT @@session.autocommit, @@session.foreign_key_checks")
        autocommit, fk_checks = cursor.fetchall()[0]
    finally:
        cursor.close()
    return {'autocommit': int(autocommit), 'foreign_key_checks': int(fk_checks)}


def _set_session_flags(connection, autocommit: int, foreign_key_checks: int) -> None:
    cursor = connection.cursor()
    try:
        cursor.execute(f"SET FOREIGN_KEY_CHECKS={int(foreign_key_checks)}")
        cursor.execute(f"SET autocommit={int(autocommit)}")
    finally:
        cursor.close()


@contextmanager
def bulk_load_session(connection):
    """Disable autocommit and foreign key checks for a bulk load.

    The values seen on entry are restored on every exit path. When the body
    raises, a failed restore is only logged so the original error propagates.
    """
    previous = _read_session_flags(connection)
    logger.debug(f"Session flags before load: {previous}")
    try:
        _set_session_flags(connection, autocommit=0, foreign_key_checks=0)
        yield previous
    except BaseException:
        try:
            _set_session_flags(connection, **previous)
        except mysql.connector.Error as e:
            logger.warning(f"Could not restore session flags {previous} after failed load: {e}")
        raise
    _set_session_flags(connection, **previous)
    logger.debug(f"Session flags restored: {previous}")


class BatchLoader(BaseModule):
    """Inserts generated token records in bounded batches with periodic commits"""

    def __init__(self, config: Dict[str, Any], connection, generator: TokenGenerator = None):
        super().__init__(config, connection)
        self.table = config['database']['table']
        self.commit_every = int(config.get('loader', {}).get('commit_every', 10))
        self.generator = generator or TokenGenerator(config.get('generator', {}))

    def _insert_statement(self, rows: int) -> str:
        columns = ", ".join(INSERT_COLUMNS)
        placeholders = "(" + ", ".join(["%s"] * len(INSERT_COLUMNS)) + ")"
        values = ", ".join([placeholders] * rows)
        return f"INSERT INTO {quote_identifier(self.table, 'table')} ({columns}) VALUES {values}"

    def insert_batch(self, records: List[TokenRecord]) -> int:
        """Insert records with a single multi-row INSERT"""
        if not records:
            return 0
        params = []
        for record in records:
            params.extend(record.as_row())
        cursor = self.connection.cursor()
        try:
            cursor.execute(self._insert_statement(len(records)), params)
        finally:
            cursor.close()
        return len(records)

    def _rollback(self) -> None:
        try:
            self.connection.rollback()
        except mysql.connector.Error as e:
            self.logger.warning(f"Rollback after failed batch also failed: {e}")

    def load(self, total_count: int, batch_size: int) -> LoadSummary:
        """Generate and insert `total_count` records in batches of at most `batch_size`"""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.commit_every <= 0:
            raise ValueError("commit_every must be positive")
        if total_count <= 0:
            self.logger.info("Nothing to load")
            return LoadSummary(inserted=0, batches=0, elapsed=0.0)

        total_batches = -(-total_count // batch_size)
        self.logger.info(
            f"Starting to insert {total_count} records in {total_batches} batches "
            f"of {batch_size} records each."
        )

        inserted = 0
        committed = 0
        batch_number = 0
        start_time = time.perf_counter()

        with bulk_load_session(self.connection):
            try:
                for batch_number in range(1, total_batches + 1):
                    current_size = min(batch_size, total_count - inserted)
                    inserted += self.insert_batch(list(self.generator.generate(current_size)))

                    percent = round(inserted / total_count * 100)
                    self.logger.info(
                        f"Batch {batch_number}/{total_batches} completed. "
                        f"Progress: {inserted}/{total_count} records ({percent}%)"
                    )

                    if batch_number % self.commit_every == 0 or batch_number == total_batches:
                        self.connection.commit()
                        committed = inserted
            except mysql.connector.Error as e:
                self.logger.error(f"Load aborted at batch {batch_number}/{total_batches}: {e}")
                self._rollback()
                raise LoadError('load', f"batch {batch_number} failed: {e}",
                                batch=batch_number, inserted=inserted, committed=committed) from e
            except BaseException:
                # Re-enabling autocommit would commit the open transaction
                self.logger.error(f"Load interrupted at batch {batch_number}/{total_batches}")
                self._rollback()
                raise

        elapsed = time.perf_counter() - start_time
        summary = LoadSummary(inserted=inserted, batches=total_batches, elapsed=elapsed)
        self.logger.info(
            f"Inserted {summary.inserted} records in {summary.elapsed:.2f} seconds "
            f"({summary.rows_per_second:.0f} rows/s)."
        )
        return summary
