"""
Harness Module - ties provisioning, loading, indexing, benchmarking and reporting together
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Any

from base import ConnectivityError
from config import database_settings
from database import connect, close_quietly
from schema import SchemaManager
from generator import TokenGenerator
from loader import BatchLoader, LoadSummary
from indexes import IndexController, IndexDescriptor, IndexApplyResult, DEFAULT_INDEX_SET
from runner import BenchmarkRunner, BenchmarkCase, BenchmarkResult
from report import ReportSink


class IndexBenchmarkHarness:
    """Runs provision -> load -> (toggle indexes -> benchmark) x N -> report on one connection"""

    def __init__(self, config: Dict[str, Any], connection=None, started_at: datetime = None):
        self.logger = logging.getLogger(__name__)
        self.config = config
        self.table = config['database']['table']
        self.database = config['database']['database']
        self.connection = connection
        self.report_sink = ReportSink(config, started_at)
        self._components_ready = False
        if connection is not None:
            self._init_components()

    def _init_components(self):
        self.schema = SchemaManager(self.config, self.connection)
        self.indexes = IndexController(self.config, self.connection)
        self.loader = BatchLoader(self.config, self.connection,
                                  TokenGenerator(self.config.get('generator', {})))
        self.runner = BenchmarkRunner(self.config, self.connection)
        self._components_ready = True

    def open(self, create_database: bool = False) -> 'IndexBenchmarkHarness':
        """Connect to the server and select the benchmark database"""
        if self.connection is None:
            self.connection = connect(database_settings(self.config, with_database=False))
            self._init_components()
        try:
            if create_database:
                self.schema.ensure_database(self.database)
            self.schema.use_database(self.database)
        except Exception:
            self.close()
            raise
        return self

    def close(self) -> None:
        close_quietly(self.connection)
        self.connection = None
        self._components_ready = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False

    def _require_connection(self):
        if not self._components_ready:
            raise ConnectivityError('harness', 'not connected; call open() first')

    def setup(self) -> List[str]:
        """Create the table if needed and reset it to the no-secondary-index baseline"""
        self._require_connection()
        self.schema.ensure_table(self.table)
        dropped = self.schema.drop_all_secondary_indexes(self.table)
        self.logger.info("Database setup completed successfully.")
        return dropped

    def reset(self) -> None:
        """Full reset: drop and recreate the table"""
        self._require_connection()
        self.schema.drop_table(self.table)
        self.schema.ensure_table(self.table)

    def load(self, total_count: int = None, batch_size: int = None) -> LoadSummary:
        self._require_connection()
        loader_config = self.config.get('loader', {})
        total_count = loader_config.get('total_records', 0) if total_count is None else total_count
        batch_size = loader_config.get('batch_size', 10000) if batch_size is None else batch_size
        return self.loader.load(int(total_count), int(batch_size))

    def apply_index_set(self, descriptors: List[IndexDescriptor] = None) -> List[IndexApplyResult]:
        self._require_connection()
        if descriptors is None:
            descriptors = DEFAULT_INDEX_SET
        return self.indexes.apply_all(descriptors, self.table)

    def drop_indexes(self) -> List[str]:
        self._require_connection()
        return self.schema.drop_all_secondary_indexes(self.table)

    def active_indexes(self) -> List[str]:
        self._require_connection()
        return self.indexes.list_active(self.table)

    def run_suite(self, title: str, cases: List[BenchmarkCase], save: bool = True) -> List[BenchmarkResult]:
        """Run a case suite against the current index state and report it"""
        self._require_connection()
        index_names = self.indexes.list_active(self.table)
        self.logger.info(f"Running '{title}' ({len(cases)} cases) with {len(index_names)} secondary indexes")
        results = self.runner.run(cases)
        self.report_sink.report(title, results, index_names)
        if save:
            self.report_sink.save_json()
        return results

    def compare(self, title: str, cases: List[BenchmarkCase],
                descriptors: List[IndexDescriptor] = None) -> Dict[str, List[BenchmarkResult]]:
        """Run the suite without secondary indexes, then with the given set"""
        self._require_connection()
        self.drop_indexes()
        baseline = self.run_suite(f"{title} (without indexes)", cases, save=False)

        self.apply_index_set(descriptors)
        self.schema.analyze_table(self.table)
        indexed = self.run_suite(f"{title} (with indexes)", cases, save=False)

        self.report_sink.report_comparison(title, baseline, indexed)
        self.report_sink.save_json()
        return {'baseline': baseline, 'indexed': indexed}

    def tune(self) -> Dict[str, Any]:
        """Apply session settings and refresh table statistics"""
        self._require_connection()
        applied = self.schema.apply_session_settings(self.config.get('session_settings', []))
        self.schema.analyze_table(self.table)
        self.schema.optimize_table(self.table)
        return {'applied_settings': applied}

    def status(self) -> Dict[str, Any]:
        self._require_connection()
        described = {d.name: str(d) for d in self.indexes.describe_active(self.table)}
        return {
            'table_status': self.schema.table_status(self.table),
            'row_count': self.schema.row_count(self.table),
            'indexes': [described.get(name, name) for name in self.indexes.list_active(self.table)],
        }

    @property
    def log_path(self) -> Optional[str]:
        return str(self.report_sink.log_path)
