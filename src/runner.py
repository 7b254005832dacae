"""
Benchmark Runner - times query suites and captures their plans
"""

import time
import statistics
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import yaml
import mysql.connector

from base import BaseModule, quote_identifier


@dataclass
class BenchmarkCase:
    description: str
    query: str
    params: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BenchmarkCase':
        if not data.get('description') or not data.get('query'):
            raise ValueError(f"Benchmark case needs a description and a query: {data}")
        return cls(
            description=str(data['description']),
            query=str(data['query']).strip(),
            params=list(data.get('params') or []),
        )


@dataclass
class BenchmarkResult:
    description: str
    execution_time_ms: Optional[float]
    row_count: Optional[int]
    plan: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    samples_ms: List[float] = field(default_factory=list)
    query: str = ''
    params: List[Any] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'description': self.description,
            'execution_time_ms': self.execution_time_ms,
            'row_count': self.row_count,
            'samples_ms': self.samples_ms,
            'error': self.error,
            'query': self.query,
            'params': [str(p) for p in self.params],
            'plan': [{k: (v if isinstance(v, (int, float)) or v is None else str(v)) for k, v in row.items()}
                     for row in self.plan],
        }


def fastest(results: List[BenchmarkResult]) -> Optional[BenchmarkResult]:
    """The successful result with the lowest time; the earliest wins a tie"""
    best = None
    for result in results:
        if not result.succeeded:
            continue
        if best is None or result.execution_time_ms < best.execution_time_ms:
            best = result
    return best


def load_cases(file_path: str) -> Dict[str, Any]:
    """Load a case suite recipe: {'title': str, 'cases': [...]}"""
    with open(file_path, 'r') as f:
        recipe = yaml.safe_load(f)

    if not isinstance(recipe, dict) or not isinstance(recipe.get('cases'), list):
        raise ValueError(f"Case recipe {file_path} must contain a 'cases' list")

    return {
        'title': recipe.get('title', file_path),
        'cases': [BenchmarkCase.from_dict(case) for case in recipe['cases']],
    }


class BenchmarkRunner(BaseModule):
    """Runs benchmark cases one after another on a single connection"""

    def __init__(self, config: Dict[str, Any], connection):
        super().__init__(config, connection)
        self.table = config['database']['table']
        self.repetitions = max(int(config.get('benchmark', {}).get('repetitions', 1)), 1)

    def render_query(self, case: BenchmarkCase) -> str:
        """Substitute the validated table name into the query template"""
        return case.query.replace('{table}', quote_identifier(self.table, 'table'))

    def explain(self, query: str, params: List[Any]) -> List[Dict[str, Any]]:
        return self._execute(f"EXPLAIN {query}", params, dictionary=True)

    def time_query(self, query: str, params: List[Any]):
        """Run the query once; returns (elapsed_ms, row_count) with all rows fetched"""
        cursor = self.connection.cursor()
        try:
            start = time.perf_counter()
            cursor.execute(query, params)
            rows = cursor.fetchall() if cursor.with_rows else []
            elapsed_ms = (time.perf_counter() - start) * 1000
        finally:
            cursor.close()
        return elapsed_ms, len(rows)

    def run_case(self, case: BenchmarkCase) -> BenchmarkResult:
        query = self.render_query(case)
        self.logger.info(f"=== {case.description} ===")
        self.logger.debug(f"Query: {query} Parameters: {case.params}")

        try:
            plan = self.explain(query, case.params)
            samples = []
            row_count = 0
            for _ in range(self.repetitions):
                elapsed_ms, row_count = self.time_query(query, case.params)
                samples.append(elapsed_ms)
        except mysql.connector.Error as e:
            self.logger.error(f"Case '{case.description}' failed: {e}")
            return BenchmarkResult(
                description=case.description,
                execution_time_ms=None,
                row_count=None,
                error=str(e),
                query=query,
                params=list(case.params),
            )

        execution_time_ms = statistics.mean(samples)
        self.logger.info(f"Results: {row_count} rows returned in {execution_time_ms:.2f} ms")
        return BenchmarkResult(
            description=case.description,
            execution_time_ms=execution_time_ms,
            row_count=row_count,
            plan=plan,
            samples_ms=samples,
            query=query,
            params=list(case.params),
        )

    def run(self, cases: List[BenchmarkCase]) -> List[BenchmarkResult]:
        """Run every case in input order; a failing case does not stop the rest"""
        results = [self.run_case(case) for case in cases]
        failed = sum(1 for r in results if not r.succeeded)
        if failed:
            self.logger.warning(f"{failed} of {len(results)} cases failed")
        return results
