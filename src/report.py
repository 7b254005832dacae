"""
Report Sink - renders benchmark results and persists them
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional

from runner import BenchmarkResult, fastest


def render_plan(plan: List[Dict[str, Any]]) -> List[str]:
    """Format EXPLAIN rows as a '|' separated table"""
    if not plan:
        return ["(no plan rows)"]
    columns = list(plan[0].keys())
    lines = [
        " | ".join(columns),
        " | ".join("----------" for _ in columns),
    ]
    for row in plan:
        lines.append(" | ".join("" if row.get(col) is None else str(row.get(col)) for col in columns))
    return lines


def render_results(results: List[BenchmarkResult]) -> List[str]:
    """Comparison table of description, execution time and row count"""
    width = max([len(r.description) for r in results] + [len("Description")])
    lines = [
        f"  {'Description':<{width}} | {'Time (ms)':>10} | {'Rows':>8}",
        f"  {'-' * width}-+-{'-' * 10}-+-{'-' * 8}",
    ]
    for result in results:
        if result.succeeded:
            lines.append(f"  {result.description:<{width}} | {result.execution_time_ms:>10.2f} | {result.row_count:>8}")
        else:
            lines.append(f"  {result.description:<{width}} | {'FAILED':>10} | {'-':>8}")
    return lines


def render_comparison(baseline: List[BenchmarkResult], indexed: List[BenchmarkResult]) -> List[str]:
    """Side by side timing of the same cases without and with indexes"""
    width = max([len(r.description) for r in baseline] + [len("Description")])
    lines = [
        f"  {'Description':<{width}} | {'Without (ms)':>12} | {'With (ms)':>10} | {'Speedup':>8}",
        f"  {'-' * width}-+-{'-' * 12}-+-{'-' * 10}-+-{'-' * 8}",
    ]
    for before, after in zip(baseline, indexed):
        without = f"{before.execution_time_ms:.2f}" if before.succeeded else "FAILED"
        with_index = f"{after.execution_time_ms:.2f}" if after.succeeded else "FAILED"
        if before.succeeded and after.succeeded and after.execution_time_ms > 0:
            speedup = f"{before.execution_time_ms / after.execution_time_ms:.1f}x"
        else:
            speedup = "-"
        lines.append(f"  {before.description:<{width}} | {without:>12} | {with_index:>10} | {speedup:>8}")
    return lines


class ReportSink:
    """Prints reports and appends them to a log file named after the harness start time"""

    def __init__(self, config: Dict[str, Any], started_at: datetime = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        reporting = config.get('reporting', {})
        self.show_plans = bool(config.get('benchmark', {}).get('show_plans', True))
        self.started_at = started_at or datetime.now()

        prefix = reporting.get('prefix', 'query-performance')
        timestamp = self.started_at.strftime('%Y-%m-%dT%H-%M-%S')
        self.log_path = Path(reporting.get('logs_dir', 'logs')) / f"{prefix}-{timestamp}.log"
        self.results_path = Path(reporting.get('results_dir', 'results')) / f"{prefix}-{timestamp}.json"
        self._runs: List[Dict[str, Any]] = []

    def write(self, lines: List[str]) -> None:
        """Print lines and append them to the log artifact"""
        text = "\n".join(lines)
        print(text)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, 'a') as f:
            f.write(text + "\n")

    def report(self, title: str, results: List[BenchmarkResult], index_names: List[str]) -> Optional[BenchmarkResult]:
        """Render one suite run; returns the fastest result"""
        status = f"WITH indexes ({', '.join(index_names)})" if index_names else "WITHOUT indexes"
        lines = [
            "",
            f"=== {title} ===",
            f"Run at: {datetime.now().isoformat()}",
            f"Index status: {status}",
            "",
        ]

        if self.show_plans:
            for result in results:
                if not result.succeeded:
                    continue
                lines.append(f"--- {result.description} ---")
                lines.append(f"Query: {result.query}")
                lines.append(f"Parameters: {json.dumps([str(p) for p in result.params])}")
                lines.append("Execution Plan (EXPLAIN):")
                lines.extend(render_plan(result.plan))
                lines.append("")

        lines.append("=== Performance Comparison ===")
        lines.extend(render_results(results))

        failures = [r for r in results if not r.succeeded]
        if failures:
            lines.append("")
            lines.append(f"Failed cases ({len(failures)}):")
            for result in failures:
                lines.append(f"  {result.description}: {result.error}")

        best = fastest(results)
        lines.append("")
        if best:
            lines.append(f'The fastest query was: "{best.description}" at {best.execution_time_ms:.2f} ms')
        else:
            lines.append("No query completed successfully.")

        self.write(lines)
        self._runs.append({
            'title': title,
            'indexes': list(index_names),
            'fastest': best.description if best else None,
            'results': [r.to_dict() for r in results],
        })
        return best

    def report_comparison(self, title: str, baseline: List[BenchmarkResult], indexed: List[BenchmarkResult]) -> None:
        self.write(["", f"=== {title}: without vs. with indexes ===", *render_comparison(baseline, indexed)])

    def save_json(self) -> Path:
        """Write every run reported so far to the JSON results file"""
        self.results_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.results_path, 'w') as f:
            json.dump({
                'started_at': self.started_at.isoformat(),
                'runs': self._runs,
            }, f, indent=2)
        self.logger.info(f"Results saved to {self.results_path}")
        return self.results_path
