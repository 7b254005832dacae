#!/usr/bin/env python3
"""
Index Benchmark Harness
Provisions a MySQL token table, bulk loads synthetic rows and compares
query latency with and without secondary indexes
"""

import sys
import argparse
import logging
from pathlib import Path

import yaml
import mysql.connector

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from base import HarnessError, ConnectivityError, LoadError
from config import load_config
from harness import IndexBenchmarkHarness
from indexes import DEFAULT_INDEX_SET, load_index_set
from runner import load_cases

# --load given without a COUNT
CONFIGURED_TOTAL = 'configured'


def setup_logging(log_level="INFO"):
    """Setup logging configuration"""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler('harness.log')
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='MySQL Index Benchmark Harness')
    parser.add_argument('--config', '-c', type=str, default='config.yaml',
                        help='Configuration file path')
    parser.add_argument('--setup', action='store_true',
                        help='Create the database and table and drop all secondary indexes')
    parser.add_argument('--reset', action='store_true',
                        help='Drop and recreate the token table (deletes all rows)')
    parser.add_argument('--load', type=int, nargs='?', const=CONFIGURED_TOTAL, metavar='COUNT',
                        help='Bulk load synthetic records (default: loader.total_records)')
    parser.add_argument('--batch-size', type=int,
                        help='Records per INSERT batch (default: loader.batch_size)')
    parser.add_argument('--add-indexes', nargs='?', const='', metavar='INDEX_FILE',
                        help='Apply an index set recipe (default: built-in optimized set)')
    parser.add_argument('--drop-indexes', action='store_true',
                        help='Drop all secondary indexes')
    parser.add_argument('--list-indexes', action='store_true',
                        help='List active secondary indexes')
    parser.add_argument('--run', type=str, metavar='CASES_FILE',
                        help='Run a benchmark case recipe against the current index state')
    parser.add_argument('--compare', type=str, metavar='CASES_FILE',
                        help='Run a case recipe without and then with an index set')
    parser.add_argument('--index-set', type=str, metavar='INDEX_FILE',
                        help='Index set recipe used by --compare (default: built-in optimized set)')
    parser.add_argument('--tune', action='store_true',
                        help='Apply session settings and ANALYZE/OPTIMIZE the table')
    parser.add_argument('--status', action='store_true',
                        help='Show table size, row count and indexes')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    return parser


def _index_set(path):
    return load_index_set(path) if path else DEFAULT_INDEX_SET


def main(argv=None):
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = "DEBUG" if args.verbose else "INFO"
    setup_logging(log_level)

    logger = logging.getLogger(__name__)
    logger.info("Starting Index Benchmark Harness")

    try:
        config = load_config(args.config)
        with IndexBenchmarkHarness(config) as harness:
            harness.open(create_database=args.setup)

            if args.setup:
                dropped = harness.setup()
                print(f"✅ Table {config['database']['table']} ready without secondary indexes"
                      f" ({len(dropped)} dropped)")

            elif args.reset:
                harness.reset()
                print(f"✅ Table {config['database']['table']} recreated")

            elif args.load is not None:
                total = None if args.load == CONFIGURED_TOTAL else args.load
                summary = harness.load(total, args.batch_size)
                print(f"✅ Inserted {summary.inserted} records in {summary.batches} batches "
                      f"({summary.elapsed:.2f}s, {summary.rows_per_second:.0f} rows/s)")

            elif args.add_indexes is not None:
                results = harness.apply_index_set(_index_set(args.add_indexes))
                for result in results:
                    if result.created:
                        print(f"  ✅ {result.name} created in {result.elapsed_ms:.2f} ms")
                    else:
                        print(f"  ⚠️  {result.name} already exists")

            elif args.drop_indexes:
                dropped = harness.drop_indexes()
                print(f"✅ Dropped {len(dropped)} indexes: {', '.join(dropped) or 'none'}")

            elif args.list_indexes:
                names = harness.active_indexes()
                print("Active secondary indexes:")
                if not names:
                    print("  (none)")
                for name in names:
                    print(f"  - {name}")

            elif args.run:
                suite = load_cases(args.run)
                harness.run_suite(suite['title'], suite['cases'])
                print(f"\nLog file saved to: {harness.log_path}")

            elif args.compare:
                suite = load_cases(args.compare)
                harness.compare(suite['title'], suite['cases'], _index_set(args.index_set))
                print(f"\nLog file saved to: {harness.log_path}")

            elif args.tune:
                tuned = harness.tune()
                print(f"✅ Applied {len(tuned['applied_settings'])} session settings and refreshed statistics")

            elif args.status:
                status = harness.status()
                table_status = status['table_status']
                print(f"Table {config['database']['table']} statistics:")
                print(f"  Rows: {status['row_count']}")
                if table_status:
                    print(f"  Data Size: {table_status['data_mb']:.2f} MB")
                    print(f"  Index Size: {table_status['index_mb']:.2f} MB")
                    print(f"  Engine: {table_status['engine']}")
                print("  Indexes:")
                for index in status['indexes'] or ['(none)']:
                    print(f"    - {index}")

            else:
                parser.print_help()

    except ConnectivityError as e:
        logger.error(f"Cannot reach the database: {e}")
        print(f"❌ {e}")
        return 1
    except LoadError as e:
        logger.error(f"Load failed with {e.committed} records committed: {e}")
        print(f"❌ {e} ({e.committed} records committed)")
        return 1
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML: {e}")
        print(f"❌ Invalid YAML: {e}")
        return 1
    except (HarnessError, ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        print(f"❌ {e}")
        return 1
    except mysql.connector.Error as e:
        logger.error(f"MySQL error: {e}")
        print(f"\n❌ Error: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
