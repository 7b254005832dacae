"""
Configuration loading for the index benchmark harness
"""

import copy
import logging
import os
from typing import Dict, Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    'database': {
        'host': 'localhost',
        'port': 3306,
        'user': 'root',
        'password': '',
        'database': 'token_benchmark',
        'table': 'oauth_tokens',
        'connection_timeout': 10,
    },
    'generator': {
        'users_count': 180,
        'clients_count': 18,
        'token_types': ['Bearer', 'Refresh'],
        'access_token_length': [40, 80],
        'refresh_token_length': [32, 64],
        'access_lifetime_hours': [1, 365 * 24],
        'refresh_lifetime_hours': [1, 365 * 7 * 24],
        'revoked_fraction': 0.5,
        'revoke_delay_days': 30,
    },
    'loader': {
        'total_records': 5000000,
        'batch_size': 10000,
        'commit_every': 10,
    },
    'benchmark': {
        'repetitions': 1,
        'show_plans': True,
    },
    'session_settings': [
        "SET SESSION optimizer_switch='mrr=on,mrr_cost_based=off'",
        "SET SESSION optimizer_switch='batched_key_access=on'",
        "SET SESSION join_buffer_size = 4194304",
        "SET SESSION sort_buffer_size = 8388608",
        "SET SESSION read_buffer_size = 2097152",
        "SET SESSION read_rnd_buffer_size = 4194304",
    ],
    'reporting': {
        'logs_dir': 'logs',
        'results_dir': 'results',
        'prefix': 'query-performance',
    },
}

# Environment variables that override the database section
ENV_OVERRIDES = {
    'DB_HOST': 'host',
    'DB_PORT': 'port',
    'DB_USER': 'user',
    'DB_PASSWORD': 'password',
    'DB_DATABASE': 'database',
    'DB_TABLE': 'table',
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str = "config.yaml", environ: Dict[str, str] = None) -> Dict[str, Any]:
    """Load configuration from YAML, merged over the built-in defaults"""
    config = copy.deepcopy(DEFAULT_CONFIG)

    if config_path and os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse config {config_path}: {e}")
            raise
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration in {config_path} must be a mapping")
        config = _merge(config, loaded)
        logger.info(f"Loaded configuration from {config_path}")
    else:
        logger.warning(f"Config file {config_path} not found, using default configuration")

    environ = os.environ if environ is None else environ
    for env_name, key in ENV_OVERRIDES.items():
        if environ.get(env_name):
            config['database'][key] = environ[env_name]
            logger.debug(f"Database {key} overridden by {env_name}")

    config['database']['port'] = int(config['database']['port'])
    return config


def database_settings(config: Dict[str, Any], with_database: bool = True) -> Dict[str, Any]:
    """Build connector keyword arguments from the database section"""
    db = config['database']
    settings = {
        'host': db['host'],
        'port': int(db['port']),
        'user': db['user'],
        'password': db['password'],
        'connection_timeout': db.get('connection_timeout', 10),
        'autocommit': True,
    }
    if with_database:
        settings['database'] = db['database']
    return settings
