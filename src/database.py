"""
Store connection handling
"""

import logging
from typing import Dict, Any

import mysql.connector

from base import ConnectivityError

logger = logging.getLogger(__name__)


def connect(settings: Dict[str, Any]):
    """Open a connection to the store.

    Any failure to connect is fatal for the run and is raised as
    ConnectivityError with the connector's message.
    """
    target = f"{settings.get('host')}:{settings.get('port')}"
    try:
        connection = mysql.connector.connect(**settings)
    except mysql.connector.Error as e:
        logger.error(f"Cannot connect to MySQL at {target}: {e}")
        raise ConnectivityError('connect', f"cannot reach {target}: {e}") from e

    if not connection.is_connected():
        close_quietly(connection)
        raise ConnectivityError('connect', f"connection to {target} was not established")

    logger.info(f"Connected to MySQL at {target}")
    return connection


def close_quietly(connection) -> None:
    """Close a connection, logging instead of raising if it is already broken"""
    if connection is None:
        return
    try:
        connection.close()
        logger.info("Database connection closed.")
    except mysql.connector.Error as e:
        logger.warning(f"Error while closing connection: {e}")
