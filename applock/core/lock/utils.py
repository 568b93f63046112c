# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Factory functions for application locks.
"""

from typing import Mapping, Optional, Union

from applock import constants
from applock.core.lock.config import LockConfig
from applock.core.lock.mutex_lock import MutexLock
from applock.util.exceptions import LockConfigurationError


def get_connection(connection_string: Optional[str] = None):
    """Open a pyodbc connection for application locks.

    Args:
        connection_string: ODBC connection string. Defaults to
            ``applock.constants.MSSQL_CONNECTION_STRING``.

    Raises:
        LockConfigurationError: If no connection string is configured.
    """
    connection_string = connection_string or getattr(constants, "MSSQL_CONNECTION_STRING", None)
    if not connection_string:
        raise LockConfigurationError(
            "No connection string given and APPLOCK_CONNECTION_STRING is not set"
        )
    import pyodbc

    return pyodbc.connect(connection_string, autocommit=constants.MSSQL_AUTOCOMMIT)


def create_lock(
    name: str,
    connection=None,
    config: Union[Mapping, LockConfig, None] = None,
) -> MutexLock:
    """Create a lock, opening a connection from configuration if none is given.

    Args:
        name: Name of the locked resource.
        connection: DB-API connection. A pyodbc connection is opened with
            ``get_connection`` if None.
        config: Lock options, see ``MutexLock``.

    Returns:
        A usable ``MutexLock``.

    Raises:
        LockConfigurationError: If the lock cannot be configured.
    """
    if not name:
        raise LockConfigurationError("Unknown lock handle")
    owns_connection = connection is None
    if owns_connection:
        connection = get_connection()
    lock = MutexLock(name, connection, config)
    if not lock.valid:
        lock.close()
        if owns_connection:
            connection.close()
        raise LockConfigurationError("; ".join(lock.errors) or "Invalid lock configuration")
    return lock
