# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
T-SQL batches for SQL Server application locks and the command wrapper that runs them.

Every batch is parameterized with qmark placeholders and reads back rows of
``sys.dm_tran_locks``. The acquire and release batches left join the catalog
to the stored procedure's return code so the code is always the first column
of the first row, even when no lock is registered. Both run through
``sp_executesql`` so they leave the caller's session options and any open
transaction of the caller untouched.
"""

import contextlib
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from applock import constants
from applock.util.exceptions import LockTransportError

_CATALOG_JOIN = f"""
SELECT r.return_code, l.resource_type, l.request_mode, l.resource_description
FROM (SELECT @rc AS return_code) AS r
LEFT JOIN sys.dm_tran_locks AS l
    ON l.resource_type = '{constants.APPLICATION_RESOURCE_TYPE}'
    AND l.resource_description LIKE @pattern;"""

ACQUIRE_SAVEPOINT = "applock_acquire"


def _scoped(body: str, parameters: Sequence[str]) -> str:
    """Wrap a batch in sp_executesql, one qmark placeholder per parameter.

    SET options changed inside sp_executesql revert when it returns, so the
    caller's session keeps its own settings.
    """
    escaped = body.replace("'", "''")
    definitions = ", ".join(parameters)
    placeholders = ", ".join("?" for _ in parameters)
    return f"EXEC sp_executesql N'{escaped}',\n    N'{definitions}',\n    {placeholders};"


# Inside a caller's transaction only the savepoint is rolled back.
_ACQUIRE_BODY = f"""SET NOCOUNT ON;
DECLARE @rc INT = {constants.APPLOCK_ERROR};
DECLARE @outer_tran INT = @@TRANCOUNT;
BEGIN TRY
    IF @outer_tran = 0
    BEGIN
        BEGIN TRANSACTION;
    END
    ELSE
    BEGIN
        SAVE TRANSACTION {ACQUIRE_SAVEPOINT};
    END
    EXEC @rc = sp_getapplock
        @Resource = @resource,
        @LockMode = @mode,
        @LockOwner = '{constants.LOCK_OWNER}',
        @LockTimeout = @timeout,
        @DbPrincipal = @principal;
    IF @rc IN ({constants.APPLOCK_GRANTED}, {constants.APPLOCK_GRANTED_AFTER_WAIT})
    BEGIN
        IF @outer_tran = 0
        BEGIN
            COMMIT TRANSACTION;
        END
    END
    ELSE
    BEGIN
        IF @outer_tran = 0
        BEGIN
            ROLLBACK TRANSACTION;
        END
        ELSE
        BEGIN
            ROLLBACK TRANSACTION {ACQUIRE_SAVEPOINT};
        END
    END
END TRY
BEGIN CATCH
    IF @outer_tran = 0 AND @@TRANCOUNT > 0
    BEGIN
        ROLLBACK TRANSACTION;
    END
    ELSE IF @outer_tran > 0 AND XACT_STATE() = 1
    BEGIN
        ROLLBACK TRANSACTION {ACQUIRE_SAVEPOINT};
    END;
    THROW;
END CATCH;""" + _CATALOG_JOIN

# Params: resource, mode, timeout, principal, pattern
ACQUIRE_LOCK = _scoped(_ACQUIRE_BODY, [
    "@resource NVARCHAR(255)",
    "@mode NVARCHAR(32)",
    "@timeout INT",
    "@principal SYSNAME",
    "@pattern NVARCHAR(400)",
])

_RELEASE_BODY = f"""SET NOCOUNT ON;
DECLARE @rc INT = {constants.APPLOCK_ERROR};
IF APPLOCK_MODE(@principal, @resource, '{constants.LOCK_OWNER}') <> 'NoLock'
BEGIN
    EXEC @rc = sp_releaseapplock
        @Resource = @resource,
        @LockOwner = '{constants.LOCK_OWNER}',
        @DbPrincipal = @principal;
END""" + _CATALOG_JOIN

# Params: resource, principal, pattern
RELEASE_LOCK = _scoped(_RELEASE_BODY, [
    "@resource NVARCHAR(255)",
    "@principal SYSNAME",
    "@pattern NVARCHAR(400)",
])

# Params: pattern
PROBE_LOCK = f"""SELECT resource_type, request_mode, resource_description
FROM sys.dm_tran_locks
WHERE resource_type = '{constants.APPLICATION_RESOURCE_TYPE}'
    AND resource_description LIKE ?;"""


RETURN_CODE_MESSAGES = {
    constants.APPLOCK_GRANTED: "granted",
    constants.APPLOCK_GRANTED_AFTER_WAIT: "granted after waiting",
    constants.APPLOCK_TIMEOUT: "timed out",
    constants.APPLOCK_CANCELLED: "cancelled",
    constants.APPLOCK_DEADLOCK_VICTIM: "chosen as deadlock victim",
    constants.APPLOCK_ERROR: "parameter validation or other call error",
}


def describe_return_code(code: Optional[int]) -> str:
    return RETURN_CODE_MESSAGES.get(code, f"unexpected return code {code}")


def _escape_like(value: str) -> str:
    return "".join(f"[{c}]" if c in "[%_" else c for c in value)


def catalog_pattern(name: str) -> str:
    """LIKE pattern matching the catalog description of an application lock.

    The server describes application locks as
    ``<principal id>:[<first 32 characters of the name>]:(<hash>)``.
    """
    prefix = name[:constants.LOCK_DESCRIPTION_NAME_LENGTH]
    return f"%:[[]{_escape_like(prefix)}]:%"


@dataclass
class CommandResult:
    """Outcome of one batch: either rows or the error that prevented them."""
    ok: bool
    rows: List[Tuple] = field(default_factory=list)
    error: Optional[Exception] = None


def split_return_code(rows: Sequence[Tuple]) -> Tuple[Optional[int], List[Tuple]]:
    """Split left-joined rows into the return code and the matching catalog rows."""
    if not rows:
        return None, []
    return_code = rows[0][0]
    matches = [tuple(row[1:]) for row in rows if row[1] is not None]
    return return_code, matches


def run_statement(connection, statement: str, params: Sequence = ()) -> CommandResult:
    """Execute one batch on a DB-API connection and fetch all of its rows.

    Never raises: driver errors come back as a failed result wrapping a
    ``LockTransportError``.
    """
    cursor = None
    try:
        cursor = connection.cursor()
        cursor.execute(statement, tuple(params))
        rows = [tuple(row) for row in cursor.fetchall()]
    except Exception as e:
        return CommandResult(ok=False, error=LockTransportError("Could not query database", e))
    finally:
        if cursor is not None:
            with contextlib.suppress(Exception):
                cursor.close()
    return CommandResult(ok=True, rows=rows)
