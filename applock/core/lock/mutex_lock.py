# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
SQL Server application lock bound to one resource name and one connection.
"""

from typing import List, Mapping, Optional, Sequence, Union

from applock import constants
from applock.client.log import logger
from applock.core.lock.base import BaseLock
from applock.core.lock.config import HeldState, LockConfig, LockMode
from applock.core.lock.diagnostics import (
    DiagnosticsSink,
    LoggingDiagnosticsSink,
    NullDiagnosticsSink,
    format_trace,
)
from applock.core.lock.statements import (
    ACQUIRE_LOCK,
    PROBE_LOCK,
    RELEASE_LOCK,
    CommandResult,
    catalog_pattern,
    describe_return_code,
    run_statement,
    split_return_code,
)
from applock.util.exceptions import (
    LockArbitrationError,
    LockConfigurationError,
    LockException,
)


class MutexLock(BaseLock):
    """Session scoped application lock held by SQL Server.

    The server arbitrates the lock: ``acquire`` asks ``sp_getapplock`` for it
    and confirms the grant against ``sys.dm_tran_locks``, ``release`` hands it
    back with ``sp_releaseapplock``, and ``is_free`` only looks at the catalog.
    None of them raise. Failures are appended to ``errors`` and reported
    through the returned boolean and ``state``.

    Example:
        >>> import pyodbc
        >>> connection = pyodbc.connect(CONNECTION_STRING, autocommit=True)
        >>> lock = MutexLock("nightly-import", connection, {"timeout": 5000})
        >>> if lock.acquire():
        ...     try:
        ...         run_import()
        ...     finally:
        ...         lock.release()

        or, raising ``LockedException`` when the lock is not granted:

        >>> with MutexLock("nightly-import", connection):
        ...     run_import()

    A handle that is garbage collected or closed while holding the lock
    releases it once. Operations on one handle must not run concurrently.

    Args:
        name: Name of the locked resource.
        connection: DB-API connection to the server. The caller owns it.
        config: Optional mapping or ``LockConfig`` with the keys ``mode``,
            ``timeout`` (milliseconds), ``principal``, ``diagnostics_enabled``
            and ``diagnostics_sink``.
    """

    def __init__(
        self,
        name: str,
        connection,
        config: Union[Mapping, LockConfig, None] = None,
    ):
        super().__init__(name)
        self.connection = connection
        self.errors: List[str] = []
        self.valid = False
        self._state = HeldState.NOT_HELD
        self._closed = False
        self.init(config)

    def init(self, config: Union[Mapping, LockConfig, None] = None) -> bool:
        """Reset the options to their defaults, then apply ``config``.

        The name, connection, held state and error history are kept.

        Returns:
            Whether the handle is usable.
        """
        self._clear()
        self._config = LockConfig.from_mapping(config)
        self._sink = self._resolve_sink()
        self.valid = self._validate()
        self._trace("init", f"initialised lock object = {self!r}")
        return self.valid

    def _clear(self):
        self._config = LockConfig()
        self._sink: DiagnosticsSink = NullDiagnosticsSink()
        self.valid = False

    def _resolve_sink(self) -> DiagnosticsSink:
        if not self._config.diagnostics_enabled:
            return NullDiagnosticsSink()
        if self._config.diagnostics_sink is None:
            return LoggingDiagnosticsSink()
        return self._config.diagnostics_sink

    def _validate(self) -> bool:
        if not isinstance(self.name, str) or not self.name:
            self._record("init", LockConfigurationError("Unknown lock handle"))
            return False
        if len(self.name) > constants.MAX_LOCK_NAME_LENGTH:
            self._record(
                "init",
                LockConfigurationError(
                    f"Lock name must be at most {constants.MAX_LOCK_NAME_LENGTH} characters"
                ),
            )
            return False
        if self.connection is None or not callable(getattr(self.connection, "cursor", None)):
            self._record("init", LockConfigurationError("Unknown database resource"))
            return False
        return True

    @property
    def mode(self) -> LockMode:
        return self._config.mode

    @property
    def timeout(self) -> int:
        """Lock timeout in milliseconds."""
        return self._config.timeout

    @property
    def principal(self) -> str:
        return self._config.principal

    @property
    def diagnostics_enabled(self) -> bool:
        return self._config.diagnostics_enabled

    @property
    def diagnostics_sink(self) -> DiagnosticsSink:
        return self._sink

    @property
    def state(self) -> HeldState:
        return self._state

    @property
    def locked(self) -> bool:
        return self._state is HeldState.HELD

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self) -> bool:
        """Request the lock and confirm it in the lock catalog.

        The request runs in its own transaction, committed only when
        ``sp_getapplock`` grants the lock and rolled back otherwise.

        Returns:
            True if the lock is held afterwards.
        """
        if not self._usable("acquire"):
            return False
        self._trace("acquire", f"Attempting to lock: {self.name}")
        params = (self.name, self.mode.value, self.timeout, self.principal, catalog_pattern(self.name))
        result = self._query("acquire", ACQUIRE_LOCK, params)
        if not result.ok:
            self._record("acquire", result.error)
            self._state = HeldState.NOT_HELD
        else:
            return_code, matches = split_return_code(result.rows)
            if return_code in constants.APPLOCK_SUCCESS_CODES and matches:
                self._state = HeldState.HELD
            else:
                self._state = HeldState.NOT_HELD
                if return_code in constants.APPLOCK_SUCCESS_CODES:
                    message = f"Lock '{self.name}' was granted but is missing from the lock catalog"
                else:
                    message = f"Unable to acquire lock '{self.name}': {describe_return_code(return_code)}"
                self._record("acquire", LockArbitrationError(message, return_code))
        self._trace("acquire", f"Returning: {self.locked}")
        return self.locked

    def release(self) -> bool:
        """Release the lock owned by this session and re-read the lock catalog.

        Releasing a lock this session does not hold is a no-op on the server.
        A transport failure leaves the state ``UNKNOWN``; call ``is_free``
        to find out more.

        Returns:
            True if the lock is still registered after the call.
        """
        if not self._usable("release"):
            return False
        self._trace("release", f"Attempting to unlock: {self.name}")
        params = (self.name, self.principal, catalog_pattern(self.name))
        result = self._query("release", RELEASE_LOCK, params)
        if not result.ok:
            self._record("release", result.error)
            self._state = HeldState.UNKNOWN
        else:
            return_code, matches = split_return_code(result.rows)
            if not matches:
                self._state = HeldState.NOT_HELD
            else:
                self._state = HeldState.HELD
                self._record(
                    "release",
                    LockArbitrationError(
                        f"Lock '{self.name}' is still registered after release "
                        f"({len(matches)} catalog row(s), release {describe_return_code(return_code)})",
                        return_code,
                    ),
                )
        self._trace("release", f"Returning: {self.locked}")
        return self.locked

    def is_free(self) -> bool:
        """Whether nobody, this handle included, holds the lock right now.

        The answer can be stale by the time the caller acts on it. Use
        ``acquire`` with a timeout to actually wait for the lock.
        """
        if not self._usable("is_free"):
            return False
        result = self._query("is_free", PROBE_LOCK, (catalog_pattern(self.name),))
        if not result.ok:
            self._record("is_free", result.error)
            if self._state is HeldState.HELD:
                self._state = HeldState.UNKNOWN
            return False
        num_rows = len(result.rows)
        self._trace("is_free", f"num_rows={num_rows}")
        return not self.locked and num_rows == 0

    def close(self):
        """Release the lock if held, or possibly held, and make the handle unusable.

        An ``UNKNOWN`` lock is released too: the release batch is a no-op on
        the server when this session does not hold the lock. The connection
        is left open.
        """
        if self._closed:
            return
        if self._state in (HeldState.HELD, HeldState.UNKNOWN):
            self.release()
        self._closed = True
        self._trace("close", f"closed lock object, state={self._state.value}")

    def __del__(self):
        if not getattr(self, "_closed", True):
            self.close()

    def _usable(self, operation: str) -> bool:
        if self._closed:
            self._record(operation, LockException(f"Lock handle '{self.name}' is closed"))
            return False
        if not self.valid:
            self._record(operation, LockConfigurationError("Lock handle is not configured"))
            return False
        return True

    def _query(self, operation: str, statement: str, params: Sequence) -> CommandResult:
        self._trace(operation, f"SQL={' '.join(statement.split())} params={params!r}")
        result = run_statement(self.connection, statement, params)
        if result.ok:
            self._trace(operation, f"data={result.rows!r}")
        return result

    def _record(self, operation: str, error: Optional[Exception]):
        message = str(error)
        self.errors.append(message)
        logger.warning("%s of lock %r failed: %s", operation, self.name, message)
        self._trace(operation, f"Error: {message}")

    def _trace(self, operation: str, message: str):
        if not self._config.diagnostics_enabled:
            return
        try:
            self._sink.append(format_trace(operation, message))
        except Exception as e:
            logger.warning("Diagnostics sink %r failed: %s", self._sink, e)

    def __repr__(self):
        return (
            f"MutexLock(name={self.name!r}, mode={self.mode.value!r}, timeout={self.timeout}, "
            f"principal={self.principal!r}, state={self._state.value})"
        )
