# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Tests for lock configuration, diagnostics and the SQL command layer.
"""

import logging
import os
import tempfile
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from applock import constants
from applock.core.lock import (
    FileDiagnosticsSink,
    LockConfig,
    LockMode,
    LoggingDiagnosticsSink,
    MutexLock,
    NullDiagnosticsSink,
)
from applock.core.lock.diagnostics import format_trace
from applock.core.lock.statements import (
    ACQUIRE_LOCK,
    ACQUIRE_SAVEPOINT,
    PROBE_LOCK,
    RELEASE_LOCK,
    catalog_pattern,
    describe_return_code,
    run_statement,
    split_return_code,
)
from applock.util.exceptions import LockTransportError
from tests.fake_mssql import FakeLockServer, like_to_regex


@pytest.fixture
def connection():
    """Open a session on a fresh fake server."""
    conn = FakeLockServer().connect()
    yield conn
    conn.close()


# ============================================================================
# Test LockConfig
# ============================================================================

class TestLockConfig:
    """Tests for option parsing and coercion."""

    def test_empty_mapping_gives_defaults(self):
        config = LockConfig.from_mapping(None)

        assert config.mode is LockMode.EXCLUSIVE
        assert config.timeout == 0
        assert config.principal == "public"
        assert not config.diagnostics_enabled
        assert config.diagnostics_sink is None
        assert config.coerced == []

    @pytest.mark.parametrize("mode", ["exclusive", "Read", "", None, 3])
    def test_invalid_mode_coerces_to_exclusive(self, connection, mode):
        """Test that an unknown mode becomes Exclusive."""
        lock = MutexLock("test_mode", connection, {"mode": mode})

        assert lock.valid
        assert lock.mode is LockMode.EXCLUSIVE

    @pytest.mark.parametrize("timeout", ["60", 1.5, None, True, -5, 2 ** 31])
    def test_invalid_timeout_coerces_to_zero(self, connection, timeout):
        """Test that a timeout that is not an integer in range becomes 0."""
        lock = MutexLock("test_timeout", connection, {"mode": "Shared", "timeout": timeout})

        assert lock.valid
        assert lock.timeout == 0
        assert lock.mode is LockMode.SHARED

    def test_wait_forever_is_kept(self):
        config = LockConfig.from_mapping({"timeout": constants.LOCK_WAIT_FOREVER})

        assert config.timeout == -1
        assert config.coerced == []

    def test_coercion_is_logged(self, caplog):
        """Test that each replaced option is logged and listed."""
        with caplog.at_level(logging.WARNING, logger="applock"):
            config = LockConfig.from_mapping({"mode": "Bogus", "timeout": "10"})

        assert config.coerced == ["mode", "timeout"]
        assert "Invalid lock mode 'Bogus'" in caplog.text
        assert "Invalid lock timeout '10'" in caplog.text

    def test_empty_principal_coerces_to_public(self):
        config = LockConfig.from_mapping({"principal": ""})

        assert config.principal == "public"

    def test_key_aliases(self):
        """Test the camelCase and debug* spellings of the options."""
        sink = []
        config = LockConfig.from_mapping({
            "timeoutMillis": 250,
            "diagnosticsEnabled": True,
            "diagnosticsSink": sink,
        })

        assert config.timeout == 250
        assert config.diagnostics_enabled
        assert config.diagnostics_sink is sink

    def test_path_becomes_file_sink(self):
        config = LockConfig.from_mapping({"debug": True, "debugFile": "/tmp/applock.log"})

        assert isinstance(config.diagnostics_sink, FileDiagnosticsSink)
        assert config.diagnostics_sink.path == "/tmp/applock.log"

    def test_invalid_sink_is_dropped(self):
        config = LockConfig.from_mapping({"diagnostics_sink": 42})

        assert config.diagnostics_sink is None
        assert config.coerced == ["diagnostics_sink"]

    @pytest.mark.parametrize("options", [["Shared"], "Shared", 5, ("mode", "Shared")])
    def test_non_mapping_options_give_defaults(self, connection, options):
        """Test that options that are not a mapping never make construction raise."""
        lock = MutexLock("test_non_mapping", connection, options)

        assert lock.valid
        assert lock.mode is LockMode.EXCLUSIVE
        assert lock.timeout == 0
        assert LockConfig.from_mapping(options).coerced == ["options"]

    def test_unknown_keys_are_ignored(self):
        config = LockConfig.from_mapping({"locked": True, "handle": "other"})

        assert config == LockConfig()

    def test_config_instance_is_revalidated(self, connection):
        """Test that a LockConfig built by hand goes through the same coercion."""
        lock = MutexLock("test_instance", connection, LockConfig(mode="Nope", timeout=100))

        assert lock.mode is LockMode.EXCLUSIVE
        assert lock.timeout == 100

    def test_init_resets_previous_configuration(self, connection):
        """Test that re-configuring starts from the defaults."""
        lock = MutexLock("test_reinit", connection, {"mode": "Shared", "timeout": 500})

        assert lock.init({"principal": "dbo"})
        assert lock.mode is LockMode.EXCLUSIVE
        assert lock.timeout == 0
        assert lock.principal == "dbo"

    def test_init_keeps_held_state(self, connection):
        """Test that re-configuring a held lock does not forget the lock."""
        lock = MutexLock("test_reinit_held", connection)
        lock.acquire()

        lock.init({"mode": "Shared"})
        assert lock.locked
        assert not lock.release()


# ============================================================================
# Test Diagnostics
# ============================================================================

class TestDiagnostics:
    """Tests for the diagnostic sinks and trace lines."""

    def test_format_trace(self):
        line = format_trace("acquire", "Returning: True", now=datetime(2026, 10, 19, 14, 3, 7))

        assert line == "19-10-2026: 14:03:07: acquire: Returning: True"

    def test_disabled_by_default(self, connection):
        """Test that no sink receives anything unless diagnostics are enabled."""
        sink = MagicMock()
        lock = MutexLock("test_disabled", connection, {"diagnostics_sink": sink})

        lock.acquire()
        lock.release()

        assert isinstance(lock.diagnostics_sink, NullDiagnosticsSink)
        sink.append.assert_not_called()

    def test_trace_lines(self, connection):
        """Test that the lifecycle is traced to an injected sink."""
        lines = []
        lock = MutexLock("test_trace", connection, {"diagnostics_enabled": True, "diagnostics_sink": lines})

        lock.acquire()
        lock.is_free()
        lock.release()

        text = "\n".join(lines)
        assert "init: initialised lock object" in text
        assert "acquire: Attempting to lock: test_trace" in text
        assert "acquire: SQL=" in text
        assert "acquire: Returning: True" in text
        assert "is_free: num_rows=1" in text
        assert "release: Attempting to unlock: test_trace" in text
        assert "release: Returning: False" in text

    def test_errors_are_traced(self):
        lines = []
        conn = MagicMock()
        conn.cursor.return_value.execute.side_effect = RuntimeError("gone")
        lock = MutexLock("test_trace_error", conn, {"diagnostics_enabled": True, "diagnostics_sink": lines})

        lock.acquire()

        assert any("acquire: Error: Could not query database: gone" in line for line in lines)

    def test_logger_is_default_sink(self, connection, caplog):
        """Test that enabled diagnostics without a sink go to the package logger."""
        with caplog.at_level(logging.DEBUG, logger="applock"):
            lock = MutexLock("test_logger_sink", connection, {"diagnostics_enabled": True})
            lock.acquire()
            lock.release()

        assert isinstance(lock.diagnostics_sink, LoggingDiagnosticsSink)
        assert "Attempting to lock: test_logger_sink" in caplog.text

    def test_file_sink(self, connection):
        """Test that a file sink appends one line per trace."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "mutex_lock_debug.log")
            lock = MutexLock("test_file_sink", connection, {"debug": True, "debugFile": path})
            lock.acquire()
            lock.release()

            with open(path, encoding="utf-8") as f:
                lines = f.read().splitlines()

        assert any(line.endswith("acquire: Attempting to lock: test_file_sink") for line in lines)
        assert all(line[2] == "-" and line[5] == "-" for line in lines)

    def test_failing_sink_does_not_break_lock(self, connection):
        """Test that a sink raising on append never reaches the caller."""
        sink = MagicMock()
        sink.append.side_effect = OSError("disk full")
        lock = MutexLock("test_failing_sink", connection, {"diagnostics_enabled": True, "diagnostics_sink": sink})

        assert lock.acquire()
        assert not lock.release()
        assert lock.errors == []


# ============================================================================
# Test Statements
# ============================================================================

class TestStatements:
    """Tests for the SQL command layer."""

    def test_catalog_pattern(self):
        assert catalog_pattern("nightly") == "%:[[]nightly]:%"

    def test_catalog_pattern_escapes_wildcards(self):
        assert catalog_pattern("a_b%c[d]") == "%:[[]a[_]b[%]c[[]d]]:%"

    def test_catalog_pattern_truncates_to_catalog_length(self):
        name = "n" * 40
        pattern = catalog_pattern(name)

        assert like_to_regex(pattern).match(FakeLockServer.description(name))
        assert "n" * 33 not in pattern

    def test_statements_are_parameterized(self):
        assert ACQUIRE_LOCK.count("?") == 5
        assert RELEASE_LOCK.count("?") == 3
        assert PROBE_LOCK.count("?") == 1
        assert "sp_getapplock" in ACQUIRE_LOCK
        assert "ROLLBACK TRAN" in ACQUIRE_LOCK
        assert "sp_releaseapplock" in RELEASE_LOCK

    @pytest.mark.parametrize("statement", [ACQUIRE_LOCK, RELEASE_LOCK])
    def test_session_options_stay_scoped(self, statement):
        """Test that SET options only change inside the sp_executesql call."""
        assert statement.startswith("EXEC sp_executesql N'SET NOCOUNT ON;")
        assert statement.count("SET NOCOUNT ON") == 1
        assert "XACT_ABORT" not in statement
        # every quote inside the body is doubled
        body = statement[len("EXEC sp_executesql N'"):statement.index("',\n    N'")]
        assert "'" not in body.replace("''", "")

    def test_acquire_keeps_caller_transaction(self):
        """Test that a refused acquire inside an open transaction only rolls back its savepoint."""
        assert "@@TRANCOUNT" in ACQUIRE_LOCK
        assert f"SAVE TRANSACTION {ACQUIRE_SAVEPOINT};" in ACQUIRE_LOCK
        assert f"ROLLBACK TRANSACTION {ACQUIRE_SAVEPOINT};" in ACQUIRE_LOCK
        assert "BEGIN CATCH" in ACQUIRE_LOCK
        assert "THROW;" in ACQUIRE_LOCK
        # only the two branches for a transaction this batch opened roll back fully
        assert ACQUIRE_LOCK.count("ROLLBACK TRANSACTION;") == 2

    def test_split_return_code(self):
        rows = [(0, "APPLICATION", "Exclusive", "0:[x]:(1)"), (0, "APPLICATION", "Shared", "0:[x]:(1)")]

        return_code, matches = split_return_code(rows)
        assert return_code == 0
        assert matches == [("APPLICATION", "Exclusive", "0:[x]:(1)"), ("APPLICATION", "Shared", "0:[x]:(1)")]

    def test_split_return_code_without_catalog_rows(self):
        assert split_return_code([(-1, None, None, None)]) == (-1, [])
        assert split_return_code([]) == (None, [])

    def test_describe_return_code(self):
        assert describe_return_code(1) == "granted after waiting"
        assert describe_return_code(7) == "unexpected return code 7"

    def test_run_statement_success(self, connection):
        result = run_statement(connection, PROBE_LOCK, (catalog_pattern("x"),))

        assert result.ok
        assert result.rows == []
        assert result.error is None
        assert connection.cursors[-1].closed

    def test_run_statement_failure(self):
        conn = MagicMock()
        conn.cursor.side_effect = RuntimeError("login timeout")

        result = run_statement(conn, PROBE_LOCK, ("%",))
        assert not result.ok
        assert isinstance(result.error, LockTransportError)
        assert isinstance(result.error.original_error, RuntimeError)
        assert str(result.error) == "Could not query database: login timeout"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
