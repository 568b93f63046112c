# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Lock module for applock.

Provides named locks arbitrated by SQL Server application locks
(``sp_getapplock``), for coordinating work across processes and hosts.
"""

from applock.core.lock.base import BaseLock
from applock.core.lock.config import HeldState, LockConfig, LockMode
from applock.core.lock.diagnostics import (
    DiagnosticsSink,
    FileDiagnosticsSink,
    LoggingDiagnosticsSink,
    NullDiagnosticsSink,
)
from applock.core.lock.mutex_lock import MutexLock
from applock.core.lock.utils import create_lock, get_connection

# The handle bound to one resource name
LockHandle = MutexLock

__all__ = [
    "BaseLock",
    "MutexLock",
    "LockHandle",
    "LockConfig",
    "LockMode",
    "HeldState",
    "DiagnosticsSink",
    "FileDiagnosticsSink",
    "LoggingDiagnosticsSink",
    "NullDiagnosticsSink",
    "create_lock",
    "get_connection",
]
