# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""Named locks arbitrated by SQL Server application locks."""

from applock.core.lock import (
    BaseLock,
    HeldState,
    LockConfig,
    LockHandle,
    LockMode,
    MutexLock,
    create_lock,
    get_connection,
)
from applock.util.exceptions import (
    LockArbitrationError,
    LockConfigurationError,
    LockedException,
    LockException,
    LockTransportError,
)

__version__ = "0.1.0"

__all__ = [
    "BaseLock",
    "HeldState",
    "LockConfig",
    "LockHandle",
    "LockMode",
    "MutexLock",
    "create_lock",
    "get_connection",
    "LockException",
    "LockConfigurationError",
    "LockTransportError",
    "LockArbitrationError",
    "LockedException",
]
