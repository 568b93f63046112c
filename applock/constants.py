# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

import os

# Lock request defaults
DEFAULT_LOCK_MODE = "Exclusive"
DEFAULT_LOCK_TIMEOUT = 0  # milliseconds, fail immediately
LOCK_WAIT_FOREVER = -1  # sp_getapplock waits indefinitely
MAX_LOCK_TIMEOUT = 2 ** 31 - 1  # @LockTimeout is an INT
DEFAULT_DB_PRINCIPAL = "public"
LOCK_OWNER = "Session"
MAX_LOCK_NAME_LENGTH = 255  # @Resource is NVARCHAR(255)

# sys.dm_tran_locks
APPLICATION_RESOURCE_TYPE = "APPLICATION"
LOCK_DESCRIPTION_NAME_LENGTH = 32  # resource names are truncated in the catalog

# sp_getapplock / sp_releaseapplock return codes
APPLOCK_GRANTED = 0
APPLOCK_GRANTED_AFTER_WAIT = 1
APPLOCK_TIMEOUT = -1
APPLOCK_CANCELLED = -2
APPLOCK_DEADLOCK_VICTIM = -3
APPLOCK_ERROR = -999
APPLOCK_SUCCESS_CODES = (APPLOCK_GRANTED, APPLOCK_GRANTED_AFTER_WAIT)

# Diagnostics
DIAGNOSTICS_TIME_FORMAT = "%d-%m-%Y: %H:%M:%S"

# Connection used by create_lock when none is given
MSSQL_CONNECTION_STRING = os.environ.get("APPLOCK_CONNECTION_STRING")
MSSQL_AUTOCOMMIT = True
