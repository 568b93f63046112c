# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

from typing import Optional


class LockException(Exception):
    """Base class for application lock errors."""


class LockConfigurationError(LockException, ValueError):
    def __init__(self, message: str = "Invalid lock configuration"):
        super().__init__(message)


class LockTransportError(LockException):
    """The command round trip to the server failed."""

    def __init__(self, message: str, original_error: Optional[BaseException] = None):
        self.original_error = original_error
        if original_error is not None:
            message = f"{message}: {original_error}"
        super().__init__(message)


class LockArbitrationError(LockException):
    """The server refused the lock request."""

    def __init__(self, message: str, return_code: Optional[int] = None):
        self.return_code = return_code
        super().__init__(message)


class LockedException(LockException):
    def __init__(self, name: Optional[str] = None):
        self.name = name
        if name:
            message = f"Unable to acquire lock '{name}'. It is held by another session."
        else:
            message = "Unable to acquire lock. It is held by another session."
        super().__init__(message)
