# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Abstract base class for server-held named locks.
"""

from abc import ABC, abstractmethod

from applock.util.exceptions import LockedException


class BaseLock(ABC):
    """Abstract base class for named locks.

    The lock operations are total: they report their outcome as a boolean and
    never raise. Only the context manager protocol raises, because a ``with``
    block has no other way to tell its body that the lock was not granted.

    Attributes:
        name: The name of the locked resource.
    """

    def __init__(self, name: str):
        """Initialize the lock.

        Args:
            name: The name of the locked resource.
        """
        self.name = name

    def __enter__(self):
        """Context manager entry - acquires the lock.

        Raises:
            LockedException: If the lock was not granted.
        """
        if not self.acquire():
            raise LockedException(self.name)
        return self

    def __exit__(self, *args, **kwargs):
        """Context manager exit - releases the lock."""
        self.release()

    @property
    @abstractmethod
    def locked(self) -> bool:
        """Whether this handle holds the lock."""

    @abstractmethod
    def acquire(self) -> bool:
        """Acquire the lock.

        Returns:
            True if the lock is held afterwards.
        """

    @abstractmethod
    def release(self) -> bool:
        """Release the lock.

        This method should be safe to call even if the lock is not held.

        Returns:
            True if the lock is still held afterwards.
        """

    @abstractmethod
    def is_free(self) -> bool:
        """Whether nobody holds the lock right now. Advisory only."""
