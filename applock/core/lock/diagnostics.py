# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Diagnostic sinks receiving the timestamped trace lines of a lock handle.
"""

import logging
import os
import threading
from datetime import datetime
from typing import Optional, Protocol, Union, runtime_checkable

from applock import constants
from applock.client.log import logger as package_logger


@runtime_checkable
class DiagnosticsSink(Protocol):
    """Anything with an ``append(line)`` method."""

    def append(self, line: str) -> None:
        ...


def format_trace(operation: str, message: str, now: Optional[datetime] = None) -> str:
    """Format one trace line, e.g. ``19-10-2026: 14:03:07: acquire: Returning: True``."""
    now = now or datetime.now()
    return f"{now.strftime(constants.DIAGNOSTICS_TIME_FORMAT)}: {operation}: {message}"


class NullDiagnosticsSink:
    """Discards every line."""

    def append(self, line: str) -> None:
        pass


class FileDiagnosticsSink:
    """Appends trace lines to a text file.

    The file is opened per line so several handles, or several processes,
    can share one trace file.

    Args:
        path: Path of the trace file. Parent directories must exist.
        encoding: Text encoding of the file (default: utf-8).
    """

    def __init__(self, path: Union[str, os.PathLike], encoding: str = "utf-8"):
        self.path = os.fspath(path)
        self.encoding = encoding
        self._write_lock = threading.Lock()

    def append(self, line: str) -> None:
        with self._write_lock:
            with open(self.path, "a", encoding=self.encoding) as f:
                f.write(line.rstrip("\n") + "\n")

    def __repr__(self):
        return f"FileDiagnosticsSink({self.path!r})"


class LoggingDiagnosticsSink:
    """Forwards trace lines to a logger."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self.logger = logger or package_logger
        self.level = level

    def append(self, line: str) -> None:
        self.logger.log(self.level, line)
