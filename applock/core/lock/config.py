# SPDX-License-Identifier: MPL-2.0
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# Copyright (c) 2026 Xueling Lin

"""
Lock configuration: modes, held state and the coercion of user supplied options.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from applock import constants
from applock.client.log import logger
from applock.core.lock.diagnostics import DiagnosticsSink, FileDiagnosticsSink


class LockMode(str, Enum):
    """Application lock modes accepted by ``sp_getapplock``."""
    SHARED = "Shared"
    UPDATE = "Update"
    EXCLUSIVE = "Exclusive"
    INTENT_EXCLUSIVE = "IntentExclusive"
    INTENT_SHARED = "IntentShared"


class HeldState(str, Enum):
    """What the handle knows about its own lock."""
    NOT_HELD = "not_held"
    HELD = "held"
    UNKNOWN = "unknown"


# Keys accepted by LockConfig.from_mapping. The camelCase and debug* spellings
# are kept for callers migrating option arrays from the older client.
_KEY_ALIASES = {
    "mode": "mode",
    "timeout": "timeout",
    "timeout_millis": "timeout",
    "timeoutMillis": "timeout",
    "principal": "principal",
    "diagnostics_enabled": "diagnostics_enabled",
    "diagnosticsEnabled": "diagnostics_enabled",
    "debug": "diagnostics_enabled",
    "diagnostics_sink": "diagnostics_sink",
    "diagnosticsSink": "diagnostics_sink",
    "debug_file": "diagnostics_sink",
    "debugFile": "diagnostics_sink",
}


def _default_mode() -> LockMode:
    return LockMode(constants.DEFAULT_LOCK_MODE)


@dataclass
class LockConfig:
    """Typed lock options.

    Attributes:
        mode: Lock mode requested from the server.
        timeout: Milliseconds to wait for the lock. 0 fails immediately,
            ``constants.LOCK_WAIT_FOREVER`` waits indefinitely.
        principal: Database principal the lock is requested for.
        diagnostics_enabled: Whether trace lines are produced.
        diagnostics_sink: Where trace lines go. None with diagnostics enabled
            routes them to the package logger.
        coerced: Names of the options that were replaced by defaults.
    """
    mode: LockMode = field(default_factory=_default_mode)
    timeout: int = constants.DEFAULT_LOCK_TIMEOUT
    principal: str = constants.DEFAULT_DB_PRINCIPAL
    diagnostics_enabled: bool = False
    diagnostics_sink: Optional[DiagnosticsSink] = None
    coerced: List[str] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, options: Union[Mapping[str, Any], "LockConfig", None] = None) -> "LockConfig":
        """Build a config from a plain mapping.

        Invalid values never raise. An unknown mode becomes ``Exclusive``, a
        timeout that is not an integer in range becomes 0, and the name of each
        replaced option is listed in ``coerced``. Options that are not a
        mapping at all give the defaults.
        """
        config = cls()
        if not options:
            return config
        if isinstance(options, LockConfig):
            options = {
                "mode": options.mode,
                "timeout": options.timeout,
                "principal": options.principal,
                "diagnostics_enabled": options.diagnostics_enabled,
                "diagnostics_sink": options.diagnostics_sink,
            }
        elif not isinstance(options, Mapping):
            config._note_coercion("options", options, None)
            return config
        for key, value in options.items():
            attr = _KEY_ALIASES.get(key)
            if attr is None:
                logger.debug("Ignoring unknown lock option %r", key)
                continue
            if attr == "mode":
                config.mode = config._coerce_mode(value)
            elif attr == "timeout":
                config.timeout = config._coerce_timeout(value)
            elif attr == "principal":
                config.principal = config._coerce_principal(value)
            elif attr == "diagnostics_enabled":
                config.diagnostics_enabled = bool(value)
            else:
                config.diagnostics_sink = config._coerce_sink(value)
        return config

    def _coerce_mode(self, value) -> LockMode:
        if isinstance(value, LockMode):
            return value
        try:
            return LockMode(value)
        except ValueError:
            self._note_coercion("mode", value, constants.DEFAULT_LOCK_MODE)
            return _default_mode()

    def _coerce_timeout(self, value) -> int:
        # bool is an int subclass but never a meaningful timeout
        valid = (
            isinstance(value, int)
            and not isinstance(value, bool)
            and (value == constants.LOCK_WAIT_FOREVER or 0 <= value <= constants.MAX_LOCK_TIMEOUT)
        )
        if not valid:
            self._note_coercion("timeout", value, constants.DEFAULT_LOCK_TIMEOUT)
            return constants.DEFAULT_LOCK_TIMEOUT
        return value

    def _coerce_principal(self, value) -> str:
        if not isinstance(value, str) or not value:
            self._note_coercion("principal", value, constants.DEFAULT_DB_PRINCIPAL)
            return constants.DEFAULT_DB_PRINCIPAL
        return value

    def _coerce_sink(self, value) -> Optional[DiagnosticsSink]:
        if value is None:
            return None
        if callable(getattr(value, "append", None)):
            return value
        if isinstance(value, (str, os.PathLike)):
            return FileDiagnosticsSink(value)
        self._note_coercion("diagnostics_sink", value, None)
        return None

    def _note_coercion(self, option: str, value, default):
        logger.warning("Invalid lock %s %r, using %r instead", option, value, default)
        self.coerced.append(option)
