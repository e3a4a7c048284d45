# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""StructlogAdapter — default LoggingPort implementation using structlog.

Library events (``chain_compiled``, ``query_executed``, ``record_saved``, ...)
are written to stderr so that results printed on stdout stay machine
readable. Setting ``querychain.logging.sql`` also routes SQLAlchemy's
statement log through the same renderer.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, TextIO

import structlog

from querychain.config.properties.logging import LoggingProperties
from querychain.core.config import Config

SQL_LOGGER = "sqlalchemy.engine"


class StructlogAdapter:
    """Default logging adapter backed by structlog."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self._properties = LoggingProperties()

    @property
    def root_level(self) -> str:
        return str(self._properties.level.get("root", "INFO")).upper()

    @property
    def module_levels(self) -> dict[str, str]:
        return {name: str(level).upper() for name, level in self._properties.level.items() if name != "root"}

    @property
    def format(self) -> str:
        return str(self._properties.format).lower()

    def configure(self, config: Config) -> None:
        """Configure structlog from the ``querychain.logging`` section of config."""
        self._properties = config.bind(LoggingProperties)

        structlog.configure(
            processors=self._processors(),
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )
        logging.basicConfig(
            format="%(message)s",
            stream=self._stream or sys.stderr,
            level=_level(self.root_level),
            force=True,
        )

        for name, level in self.module_levels.items():
            self.set_level(name, level)
        if self._properties.sql:
            self.set_level(SQL_LOGGER, "INFO")

    def get_logger(self, name: str) -> Any:
        """Get a structlog BoundLogger by name."""
        return structlog.get_logger(name)

    def set_level(self, name: str, level: str) -> None:
        """Set the log level for a specific stdlib logger."""
        logging.getLogger(name).setLevel(_level(level))

    def _processors(self) -> list[structlog.types.Processor]:
        processors: list[structlog.types.Processor] = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ]
        if self.format == "json":
            processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
        else:
            processors.append(structlog.dev.ConsoleRenderer())
        return processors


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO
