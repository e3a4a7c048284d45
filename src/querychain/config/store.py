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
"""Process-wide configuration store and per-call query options.

Every entry point accepts an explicit :class:`QueryOptions`. The
:class:`ConfigurationStore` is only the fallback layer consulted for keys
the caller did not set.

Usage::

    from querychain.config.store import configure, default_store

    configure(app="my_app")
    default_store.get("app")  # "my_app"
"""

from __future__ import annotations

import dataclasses
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import structlog

from querychain.config.properties.query import QueryChainProperties
from querychain.core.config import Config

logger = structlog.get_logger("querychain.config")

CONFIG_KEYS: tuple[str, ...] = ("app", "app_namespace", "repo")


@dataclass(frozen=True)
class QueryOptions:
    """Resolution options threaded through a single query invocation.

    Attributes:
        app: Application name; used as the namespace when ``app_namespace``
            is not given.
        app_namespace: Explicit namespace for entity and repo names.
        repo: Persistence runtime override, either a runtime instance or a
            registered runtime name.
        schema: Explicit entity type override for the chain root.
    """

    app: str | None = None
    app_namespace: str | None = None
    repo: Any = None
    schema: Any = None

    @property
    def namespace(self) -> str | None:
        return self.app_namespace or self.app

    def merged(self, fallback: QueryOptions) -> QueryOptions:
        """Fill every unset field from *fallback*.

        ``app`` and ``app_namespace`` travel together: when this layer sets
        either one, neither is taken from *fallback*.
        """
        values = {
            f.name: getattr(self, f.name) if getattr(self, f.name) is not None else getattr(fallback, f.name)
            for f in dataclasses.fields(self)
        }
        if self.namespace is not None:
            values["app"], values["app_namespace"] = self.app, self.app_namespace
        return QueryOptions(**values)


class ConfigurationStore:
    """Last-writer-wins key/value store for app and repo selection.

    Writers replace an immutable snapshot under a lock; readers only
    dereference the current snapshot, so a partially applied
    :meth:`configure` call is never observed.
    """

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._lock = threading.Lock()
        self._values: MappingProxyType[str, Any] = MappingProxyType({})
        if values:
            self.configure(**values)

    @classmethod
    def from_config(cls, config: Config) -> ConfigurationStore:
        """Create a store from the ``querychain`` section of *config*."""
        props = config.bind(QueryChainProperties)
        values = {k: v for k, v in dataclasses.asdict(props).items() if v is not None}
        return cls(values)

    def set(self, key: str, value: Any) -> None:
        self.configure(**{key: value})

    def get(self, key: str, default: Any = None) -> Any:
        self._check_key(key)
        return self._values.get(key, default)

    def configure(self, **values: Any) -> None:
        """Set several keys at once."""
        for key in values:
            self._check_key(key)
        with self._lock:
            updated = dict(self._values)
            updated.update(values)
            self._values = MappingProxyType(updated)
        logger.debug("configuration_updated", keys=sorted(values))

    def reset(self) -> None:
        with self._lock:
            self._values = MappingProxyType({})

    def snapshot(self) -> QueryOptions:
        """Return the current values as :class:`QueryOptions`."""
        values = self._values
        return QueryOptions(
            app=values.get("app"),
            app_namespace=values.get("app_namespace"),
            repo=values.get("repo"),
        )

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in CONFIG_KEYS:
            raise KeyError(f"Unknown configuration key '{key}', expected one of {CONFIG_KEYS}")


default_store = ConfigurationStore()


def configure(**values: Any) -> None:
    """Update the process-wide default store.

    Example::

        configure(app="my_app")
        configure(repo="my_app.Repo")
    """
    default_store.configure(**values)
