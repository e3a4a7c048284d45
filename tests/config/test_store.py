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
"""Tests for the configuration store and per-call query options."""

import threading

import pytest

from querychain.config import store as store_module
from querychain.config.store import ConfigurationStore, QueryOptions, configure
from querychain.core.config import Config


class TestQueryOptions:
    def test_namespace_defaults_to_app(self):
        assert QueryOptions(app="shop").namespace == "shop"

    def test_explicit_namespace_wins(self):
        assert QueryOptions(app="shop", app_namespace="Shop.Core").namespace == "Shop.Core"

    def test_no_namespace(self):
        assert QueryOptions().namespace is None

    def test_merged_keeps_set_fields(self):
        merged = QueryOptions(app="mine").merged(QueryOptions(app="global", repo="global.Repo"))
        assert merged.app == "mine"
        assert merged.repo == "global.Repo"
        assert merged.schema is None

    def test_caller_app_is_not_shadowed_by_stored_namespace(self):
        stored = ConfigurationStore({"app_namespace": "stored"}).snapshot()
        merged = QueryOptions(app="caller").merged(stored)
        assert merged.namespace == "caller"
        assert merged.app_namespace is None

    def test_namespace_pair_comes_from_store_when_caller_sets_neither(self):
        stored = QueryOptions(app="shop", app_namespace="Shop.Core")
        merged = QueryOptions(repo="mine").merged(stored)
        assert merged.namespace == "Shop.Core"
        assert merged.repo == "mine"


class TestConfigurationStore:
    def test_set_and_get(self):
        store = ConfigurationStore()
        store.set("app", "shop")
        assert store.get("app") == "shop"

    def test_get_default(self):
        assert ConfigurationStore().get("repo", "fallback") == "fallback"

    def test_last_writer_wins(self):
        store = ConfigurationStore({"app": "first"})
        store.configure(app="second")
        assert store.get("app") == "second"

    def test_unknown_key_rejected(self):
        store = ConfigurationStore()
        with pytest.raises(KeyError):
            store.set("schema", "User")
        with pytest.raises(KeyError):
            store.get("colour")

    def test_configure_rejects_whole_batch_on_unknown_key(self):
        store = ConfigurationStore()
        with pytest.raises(KeyError):
            store.configure(app="shop", colour="blue")
        assert store.get("app") is None

    def test_reset(self):
        store = ConfigurationStore({"app": "shop"})
        store.reset()
        assert store.get("app") is None

    def test_snapshot(self):
        repo = object()
        snapshot = ConfigurationStore({"app": "shop", "repo": repo}).snapshot()
        assert snapshot == QueryOptions(app="shop", repo=repo)

    def test_concurrent_writers_leave_consistent_pairs(self):
        store = ConfigurationStore()

        def writer(n: int) -> None:
            for _ in range(200):
                store.configure(app=f"app{n}", app_namespace=f"ns{n}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = store.snapshot()
        assert snapshot.app[3:] == snapshot.app_namespace[2:]


class TestFromConfig:
    def test_reads_querychain_section(self):
        config = Config({"querychain": {"app": "shop", "repo": "shop.Repo"}})
        store = ConfigurationStore.from_config(config)
        assert store.get("app") == "shop"
        assert store.get("repo") == "shop.Repo"
        assert store.get("app_namespace") is None

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("QUERYCHAIN_APP", "from_env")
        store = ConfigurationStore.from_config(Config({"querychain": {"app": "shop"}}))
        assert store.get("app") == "from_env"


class TestModuleConfigure:
    def test_updates_default_store(self, monkeypatch):
        fresh = ConfigurationStore()
        monkeypatch.setattr(store_module, "default_store", fresh)
        configure(app="shop")
        assert fresh.get("app") == "shop"
