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
"""Tests for the configuration system."""

from dataclasses import dataclass
from pathlib import Path

import pytest

from querychain.config.properties import LoggingProperties, QueryChainProperties
from querychain.core.config import Config, config_properties


class TestConfig:
    def test_load_from_dict(self):
        config = Config({"querychain": {"app": "shop", "pool": {"size": 10}}})
        assert config.get("querychain.app") == "shop"
        assert config.get("querychain.pool.size") == 10

    def test_get_with_default(self):
        assert Config({}).get("missing.key", "default") == "default"

    def test_get_section(self):
        config = Config({"querychain": {"logging": {"format": "json"}}})
        assert config.get_section("querychain.logging") == {"format": "json"}
        assert config.get_section("querychain.nothing") == {}

    def test_load_from_yaml_file(self, tmp_path: Path):
        config_file = tmp_path / "querychain.yaml"
        config_file.write_text("querychain:\n  app: shop\n")
        config = Config.from_file(config_file)
        assert config.get("querychain.app") == "shop"
        assert str(config_file) in config.loaded_sources

    def test_load_from_toml_file(self, tmp_path: Path):
        config_file = tmp_path / "querychain.toml"
        config_file.write_text('[querychain]\napp = "shop"\n')
        config = Config.from_file(config_file, load_defaults=False)
        assert config.get("querychain.app") == "shop"

    def test_library_defaults(self):
        config = Config.from_sources("/nonexistent")
        assert config.get("querychain.logging.format") == "console"
        assert config.loaded_sources == ["querychain-defaults.yaml (library defaults)"]

    def test_env_var_override(self, monkeypatch):
        monkeypatch.setenv("QUERYCHAIN_APP", "env-app")
        config = Config({"querychain": {"app": "file-app"}})
        assert config.get("querychain.app") == "env-app"


class TestPlaceholders:
    def test_config_reference(self):
        config = Config({"tenant": "acme", "querychain": {"app": "${tenant}"}})
        assert config.get("querychain.app") == "acme"

    def test_env_reference(self, monkeypatch):
        monkeypatch.setenv("SHOP_NAME", "corner")
        config = Config({"querychain": {"app": "${SHOP_NAME}"}})
        assert config.get("querychain.app") == "corner"

    def test_default_value(self):
        config = Config({"querychain": {"repo": "${REPO_NAME_UNSET:shop.Repo}"}})
        assert config.get("querychain.repo") == "shop.Repo"

    def test_unresolvable_placeholder(self):
        config = Config({"querychain": {"repo": "${REPO_NAME_UNSET}"}})
        with pytest.raises(ValueError):
            config.get("querychain.repo")

    def test_circular_reference(self):
        config = Config({"a": "${b}", "b": "${a}"})
        with pytest.raises(ValueError):
            config.get("a")


class TestConfigProperties:
    def test_bind_to_dataclass(self):
        @config_properties(prefix="database")
        @dataclass
        class DatabaseConfig:
            url: str = "sqlite:///test.db"
            pool_size: int = 5

        config = Config({"database": {"url": "postgresql://localhost/mydb", "pool_size": 20}})
        db_config = config.bind(DatabaseConfig)
        assert db_config.url == "postgresql://localhost/mydb"
        assert db_config.pool_size == 20

    def test_bind_uses_defaults(self):
        assert Config({}).bind(LoggingProperties) == LoggingProperties()

    def test_bind_query_properties(self):
        config = Config({"querychain": {"app": "shop", "app_namespace": "Shop"}})
        props = config.bind(QueryChainProperties)
        assert props.app == "shop"
        assert props.app_namespace == "Shop"
        assert props.repo is None

    def test_bind_requires_decorator(self):
        @dataclass
        class Plain:
            value: int = 1

        with pytest.raises(ValueError):
            Config({}).bind(Plain)


class TestProfileConfigMerging:
    def test_merge_profile_config(self, tmp_path: Path):
        (tmp_path / "querychain.yaml").write_text("querychain:\n  app: shop\n  repo: shop.Repo\n")
        (tmp_path / "querychain-dev.yaml").write_text("querychain:\n  repo: dev.Repo\n")

        config = Config.from_sources(tmp_path, active_profiles=["dev"])
        assert config.get("querychain.app") == "shop"
        assert config.get("querychain.repo") == "dev.Repo"

    def test_later_profile_wins(self, tmp_path: Path):
        (tmp_path / "querychain.yaml").write_text("db:\n  url: base\n")
        (tmp_path / "querychain-dev.yaml").write_text("db:\n  url: dev-url\n")
        (tmp_path / "querychain-local.yaml").write_text("db:\n  url: local-url\n")

        config = Config.from_sources(tmp_path, active_profiles=["dev", "local"])
        assert config.get("db.url") == "local-url"

    def test_missing_profile_file_is_skipped(self, tmp_path: Path):
        (tmp_path / "querychain.yaml").write_text("querychain:\n  app: shop\n")
        config = Config.from_sources(tmp_path, active_profiles=["nonexistent"])
        assert config.get("querychain.app") == "shop"

    def test_env_vars_still_win(self, tmp_path: Path, monkeypatch):
        (tmp_path / "querychain.yaml").write_text("querychain:\n  app: base\n")
        (tmp_path / "querychain-dev.yaml").write_text("querychain:\n  app: dev\n")

        monkeypatch.setenv("QUERYCHAIN_APP", "env-wins")
        config = Config.from_sources(tmp_path, active_profiles=["dev"])
        assert config.get("querychain.app") == "env-wins"
