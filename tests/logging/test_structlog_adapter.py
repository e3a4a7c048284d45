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
"""Tests for StructlogAdapter — default LoggingPort implementation."""

import io
import json
import logging
from typing import Any

from querychain.core.config import Config
from querychain.logging.port import LoggingPort
from querychain.logging.structlog_adapter import SQL_LOGGER, StructlogAdapter


class TestLoggingPort:
    def test_adapter_implements_port(self):
        assert isinstance(StructlogAdapter(), LoggingPort)

    def test_incomplete_class_is_not_a_port(self):
        class Incomplete:
            def get_logger(self, name: str) -> Any:
                pass

        assert not isinstance(Incomplete(), LoggingPort)


class TestStructlogAdapterConfigure:
    def test_configure_with_defaults(self):
        adapter = StructlogAdapter(stream=io.StringIO())
        adapter.configure(Config({}))
        assert adapter.root_level == "INFO"
        assert adapter.format == "console"
        assert adapter.module_levels == {}

    def test_configure_reads_root_level(self):
        adapter = StructlogAdapter(stream=io.StringIO())
        adapter.configure(Config({"querychain": {"logging": {"level": {"root": "debug"}}}}))
        assert adapter.root_level == "DEBUG"
        assert logging.getLogger().level == logging.DEBUG

    def test_configure_applies_per_module_levels(self):
        adapter = StructlogAdapter(stream=io.StringIO())
        config = Config({"querychain": {"logging": {"level": {"root": "INFO", "querychain.repo": "debug"}}}})
        adapter.configure(config)
        assert adapter.module_levels == {"querychain.repo": "DEBUG"}
        assert logging.getLogger("querychain.repo").level == logging.DEBUG

    def test_sql_flag_enables_statement_log(self):
        logging.getLogger(SQL_LOGGER).setLevel(logging.WARNING)
        adapter = StructlogAdapter(stream=io.StringIO())
        adapter.configure(Config({"querychain": {"logging": {"sql": True}}}))
        assert logging.getLogger(SQL_LOGGER).level == logging.INFO

    def test_library_defaults_are_bindable(self):
        adapter = StructlogAdapter(stream=io.StringIO())
        adapter.configure(Config.from_sources("/nonexistent"))
        assert adapter.root_level == "INFO"
        assert adapter.format == "console"


class TestStructlogAdapterOutput:
    def test_console_events_go_to_stream(self):
        stream = io.StringIO()
        adapter = StructlogAdapter(stream=stream)
        adapter.configure(Config({}))
        adapter.get_logger("querychain.test").info("chain_compiled", terminal="all")
        output = stream.getvalue()
        assert "chain_compiled" in output
        assert "terminal" in output

    def test_json_format(self):
        stream = io.StringIO()
        adapter = StructlogAdapter(stream=stream)
        adapter.configure(Config({"querychain": {"logging": {"format": "JSON"}}}))
        assert adapter.format == "json"
        adapter.get_logger("querychain.test").info("record_saved", entity="User")
        event = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert event["event"] == "record_saved"
        assert event["entity"] == "User"
        assert event["level"] == "info"


class TestStructlogAdapterSetLevel:
    def test_set_level(self):
        adapter = StructlogAdapter()
        adapter.set_level("querychain.compiler", "warning")
        assert logging.getLogger("querychain.compiler").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        adapter = StructlogAdapter()
        adapter.set_level("querychain.cli", "chatty")
        assert logging.getLogger("querychain.cli").level == logging.INFO
