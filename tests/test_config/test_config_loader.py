"""Tests for configuration loading and validation."""

import textwrap

import pytest

from bestats.collectors.categories import AGENT_ENTITY, ENTITY_CACHE, TRANSACTION_MANAGER_REPORT
from bestats.config.loader import ConfigLoader
from bestats.config.models import EngineEndpoint
from bestats.utils.errors import ConfigurationError


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(text))
    return str(path)


class TestLoadFromFile:
    def test_full_config(self, tmp_path, monkeypatch):
        monkeypatch.setenv("JOLOKIA_USER", "admin")
        monkeypatch.setenv("JOLOKIA_PASSWORD", "s3cret")
        path = write_config(tmp_path, """
            monitoring:
              interval_seconds: 30
              report_folder: /var/log/bestats
              ignore_internal_entities: false
            reports:
              - BEEntityCache
              - RTCTxnManagerReport
            include:
              EntityCache:
                - "Order.*"
            engines:
              - name: inference-1
                host: be-host
                port: 8778
                username: ${JOLOKIA_USER}
                password: ${JOLOKIA_PASSWORD}
              - pid: 4242
        """)

        config = ConfigLoader.load_from_file(path)

        assert config.monitoring.interval_seconds == 30
        assert config.monitoring.report_folder == "/var/log/bestats"
        assert config.monitoring.ignore_internal_entities is False
        assert config.reports == ["EntityCache", "TransactionManagerReport"]
        assert config.categories() == [ENTITY_CACHE, TRANSACTION_MANAGER_REPORT]
        assert config.include == {"EntityCache": ["Order.*"]}

        remote, local = config.engines
        assert remote.username == "admin"
        assert remote.password == "s3cret"
        assert local.name == "PID-4242"
        assert local.is_local

    def test_defaults(self, tmp_path):
        path = write_config(tmp_path, """
            engines:
              - port: 8778
        """)

        config = ConfigLoader.load_from_file(path)

        assert config.monitoring.interval_seconds == 60
        assert config.monitoring.report_folder == "."
        assert config.monitoring.ignore_internal_entities is True
        assert config.monitoring.include_year_in_filename is False
        assert config.categories() == [ENTITY_CACHE, AGENT_ENTITY, TRANSACTION_MANAGER_REPORT]
        assert config.engines[0].name == "BE"
        assert config.engines[0].host == "localhost"

    def test_unset_env_var_disables_auth(self, tmp_path, monkeypatch):
        monkeypatch.delenv("JOLOKIA_PASSWORD", raising=False)
        path = write_config(tmp_path, """
            engines:
              - port: 8778
                username: admin
                password: ${JOLOKIA_PASSWORD}
        """)

        engine = ConfigLoader.load_from_file(path).engines[0]

        assert engine.username is None
        assert engine.password is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            ConfigLoader.load_from_file(str(tmp_path / "missing.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = write_config(tmp_path, "engines: [port: 1\n")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            ConfigLoader.load_from_file(path)

    def test_empty_file_has_no_engines(self, tmp_path):
        path = write_config(tmp_path, "")

        with pytest.raises(ConfigurationError, match="No engines configured"):
            ConfigLoader.load_from_file(path)


class TestValidation:
    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="mapping"):
            ConfigLoader.load_from_dict(["engines"])

    def test_unknown_report_type(self):
        with pytest.raises(ConfigurationError, match="Unknown report type"):
            ConfigLoader.load_from_dict({"engines": [{"port": 1}], "reports": ["Threads"]})

    def test_bad_include_pattern(self):
        with pytest.raises(ConfigurationError, match="invalid include pattern"):
            ConfigLoader.load_from_dict({
                "engines": [{"port": 1}],
                "include": {"EntityCache": ["Order[("]},
            })

    def test_include_alias_is_normalized(self):
        config = ConfigLoader.load_from_dict({
            "engines": [{"port": 1}],
            "include": {"BEAgentEntity": ["Customer"]},
        })

        assert config.include == {"AgentEntity": ["Customer"]}
        assert "AgentEntity" in config.inclusion_rules()

    def test_duplicate_reports_collapse(self):
        config = ConfigLoader.load_from_dict({
            "engines": [{"port": 1}],
            "reports": ["EntityCache", "BEEntityCache", " "],
        })
        assert config.reports == ["EntityCache"]

    def test_duplicate_engines_keep_first(self):
        config = ConfigLoader.load_from_dict({
            "engines": [
                {"name": "a", "host": "h", "port": 1},
                {"name": "b", "host": "h", "port": 1},
                {"name": "c", "host": "h", "port": 2},
            ],
        })

        assert [e.name for e in config.engines] == ["a", "c"]

    def test_interval_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            ConfigLoader.load_from_dict({"engines": [{"port": 1}], "monitoring": {"interval_seconds": 0}})


class TestEngineEndpoint:
    def test_needs_port_or_pid(self):
        with pytest.raises(ValueError, match="exactly one"):
            EngineEndpoint(host="h")

    def test_port_and_pid_are_exclusive(self):
        with pytest.raises(ValueError, match="exactly one"):
            EngineEndpoint(port=1, pid=2)

    def test_port_range(self):
        with pytest.raises(ValueError):
            EngineEndpoint(port=70000)

    def test_scheme(self):
        assert EngineEndpoint(port=1, scheme="https").scheme == "https"
        with pytest.raises(ValueError):
            EngineEndpoint(port=1, scheme="ftp")

    def test_identity(self):
        remote = EngineEndpoint(name="e1", host="h", port=8778)
        local = EngineEndpoint(pid=99)

        assert remote.key == "h:8778"
        assert remote.label == "e1@h:8778"
        assert remote.filename_parts() == ("e1", "h", "8778")
        assert local.key == "pid:99"
        assert local.label == "PID-99"
        assert local.filename_parts() == ("PID-99",)

    def test_is_immutable(self):
        endpoint = EngineEndpoint(port=1)
        with pytest.raises(ValueError):
            endpoint.port = 2
