"""
Tests for registrar configuration loading and the config -> kernel bridge.

Invariants tested:
- get_active_config() loads and validates the shipped default set.
- Academic year and semester spellings are normalised on load.
- Missing required keys and invalid values raise ValueError.
- Checksums are deterministic and change with the content.
- Every load emits REGISTRAR_CONFIG_TRACE.
"""

import pytest
import yaml

from registrar_config import get_active_config
from registrar_config.bridges import build_academic_period, build_engine
from registrar_config.loader import compute_checksum, load_yaml_file, parse_config
from registrar_kernel.db.engine import reset_engine
from registrar_kernel.domain.clock import DeterministicClock
from registrar_kernel.domain.lifecycle import RecordType
from registrar_kernel.services.lifecycle_engine import LifecycleEngine


def _config_data(**overrides):
    data = {
        "config_id": "registrar-test",
        "version": 3,
        "academic_period": {"academic_year": "2025/2026", "semester": 1},
        "store": {"database_url": "sqlite:///:memory:", "query_page_size": 50},
        "logging": {"level": "debug"},
    }
    data.update(overrides)
    return data


def _write(tmp_path, data, name="registrar.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaultConfig:
    def test_default_set_loads(self):
        config = get_active_config()

        assert config.config_id == "registrar-default"
        assert config.version == 1
        assert config.academic_period.academic_year == "2025/2026"
        assert config.academic_period.semester == 1
        assert config.store.database_url.startswith("sqlite:///")
        assert config.store.query_page_size == 100
        assert config.log_level == "INFO"
        assert len(config.checksum) == 64

    def test_load_emits_config_trace(self, captured_logs):
        config = get_active_config()

        (trace,) = [r for r in captured_logs() if r["message"] == "REGISTRAR_CONFIG_TRACE"]
        assert trace["config_id"] == config.config_id
        assert trace["checksum"] == config.checksum
        assert trace["academic_year"] == "2025/2026"


class TestParseConfig:
    def test_values_parsed(self):
        config = parse_config(_config_data(), checksum="abc")
        assert config.version == 3
        assert config.store.query_page_size == 50
        assert config.store.pool_size == 20
        assert config.log_level == "DEBUG"
        assert config.checksum == "abc"

    @pytest.mark.parametrize(
        "year, semester, expected",
        [
            ("2025-2026", "First Semester", ("2025/2026", 1)),
            ("2024/2025", "second semester", ("2024/2025", 2)),
            ("2024 - 2025", 2, ("2024/2025", 2)),
        ],
    )
    def test_academic_period_normalised(self, year, semester, expected):
        data = _config_data(academic_period={"academic_year": year, "semester": semester})
        period = parse_config(data).academic_period
        assert (period.academic_year, period.semester) == expected

    @pytest.mark.parametrize("missing", ["config_id", "version", "academic_period", "store"])
    def test_missing_root_key(self, missing):
        data = _config_data()
        del data[missing]
        with pytest.raises(ValueError, match=missing):
            parse_config(data)

    def test_missing_database_url(self):
        with pytest.raises(ValueError, match="store.database_url"):
            parse_config(_config_data(store={"echo": True}))

    @pytest.mark.parametrize("page_size", [0, -1, "100", True])
    def test_bad_page_size(self, page_size):
        data = _config_data(store={"database_url": "sqlite://", "query_page_size": page_size})
        with pytest.raises(ValueError, match="query_page_size"):
            parse_config(data)

    def test_bad_academic_year(self):
        data = _config_data(academic_period={"academic_year": "2025/2027", "semester": 1})
        with pytest.raises(ValueError):
            parse_config(data)

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="logging.level"):
            parse_config(_config_data(logging={"level": "chatty"}))

    def test_null_logging_section_uses_default(self):
        assert parse_config(_config_data(logging=None)).log_level == "INFO"


class TestLoadFile:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_document_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")
        with pytest.raises(ValueError):
            load_yaml_file(path)

    def test_override_path(self, tmp_path):
        config = get_active_config(_write(tmp_path, _config_data()))
        assert config.config_id == "registrar-test"
        assert config.checksum == compute_checksum(_config_data())


class TestChecksum:
    def test_deterministic(self):
        assert compute_checksum(_config_data()) == compute_checksum(_config_data())

    def test_key_order_irrelevant(self):
        data = _config_data()
        reordered = dict(reversed(list(data.items())))
        assert compute_checksum(data) == compute_checksum(reordered)

    def test_content_change_detected(self):
        assert compute_checksum(_config_data()) != compute_checksum(_config_data(version=4))


class TestBridges:
    def test_build_academic_period(self):
        config = parse_config(_config_data(
            academic_period={"academic_year": "2026-2027", "semester": "Second Semester"},
        ))
        period = build_academic_period(config)
        assert (period.academic_year, period.semester) == ("2026/2027", 2)

    def test_build_engine_wires_store_and_observers(self, tmp_path):
        data = _config_data(store={
            "database_url": f"sqlite:///{tmp_path / 'bridge.db'}",
            "query_page_size": 7,
        })
        config = parse_config(data)
        try:
            engine = build_engine(config, clock=DeterministicClock())
            assert isinstance(engine, LifecycleEngine)
            assert engine.store.page_size == 7

            request = engine.submit(
                RecordType.DEFERMENT_REQUEST, {"studentId": "S9"}, submitted_by="S9",
            )
            result = engine.transition(request.id, "approved", "director")

            assert not result.partial_success
            (notice,) = engine.query(RecordType.NOTIFICATION)
            assert notice.payload["noticeType"] == "deferment_approved"
        finally:
            reset_engine()
