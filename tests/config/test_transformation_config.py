"""
Tests for configuration loading.

Covers:
- Packaged defaults match the built-in field defaults
- YAML files with or without a ``transformation:`` section
- TRANSFORMATION_CONFIG override and checksum identity
- Rejection of unknown keys and invalid values
"""

import pytest
import yaml

from transformation_config import (
    DEFAULT_CONFIG_PATH,
    ENV_VAR,
    compute_checksum,
    extract_section,
    get_active_config,
)
from transformation_modules.transformation.config import TransformationConfig


@pytest.fixture
def write_yaml(tmp_path):
    def _write(data, name="settings.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


class TestDefaults:

    def test_packaged_defaults_match_field_defaults(self, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)

        assert TransformationConfig.from_active() == TransformationConfig()

    def test_field_defaults(self):
        config = TransformationConfig.with_defaults()

        assert config.money_decimal_places == 2
        assert config.cost_per_unit_places == 9
        assert config.precheck_stock is True
        assert config.strict_waste_recording is False
        assert config.max_cas_retries == 3

    def test_source_is_packaged_file(self, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)

        assert get_active_config().source == str(DEFAULT_CONFIG_PATH)


class TestFromFile:

    def test_section(self, write_yaml):
        path = write_yaml({"transformation": {"precheck_stock": False}, "other_app": {"x": 1}})

        config = TransformationConfig.from_file(path)

        assert config.precheck_stock is False
        assert config.money_decimal_places == 2

    def test_top_level(self, write_yaml):
        path = write_yaml({"max_cas_retries": 7})

        assert TransformationConfig.from_file(path).max_cas_retries == 7

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert TransformationConfig.from_file(path) == TransformationConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TransformationConfig.from_file(tmp_path / "absent.yaml")

    def test_section_must_be_mapping(self, write_yaml):
        with pytest.raises(ValueError, match="must be a mapping"):
            TransformationConfig.from_file(write_yaml({"transformation": [1, 2]}))


class TestFromActive:

    def test_env_var_override(self, write_yaml, monkeypatch):
        path = write_yaml({"transformation": {"strict_waste_recording": True}})
        monkeypatch.setenv(ENV_VAR, str(path))

        assert TransformationConfig.from_active().strict_waste_recording is True

    def test_checksum_tracks_content(self, write_yaml):
        first = get_active_config(write_yaml({"max_cas_retries": 3}, "a.yaml"))
        same = get_active_config(write_yaml({"max_cas_retries": 3}, "b.yaml"))
        other = get_active_config(write_yaml({"max_cas_retries": 4}, "c.yaml"))

        assert first.checksum == same.checksum
        assert first.checksum != other.checksum
        assert len(first.checksum) == 64

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_config_trace_logged(self, write_yaml, captured_logs):
        path = write_yaml({"max_cas_retries": 5})

        active = get_active_config(path)

        traces = [r for r in captured_logs() if r["message"] == "CONFIG_TRACE"]
        assert traces[-1]["checksum"] == active.checksum
        assert traces[-1]["source"] == str(path)


class TestValidation:

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="Unknown transformation config keys: colour"):
            TransformationConfig.from_dict({"colour": "blue"})

    def test_retries_must_be_positive(self):
        with pytest.raises(ValueError, match="max_cas_retries"):
            TransformationConfig(max_cas_retries=0)

    def test_negative_precision_rejected(self):
        with pytest.raises(ValueError, match="money_decimal_places cannot be negative"):
            TransformationConfig(money_decimal_places=-1)

    def test_quantity_places_capped_at_stored_precision(self):
        with pytest.raises(ValueError, match="quantity_places cannot exceed"):
            TransformationConfig(quantity_places=10)

    def test_extract_section_copies(self):
        data = {"transformation": {"precheck_stock": True}}

        section = extract_section(data)
        section["precheck_stock"] = False

        assert data["transformation"]["precheck_stock"] is True
