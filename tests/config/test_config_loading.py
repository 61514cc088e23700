"""
Configuration loading and the config -> kernel bridge.

Verifies:
- The shipped defaults.yaml parses to the documented defaults
- DOCPOST_CONFIG selects another file; an explicit path wins over it
- Malformed values are rejected with ValueError
- The bridge produces PipelineSettings a DocumentPipeline accepts
"""

from decimal import Decimal

import pytest
import yaml

from docpost_config import CONFIG_ENV_VAR, get_active_config
from docpost_config.bridges import pipeline_settings_from_config
from docpost_config.loader import parse_config
from docpost_kernel.domain.extraction import NormalizationSettings
from docpost_kernel.pipeline import DocumentPipeline, PipelineSettings, WarehouseSeed


def _write(tmp_path, data, name="docpost.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_shipped_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        config = get_active_config()

        assert config.currency.code == "DKK"
        assert config.currency.decimal_places == 2
        assert config.tax.mode == "exclusive"
        assert config.tax.rate == Decimal("25")
        assert config.tax.tolerance == Decimal("0.01")
        assert config.accounts.payable == "1000"
        assert config.numbering.journal == "JE"
        assert [w.code for w in config.warehouses] == ["MAIN"]
        assert config.default_warehouse == "MAIN"

    def test_defaults_match_kernel_defaults(self, monkeypatch):
        """Running with no configuration behaves like the shipped file."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

        assert pipeline_settings_from_config(get_active_config()) == PipelineSettings()

    def test_missing_sections_use_defaults(self):
        config = parse_config({})

        assert config.tax.mode == "exclusive"
        assert config.warehouses == ()
        assert config.default_warehouse is None


class TestOverrides:

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"currency": {"code": "eur"}, "tax": {"mode": "inclusive", "rate": 19}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        config = get_active_config()

        assert config.currency.code == "EUR"
        assert config.tax.mode == "inclusive"
        assert config.tax.rate == Decimal("19")

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(_write(tmp_path, {"currency": {"code": "EUR"}}, "env.yaml")))
        explicit = _write(tmp_path, {"currency": {"code": "SEK"}}, "explicit.yaml")

        assert get_active_config(explicit).currency.code == "SEK"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_config_loaded_is_logged(self, tmp_path, captured_logs):
        get_active_config(_write(tmp_path, {"currency": {"code": "EUR"}}))

        loaded = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert loaded and loaded[0]["currency"] == "EUR"


class TestValidation:

    def test_bad_tax_mode(self):
        with pytest.raises(ValueError, match="tax.mode"):
            parse_config({"tax": {"mode": "sometimes"}})

    def test_bad_rate(self):
        with pytest.raises(ValueError, match="tax.rate"):
            parse_config({"tax": {"rate": "twenty"}})

    @pytest.mark.parametrize("rate", [-5, 150, "nan"])
    def test_rate_outside_percentage_range(self, rate):
        with pytest.raises(ValueError, match="between 0 and 100"):
            parse_config({"tax": {"rate": rate}})

    def test_default_warehouse_must_be_configured(self):
        with pytest.raises(ValueError, match="default_warehouse"):
            parse_config({"warehouses": [{"code": "MAIN"}], "default_warehouse": "B2"})


class TestBridge:

    def test_pipeline_settings(self):
        config = parse_config(
            {
                "currency": {"code": "EUR", "decimal_places": 2},
                "tax": {"mode": "inclusive", "rate": 21, "tolerance": "0.02"},
                "accounts": {"payable": "2000", "inventory": "1410", "expense": "6000"},
                "numbering": {"document": "IN", "journal": "GL"},
                "warehouses": [
                    {"code": "main", "name": "Main"},
                    {"code": "COLD", "name": "Cold store", "active": False},
                ],
                "default_warehouse": "main",
            }
        )

        settings = pipeline_settings_from_config(config)

        assert settings.normalization == NormalizationSettings(
            currency="EUR",
            tax_mode="inclusive",
            tax_rate=Decimal("21"),
            tolerance=Decimal("0.02"),
            decimal_places=2,
        )
        assert settings.accounts.payable == "2000"
        assert (settings.document_prefix, settings.journal_prefix) == ("IN", "GL")
        assert settings.stock_move_prefix == "MOV"
        assert settings.warehouses == (
            WarehouseSeed("MAIN", "Main"),
            WarehouseSeed("COLD", "Cold store", active=False),
        )
        assert settings.default_warehouse == "MAIN"

    def test_configured_pipeline_numbers_documents(self, tmp_path, session_factory, deterministic_clock):
        path = _write(tmp_path, {"numbering": {"document": "IN"}, "warehouses": [{"code": "B2"}]})
        settings = pipeline_settings_from_config(get_active_config(path))
        pipeline = DocumentPipeline(session_factory, settings, deterministic_clock)

        pipeline.seed_warehouses()

        assert pipeline.ingest("invoice").document_no == "IN-20240301-0001"
        assert [w.code for w in pipeline.active_warehouses()] == ["B2"]
