"""Tests for configuration set loading, runtime settings and bootstrap."""

import shutil
from pathlib import Path

import pytest
import yaml

from ledger_config import DEFAULT_SET_DIR, LedgerSettings, compute_checksum, get_active_config
from ledger_engines.rule_engine import RuleThresholds
from ledger_kernel.domain.ledger import AccountType, Side
from ledger_kernel.domain.templates import CustomAmount
from ledger_kernel.exceptions import TemplateIntegrityError
from ledger_services.bootstrap import build_runtime
from tests.conftest import ACTOR_ID


@pytest.fixture
def set_dir(tmp_path) -> Path:
    """A writable copy of the default configuration set."""
    target = tmp_path / "set"
    shutil.copytree(DEFAULT_SET_DIR, target)
    return target


def edit_yaml(path: Path, edit) -> None:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    edit(data)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


class TestDefaultSet:

    def test_loads(self, ledger_config):
        assert ledger_config.config_id == "SK-SMALL-BUSINESS"
        assert ledger_config.currency == "EUR"
        assert len(ledger_config.accounts) == 11
        assert len(ledger_config.templates) == 9

    def test_accounts(self, ledger_config):
        receivables = ledger_config.account("311")
        assert receivables.account_type == AccountType.ASSET
        assert receivables.normal_side == Side.DEBIT
        assert receivables.is_system
        assert ledger_config.account("999") is None

    def test_templates_are_system_and_ordered(self, ledger_config):
        assert list(ledger_config.templates)[:2] == ["FA_VYDANA_SLUZBY", "UHRADA_ODBERATEL"]
        assert all(t.is_system for t in ledger_config.templates.values())
        payroll = ledger_config.templates["MZDA_NAKLAD"]
        assert all(isinstance(line.amount, CustomAmount) for line in payroll.lines)

    def test_thresholds(self, ledger_config):
        assert ledger_config.thresholds == RuleThresholds()

    def test_checksum_is_deterministic(self, ledger_config):
        again = get_active_config(DEFAULT_SET_DIR)
        assert again.checksum == ledger_config.checksum
        assert len(ledger_config.checksum) == 64

    def test_trace_logged(self, captured_logs):
        get_active_config(DEFAULT_SET_DIR)

        (trace,) = [r for r in captured_logs() if r["message"] == "LEDGER_CONFIG_TRACE"]
        assert trace["config_set_id"] == "SK-SMALL-BUSINESS"
        assert trace["template_count"] == 9


class TestCustomSets:

    def test_checksum_tracks_content(self, set_dir, ledger_config):
        edit_yaml(set_dir / "root.yaml", lambda data: data.update(version=2))

        config = get_active_config(set_dir)

        assert config.version == 2
        assert config.checksum != ledger_config.checksum

    def test_env_override(self, set_dir, monkeypatch):
        edit_yaml(set_dir / "root.yaml", lambda data: data.update(config_id="TEST-SET"))
        monkeypatch.setenv("LEDGER_CONFIG_DIR", str(set_dir))

        assert get_active_config().config_id == "TEST-SET"

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nowhere")

    def test_rules_file_optional(self, set_dir):
        (set_dir / "rules.yaml").unlink()
        assert get_active_config(set_dir).thresholds == RuleThresholds()

    def test_template_on_unknown_account_refused(self, set_dir):
        def break_template(data):
            data["templates"][0]["lines"][1]["account"] = "604"

        edit_yaml(set_dir / "templates.yaml", break_template)

        with pytest.raises(TemplateIntegrityError) as exc_info:
            get_active_config(set_dir)
        assert exc_info.value.template_code == "FA_VYDANA_SLUZBY"

    def test_duplicate_account_codes(self, set_dir):
        edit_yaml(set_dir / "accounts.yaml", lambda data: data["accounts"].append(dict(data["accounts"][0])))

        with pytest.raises(ValueError, match="Duplicate account codes: 221"):
            get_active_config(set_dir)

    def test_duplicate_template_codes(self, set_dir):
        edit_yaml(set_dir / "templates.yaml", lambda data: data["templates"].append(dict(data["templates"][0])))

        with pytest.raises(ValueError, match="Duplicate template codes: FA_VYDANA_SLUZBY"):
            get_active_config(set_dir)

    def test_unknown_threshold(self, set_dir):
        edit_yaml(set_dir / "rules.yaml", lambda data: data["thresholds"].update(max_lines=9))

        with pytest.raises(ValueError, match="max_lines"):
            get_active_config(set_dir)


class TestCompute:

    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})


class TestSettings:

    def test_defaults(self):
        settings = LedgerSettings.from_env({})
        assert settings == LedgerSettings()
        assert settings.database_url == "sqlite:///ledger.db"

    def test_from_env(self, tmp_path):
        settings = LedgerSettings.from_env(
            {
                "LEDGER_DATABASE_URL": "postgresql://ledger@db/ledger",
                "LEDGER_LOG_LEVEL": "debug",
                "LEDGER_LOCK_RETRY_ATTEMPTS": "6",
                "LEDGER_CONFIG_DIR": str(tmp_path),
            }
        )
        assert settings.database_url == "postgresql://ledger@db/ledger"
        assert settings.log_level == "DEBUG"
        assert settings.lock_retry_attempts == 6
        assert settings.config_dir == tmp_path

    def test_invalid_log_level(self):
        with pytest.raises(ValueError, match="LEDGER_LOG_LEVEL"):
            LedgerSettings.from_env({"LEDGER_LOG_LEVEL": "LOUD"})

    def test_invalid_retry_attempts(self):
        with pytest.raises(ValueError, match="LEDGER_LOCK_RETRY_ATTEMPTS"):
            LedgerSettings.from_env({"LEDGER_LOCK_RETRY_ATTEMPTS": "0"})


class TestBootstrap:

    def test_runtime_seeds_and_books(self, tmp_path, clock):
        settings = LedgerSettings(database_url=f"sqlite:///{tmp_path / 'runtime.db'}", config_dir=DEFAULT_SET_DIR)
        runtime = build_runtime(settings, clock=clock)
        try:
            assert runtime.seed_company("acme", ACTOR_ID) == 11
            assert runtime.seed_company("acme", ACTOR_ID) == 0

            result = runtime.periods.request_close("acme", "2025-01", ACTOR_ID)
            assert result.is_valid
        finally:
            runtime.dispose()
