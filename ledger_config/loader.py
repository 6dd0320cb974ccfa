"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads the YAML files of one configuration set and parses them into typed,
frozen objects: the chart of accounts (``AccountInfo``), the system
templates (``Template``) and the rule thresholds (``RuleThresholds``).
Runtime callers go through ``ledger_config.get_active_config()``.

Invariants enforced
-------------------
* Every system template passes ``check_template_integrity`` against the
  chart of the same set; a broken set never loads.
* Template and account codes are unique within a set.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  set, so two identical sets always have the same checksum.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Duplicate codes, unknown enum values  -> ``ValueError``.
* Template referencing an unknown account  -> ``TemplateIntegrityError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from ledger_engines.rule_engine import RuleThresholds
from ledger_kernel.domain.ledger import AccountInfo, AccountType, Side
from ledger_kernel.domain.templates import (
    Template,
    check_template_integrity,
    template_from_dict,
)

ROOT_FILE = "root.yaml"
ACCOUNTS_FILE = "accounts.yaml"
TEMPLATES_FILE = "templates.yaml"
RULES_FILE = "rules.yaml"


@dataclass(frozen=True)
class LedgerConfiguration:
    """One loaded configuration set."""

    config_id: str
    version: int
    currency: str
    accounts: tuple[AccountInfo, ...]
    templates: dict[str, Template] = field(hash=False)
    thresholds: RuleThresholds
    checksum: str

    def account(self, code: str) -> AccountInfo | None:
        for info in self.accounts:
            if info.code == code:
                return info
        return None

    @property
    def account_codes(self) -> tuple[str, ...]:
        return tuple(info.code for info in self.accounts)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def parse_account(data: dict[str, Any]) -> AccountInfo:
    return AccountInfo(
        code=str(data["code"]),
        name=str(data["name"]),
        account_type=AccountType(data["type"]),
        normal_side=Side(data["normal_side"]),
        is_system=bool(data.get("is_system", True)),
    )


def parse_accounts(data: dict[str, Any]) -> tuple[AccountInfo, ...]:
    accounts = tuple(parse_account(item) for item in data.get("accounts") or ())
    _ensure_unique("account", [a.code for a in accounts])
    return accounts


def parse_templates(
    data: dict[str, Any],
    account_codes: tuple[str, ...],
) -> dict[str, Template]:
    """
    Parse system templates and check each one against the chart.

    Raises:
        ValueError: Duplicate template codes.
        TemplateIntegrityError: First template with integrity problems.
    """
    templates = [template_from_dict(item, is_system=True) for item in data.get("templates") or ()]
    _ensure_unique("template", [t.code for t in templates])
    for template in templates:
        check_template_integrity(template, account_codes)
    return {template.code: template for template in templates}


def parse_thresholds(data: dict[str, Any]) -> RuleThresholds:
    raw = data.get("thresholds") or {}
    known = {f.name for f in fields(RuleThresholds)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown rule thresholds: {', '.join(unknown)}")
    return RuleThresholds(**raw)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_configuration(set_dir: Path) -> LedgerConfiguration:
    """
    Load and validate the configuration set in ``set_dir``.

    ``rules.yaml`` is optional; missing thresholds fall back to the
    engine defaults.
    """
    root = load_yaml_file(set_dir / ROOT_FILE)
    accounts_data = load_yaml_file(set_dir / ACCOUNTS_FILE)
    templates_data = load_yaml_file(set_dir / TEMPLATES_FILE)
    rules_path = set_dir / RULES_FILE
    rules_data = load_yaml_file(rules_path) if rules_path.exists() else {}

    accounts = parse_accounts(accounts_data)
    templates = parse_templates(templates_data, tuple(a.code for a in accounts))

    return LedgerConfiguration(
        config_id=str(root["config_id"]),
        version=int(root.get("version", 1)),
        currency=str(root.get("currency", "EUR")),
        accounts=accounts,
        templates=templates,
        thresholds=parse_thresholds(rules_data),
        checksum=compute_checksum(
            {
                "root": root,
                "accounts": accounts_data,
                "templates": templates_data,
                "rules": rules_data,
            }
        ),
    )


def _ensure_unique(kind: str, codes: list[str]) -> None:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for code in codes:
        if code in seen:
            duplicates.add(code)
        seen.add(code)
    if duplicates:
        raise ValueError(f"Duplicate {kind} codes: {', '.join(sorted(duplicates))}")
