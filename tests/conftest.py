from pathlib import Path

import pytest

from vulnscan.rules.registry import RuleRegistry, builtin_rule_sources

FIXTURES = Path(__file__).parent / "fixtures"


def rule_source(**overrides):
    source = {
        "id": "TEST001",
        "category": "injection",
        "description": "Test rule",
        "detector": {"kind": "regex", "pattern": "danger"},
        "severity": "warn",
        "remediation": "Remove the danger.",
        "languages": ["javascript"],
    }
    source.update(overrides)
    return source


@pytest.fixture(scope="session")
def builtin_registry():
    return RuleRegistry.load(builtin_rule_sources())


@pytest.fixture
def fixtures_dir():
    return FIXTURES
