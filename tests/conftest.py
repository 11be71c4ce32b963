"""
Shared fixtures for the governance engine tests.

Settings and the channel registry are cached process-wide; every test starts
from a clean environment so env overrides never leak between tests.
"""

from typing import Any, Dict, List, Optional

import pytest

from intone.core.config import get_settings
from intone.schemas.evaluation import EvaluateOptions, InstructionPayload
from intone.schemas.rules import (
    Detector,
    DetectorKind,
    Rule,
    RuleKind,
    RuleStatus,
    RuleValue,
    Severity,
)
from intone.services.channels import get_channel_registry

TEST_SECRET = "test-secret-key"
TEST_API_KEY = "sk-test-0123456789abcdef"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Deterministic settings: known secret, env API key, fast retries."""
    for name in ("EVALUATOR_API_KEY", "CHANNELS_CONFIG_PATH", "MAX_FILE_SIZE", "MAX_CHUNK_SIZE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SECRET_KEY", TEST_SECRET)
    monkeypatch.setenv("EVALUATOR_API_KEY", TEST_API_KEY)
    get_settings.cache_clear()
    get_channel_registry.cache_clear()
    yield
    get_settings.cache_clear()
    get_channel_registry.cache_clear()


# ============================================================================
# RULE FACTORIES
# ============================================================================


def make_rule(
    key: str,
    kind: RuleKind = RuleKind.OTHER,
    value: Optional[RuleValue] = None,
    detectors: Optional[List[Detector]] = None,
    **overrides: Any,
) -> Rule:
    fields: Dict[str, Any] = {
        "id": f"rule-{key}",
        "key": key,
        "name": overrides.pop("name", key.replace(".", " ").title()),
        "brand_id": "brand-1",
        "kind": kind,
        "status": RuleStatus.ACTIVE,
        "description": f"Description for {key}",
        "value": value,
        "detectors": detectors or [],
    }
    fields.update(overrides)
    return Rule(**fields)


@pytest.fixture
def formality_rule() -> Rule:
    return make_rule(
        "tone.formality",
        RuleKind.TONE_VOICE,
        RuleValue.scale(3),
        name="Formality",
        severity=Severity.MAJOR,
    )


@pytest.fixture
def etc_rule() -> Rule:
    """Forbidden 'etc.' dictionary rule with word boundaries."""
    return make_rule(
        "terminology.no_etc",
        RuleKind.FORBIDDEN_WORDS,
        detectors=[Detector(kind=DetectorKind.DICTIONARY, pattern="etc.", word_boundary=True)],
        name="No etc.",
        suggestions=["and more"],
        severity=Severity.MINOR,
    )


@pytest.fixture
def sample_rules(formality_rule, etc_rule) -> List[Rule]:
    return [formality_rule, etc_rule]


# ============================================================================
# FAKE EVALUATOR
# ============================================================================


class FakeEvaluator:
    """Scripted evaluator: returns queued responses or raises queued errors."""

    def __init__(self, responses: Optional[List[Any]] = None, default: Optional[Dict[str, Any]] = None):
        self.responses = list(responses or [])
        self.default = default
        self.calls: List[Dict[str, Any]] = []

    async def evaluate(self, payload: InstructionPayload, options: Optional[EvaluateOptions] = None) -> Dict[str, Any]:
        self.calls.append({"payload": payload, "options": options})
        if self.responses:
            response = self.responses.pop(0)
        elif self.default is not None:
            response = self.default
        else:
            raise AssertionError("FakeEvaluator has no scripted response")
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def rule_factory():
    """Factory for active rules owned by brand-1."""
    return make_rule


@pytest.fixture
def evaluator_factory():
    """Factory for scripted evaluators."""
    return FakeEvaluator
