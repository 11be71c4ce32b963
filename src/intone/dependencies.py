"""
Shared service instances for the HTTP layer.

Each provider is cached so the process shares one store, one evaluator client
and one audit processor. Tests swap them with ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from .services.audit_processor import AuditProcessor
from .services.audit_store import AuditStore, InMemoryAuditStore
from .services.evaluator_client import SemanticEvaluator, get_evaluator_client
from .services.rewrite_service import RewriteService
from .services.rule_store import InMemoryRuleStore, RuleStore


@lru_cache()
def get_rule_store() -> RuleStore:
    return InMemoryRuleStore()


@lru_cache()
def get_audit_store() -> AuditStore:
    return InMemoryAuditStore()


def get_evaluator() -> SemanticEvaluator:
    return get_evaluator_client()


_audit_processor = None


def get_audit_processor(
    rule_store: RuleStore = Depends(get_rule_store),
    audit_store: AuditStore = Depends(get_audit_store),
    evaluator: SemanticEvaluator = Depends(get_evaluator),
) -> AuditProcessor:
    """Process-wide audit processor, created once; background tasks are tracked on it."""
    global _audit_processor

    if _audit_processor is None:
        _audit_processor = AuditProcessor(rule_store, audit_store, evaluator)
    return _audit_processor


def get_rewrite_service(
    rule_store: RuleStore = Depends(get_rule_store),
    evaluator: SemanticEvaluator = Depends(get_evaluator),
) -> RewriteService:
    return RewriteService(rule_store, evaluator)


async def shutdown_services() -> None:
    global _audit_processor

    if _audit_processor is not None:
        await _audit_processor.shutdown()
        _audit_processor = None
