"""
Rule endpoints: prompt compilation and deterministic pattern evaluation.
"""

import structlog
from fastapi import APIRouter, Depends

from ..schemas.evaluation import (
    ChannelOptions,
    CompileRequest,
    InstructionPayload,
    PatternEvaluationRequest,
    PatternEvaluationResponse,
)
from ..schemas.rules import FilterContext
from ..services.pattern_detector import evaluate_rules
from ..services.prompt_compiler import compile_channel_prompt, compile_prompt, parse_mode
from ..services.rule_store import RuleStore
from ..dependencies import get_rule_store

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/compile", response_model=InstructionPayload)
async def compile_rules(
    request: CompileRequest,
    rule_store: RuleStore = Depends(get_rule_store),
) -> InstructionPayload:
    """Compile a brand's active rules and text into an evaluator payload."""
    mode = parse_mode(request.mode)
    rules = await rule_store.list_active_rules(request.brand_id)

    if request.channel or request.brief is not None or request.options != ChannelOptions():
        source = request.brief if request.brief is not None else request.text
        return compile_channel_prompt(rules, request.channel, source, mode, request.locale, request.options)
    return compile_prompt(rules, request.context, request.text, mode, request.locale)


@router.post("/evaluate-pattern", response_model=PatternEvaluationResponse)
async def evaluate_pattern(
    request: PatternEvaluationRequest,
    rule_store: RuleStore = Depends(get_rule_store),
) -> PatternEvaluationResponse:
    """Run regex/dictionary detectors and return offset-exact findings."""
    rules = await rule_store.list_active_rules(request.brand_id)
    findings = evaluate_rules(rules, request.text, FilterContext(surface=request.context, locale=request.locale))

    logger.info("Pattern evaluation", brand_id=request.brand_id, findings=len(findings))
    return PatternEvaluationResponse(findings=findings, total=len(findings))
