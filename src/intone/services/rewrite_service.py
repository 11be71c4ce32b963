"""
Interactive rewrite, generate and lint.

Rewrite/generate may request several variants. They are produced by
sequential evaluator calls: the first at the default temperature, extras at
the variant temperature. A failure on the first call is raised; a failure on
a later call keeps the variants already produced. Outputs on strict channels
are trimmed to the character limit.
"""

from __future__ import annotations

from typing import List, Optional

import structlog

from ..core.config import Settings, get_settings
from ..core.exceptions import EvaluatorError, ValidationError
from ..schemas.evaluation import (
    ChannelOptions,
    EvaluateOptions,
    InstructionPayload,
    LintRequest,
    LintResponse,
    RewriteRequest,
    RewriteResponse,
    RewriteVariant,
)
from ..schemas.rules import FilterContext, Rule
from .constraints import trim_to_fit
from .credentials import resolve_credential
from .evaluator_client import SemanticEvaluator, evaluate_with_timeout
from .pattern_detector import evaluate_rules
from .prompt_compiler import compile_channel_prompt, compile_prompt
from .response_parser import parse_lint_response, parse_rewrite_response
from .rule_store import RuleStore

logger = structlog.get_logger(__name__)


class RewriteService:
    """Rewrite, generate and lint against a brand's active rules."""

    def __init__(self, rule_store: RuleStore, evaluator: SemanticEvaluator, settings: Optional[Settings] = None):
        self.rule_store = rule_store
        self.evaluator = evaluator
        self.settings = settings or get_settings()

    def _compile(self, rules: List[Rule], request: RewriteRequest) -> InstructionPayload:
        channel_aware = (
            request.channel is not None or request.brief is not None or request.options != ChannelOptions()
        )
        if not channel_aware:
            return compile_prompt(rules, request.context, request.text, request.mode, request.locale)

        source = request.brief if request.mode == "generate" and request.brief is not None else request.text
        return compile_channel_prompt(rules, request.channel, source, request.mode, request.locale, request.options)

    def _variant(self, payload: InstructionPayload, data: dict) -> RewriteVariant:
        result = parse_rewrite_response(data, payload.rule_keys)
        output = result.output
        was_trimmed = False
        overage = 0

        if payload.char_limit is not None:
            fitted = trim_to_fit(output.strip() if payload.strict_limit else output, payload.char_limit, payload.strict_limit)
            output, was_trimmed, overage = fitted.text, fitted.was_trimmed, fitted.overage

        return RewriteVariant(
            output=output,
            changes=result.changes,
            no_changes=result.no_changes,
            no_changes_reason=result.no_changes_reason,
            was_trimmed=was_trimmed,
            overage=overage,
        )

    async def rewrite(self, request: RewriteRequest) -> RewriteResponse:
        """
        Rewrite or generate text.

        Raises:
            ValidationError: missing input for the mode
            EvaluatorError: the first variant failed
        """
        if request.mode == "rewrite" and not request.text.strip():
            raise ValidationError("Text is required for rewrite mode")
        if request.mode == "generate" and request.brief is None and not request.text.strip():
            raise ValidationError("Generate mode requires a brief or seed text")

        rules = await self.rule_store.list_active_rules(request.brand_id)
        payload = self._compile(rules, request)
        credential = resolve_credential(request.encrypted_api_key)

        variants: List[RewriteVariant] = []
        for index in range(payload.variants):
            temperature = (
                self.settings.evaluator_temperature if index == 0 else self.settings.evaluator_variant_temperature
            )
            options = EvaluateOptions(api_key=credential.api_key, temperature=temperature)
            try:
                data = await evaluate_with_timeout(self.evaluator, payload, options, self.settings.evaluator_deadline)
                variants.append(self._variant(payload, data))
            except EvaluatorError as e:
                if index == 0:
                    raise
                logger.warning(
                    "Variant generation failed, returning earlier variants",
                    variant=index + 1,
                    produced=len(variants),
                    kind=e.kind,
                )
                break

        logger.info(
            "Rewrite completed",
            brand_id=request.brand_id,
            mode=payload.mode.value,
            channel=request.channel,
            variants=len(variants),
            credential_source=credential.source.value,
        )

        return RewriteResponse(
            mode=payload.mode,
            variants=variants,
            rule_keys=payload.rule_keys,
            char_limit=payload.char_limit,
            strict_limit=payload.strict_limit,
        )

    async def lint(self, request: LintRequest) -> LintResponse:
        """Run pattern detectors and the semantic evaluator; merge the results."""
        rules = await self.rule_store.list_active_rules(request.brand_id)
        context = FilterContext(surface=request.context, locale=request.locale)
        findings = evaluate_rules(rules, request.text, context)

        payload = compile_prompt(rules, request.context, request.text, "lint", request.locale)
        if not payload.rule_keys:
            return LintResponse(issues=[], findings=findings, rule_keys=[])

        credential = resolve_credential(request.encrypted_api_key)
        data = await evaluate_with_timeout(
            self.evaluator,
            payload,
            EvaluateOptions(api_key=credential.api_key),
            self.settings.evaluator_deadline,
        )
        issues = parse_lint_response(data)

        logger.info(
            "Lint completed",
            brand_id=request.brand_id,
            pattern_findings=len(findings),
            semantic_issues=len(issues),
        )
        return LintResponse(issues=issues, findings=findings, rule_keys=payload.rule_keys)
