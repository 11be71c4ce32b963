"""
Prompt compiler.

Turns the applicable rule set plus input text into a single instruction
payload for the semantic evaluator.

Section order is fixed:
1. Tone of Voice (custom variant rendered as a trailing subsection)
2. Grammar and Style
3. Formatting
4. Brand Rules (synthesized from the terminology.brand rule)
5. Terminology (PREFERRED / FORBIDDEN)
6. Other Rules

Within a section rules are ordered by (priority, name).
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import structlog

from ..core.exceptions import ValidationError
from ..schemas.evaluation import ChannelOptions, EvaluationMode, GenerateBrief, InstructionPayload
from ..schemas.rules import FilterContext, Rule, RuleKind, ValueKind
from .channels import get_channel
from .rule_filter import filter_rules

logger = structlog.get_logger(__name__)


SYSTEM_MESSAGE = (
    "You are a brand language governance assistant. Your primary responsibility is to strictly follow "
    "all brand rules provided in the user's prompt. These rules are requirements, not suggestions. "
    "Always return valid JSON responses according to the specified format. Do not include any text "
    "outside the JSON structure. When rules specify values, configurations, or preferences, you must "
    "apply them exactly as specified."
)

BRAND_RULE_KEY = "terminology.brand"
CUSTOM_VARIANT_KEY = "tone.custom_variant"
FORMALITY_KEY = "tone.formality"
PERSPECTIVE_KEY = "grammar.perspective"
ACRONYMS_KEY = "grammar.acronyms"
ACRONYMS_ALLOWED_KEY = "grammar.acronyms.allowed"

FORMALITY_LABELS = {
    1: "Very Conversational",
    2: "Conversational",
    3: "Neutral",
    4: "Formal",
    5: "Very Formal",
}

_TRADEMARK_SYMBOLS = {"tm": "™", "r": "®"}

_REQUIREMENT_BANNER = "**CRITICAL: You MUST strictly follow these {what} rules. They are not suggestions - they are requirements.**"

_TASK_VERBS = {
    EvaluationMode.REWRITE: "rewrite",
    EvaluationMode.LINT: "analyze and suggest improvements for",
    EvaluationMode.GENERATE: "generate",
}

_TEXT_HEADINGS = {
    EvaluationMode.REWRITE: "Rewrite",
    EvaluationMode.LINT: "Analyze",
    EvaluationMode.GENERATE: "Generate",
}

REWRITE_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["output", "changes", "noChanges"],
    "properties": {
        "output": {"type": "string"},
        "changes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["ruleKey", "reason", "original", "revised"],
                "properties": {
                    "ruleKey": {"type": "string"},
                    "reason": {"type": "string"},
                    "original": {"type": "string"},
                    "revised": {"type": "string"},
                },
            },
        },
        "noChanges": {"type": "boolean"},
        "noChangesReason": {"type": ["string", "null"]},
    },
}

LINT_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["issues"],
    "properties": {
        "issues": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["ruleKey", "reason", "original", "severity"],
                "properties": {
                    "ruleKey": {"type": "string"},
                    "reason": {"type": "string"},
                    "original": {"type": "string"},
                    "suggested": {"type": "string"},
                    "severity": {"enum": ["error", "warning", "suggestion"]},
                },
            },
        }
    },
}


def parse_mode(mode: Union[str, EvaluationMode]) -> EvaluationMode:
    """Validate a caller-supplied mode string."""
    try:
        return EvaluationMode(mode)
    except ValueError as exc:
        raise ValidationError(f"Unknown evaluation mode: {mode}") from exc


# ============================================================================
# Value rendering
# ============================================================================


def render_value(rule: Rule) -> Optional[str]:
    """Render a rule's configured value as a literal, or None when unset."""
    value = rule.value
    if value is None:
        return None

    if value.kind == ValueKind.BOOLEAN:
        return "ENABLED" if value.value else "DISABLED"
    if value.kind == ValueKind.SCALE:
        if rule.key == FORMALITY_KEY:
            label = FORMALITY_LABELS.get(value.value, f"Level {value.value}")
            return f"{value.value} ({label})"
        return f"{value.value} (on a scale where 1 = least, 5 = most)"
    if value.kind == ValueKind.TEXT:
        return f'"{value.value}"'
    if value.kind == ValueKind.STRUCTURED:
        return json.dumps(value.value, separators=(",", ":"), ensure_ascii=False)
    raise ValueError(f"Unhandled value kind: {value.kind}")


def _value_line(rule: Rule) -> Optional[str]:
    rendered = render_value(rule)
    if rendered is None:
        return None
    return f"  **Value: {rendered}**"


def _formality_instruction(value: float) -> str:
    if value == 3:
        return (
            "  **CRITICAL: Neutral formality means PRESERVE the existing formality level of the text. "
            "Do NOT make text more formal or more conversational. If the text is already "
            'neutral/conversational (e.g., "Hi, I\'m James"), keep it as is and make minimal edits. '
            "Only change formality if the text is clearly too formal or too casual for the context.**"
        )
    if value < 3:
        return (
            "  **CRITICAL: Conversational formality means loosen formality: use contractions, casual "
            "greetings (Hi, Hey), and natural speech patterns. Make formal text more conversational.**"
        )
    return (
        "  **CRITICAL: Formal formality means tighten formality: avoid contractions, use full words "
        "(I am instead of I'm), and more structured language. Make casual text more formal.**"
    )


def _examples_lines(rule: Rule) -> List[str]:
    lines = []
    if rule.examples.do:
        lines.append(f"  Do: {', '.join(rule.examples.do)}")
    if rule.examples.dont:
        lines.append(f"  Don't: {', '.join(rule.examples.dont)}")
    return lines


def _ordered(rules: Iterable[Rule]) -> List[Rule]:
    return sorted(rules, key=lambda r: (r.priority, r.name))


# ============================================================================
# Sections
# ============================================================================


def _global_instructions(mode: EvaluationMode) -> List[str]:
    return [
        f"You are a brand language governance assistant. Your task is to {_TASK_VERBS[mode]} text "
        "according to the brand's tone of voice and grammar rules.",
        "",
        "**CRITICAL INSTRUCTIONS:**",
        "- You MUST strictly follow ALL brand rules provided below. These are requirements, not suggestions.",
        "- Every rule value shown is the user's explicit configuration - you must apply it exactly.",
        "- If a rule is marked as ENABLED or has a specific value, you MUST apply it.",
        "- If a word or phrase is FORBIDDEN, you MUST NOT use it and MUST use the suggested alternative.",
        "- If a rule has a numeric value (1-5), apply that level of the rule consistently.",
        '- **PRESERVE THE ORIGINAL VOICE AND PERSPECTIVE**: Do NOT change first person ("I", "I\'m", "I own") '
        'to third person ("he", "James is", "he owns"). Do NOT change second person ("you", "your") to third '
        "person. Only change perspective if a specific rule explicitly requires it AND the context makes sense.",
        '- **MINIMAL CHANGES FOR NEUTRAL SETTINGS**: When formality or other tone settings are set to "neutral" '
        "or level 3, make MINIMAL changes. Preserve the original style, voice, and structure unless there are "
        "clear violations of brand rules.",
        "- **NATURAL LANGUAGE**: Your output must sound natural and human-written. Avoid robotic, overly formal, "
        "or stilted language. If the original text is conversational and natural, keep it that way.",
        "- Do not deviate from these rules. Consistency is critical.",
        "",
    ]


def _tone_section(rules: List[Rule]) -> List[str]:
    custom = next((r for r in rules if r.key == CUSTOM_VARIANT_KEY), None)
    standard = [r for r in rules if r.key != CUSTOM_VARIANT_KEY]

    lines = ["## Tone of Voice Rules", "", _REQUIREMENT_BANNER.format(what="tone"), ""]
    for rule in standard:
        lines.append(f"- **{rule.name}**: {rule.description}")
        value_line = _value_line(rule)
        if value_line:
            lines.append(value_line)
            if rule.key == FORMALITY_KEY and rule.value.kind == ValueKind.SCALE:
                lines.append(_formality_instruction(rule.value.value))
        if rule.rationale:
            lines.append(f"  Why: {rule.rationale}")
        lines.extend(_examples_lines(rule))
        if rule.suggestions:
            lines.append(f"  Suggestions: {', '.join(rule.suggestions)}")
        lines.append("")

    if custom is not None and custom.value is not None and custom.value.value:
        narrative = custom.value.value if custom.value.kind == ValueKind.TEXT else render_value(custom)
        lines.extend(
            [
                "## Custom Tone Variant",
                "",
                "The brand has the following specific tone characteristics that must be incorporated:",
                str(narrative),
                "",
                "These characteristics should be applied consistently across all content and take precedence "
                "over general tone guidelines when they conflict.",
                "",
            ]
        )
    return lines


def _allowed_acronyms(rules: List[Rule]) -> List[Tuple[str, str]]:
    acronyms = []
    for rule in rules:
        if rule.key != ACRONYMS_ALLOWED_KEY:
            continue
        data = rule.value.value if rule.value and rule.value.kind == ValueKind.STRUCTURED else {}
        acronyms.append((data.get("acronym") or rule.name, data.get("fullMeaning") or rule.description))
    return acronyms


def _grammar_section(rules: List[Rule], applicable: List[Rule]) -> List[str]:
    lines = ["## Grammar and Style Rules", "", _REQUIREMENT_BANNER.format(what="grammar"), ""]
    for rule in rules:
        lines.append(f"- **{rule.name}**: {rule.description}")
        if rule.key == PERSPECTIVE_KEY:
            lines.append(
                "  **IMPORTANT: This rule ONLY applies to UI text only (product interface copy such as "
                "buttons, labels and form fields). Do NOT apply it to personal bios, introductions, marketing "
                "copy, or any text where first person is appropriate and natural.**"
            )
        value_line = _value_line(rule)
        if value_line:
            lines.append(value_line)

        if rule.key == ACRONYMS_KEY and rule.value and rule.value.kind == ValueKind.STRUCTURED:
            if rule.value.value.get("allowCommonAllowlist") is True:
                allowed = _allowed_acronyms(applicable)
                if allowed:
                    lines.append("  **Allowed Acronyms and Abbreviations:**")
                    lines.extend(f"    - {acronym}: {meaning}" for acronym, meaning in allowed)
                    lines.append(
                        "  You MAY use these acronyms without spelling them out. Use them when appropriate "
                        "and when they improve readability."
                    )

        if rule.rationale:
            lines.append(f"  Why: {rule.rationale}")
        lines.extend(_examples_lines(rule))
        if rule.suggestions:
            lines.append(f"  Use instead: {', '.join(rule.suggestions)}")
        lines.append("")
    return lines


def _formatting_section(rules: List[Rule]) -> List[str]:
    lines = ["## Formatting Rules", "", _REQUIREMENT_BANNER.format(what="formatting"), ""]
    for rule in rules:
        lines.append(f"- **{rule.name}**: {rule.description}")
        value_line = _value_line(rule)
        if value_line:
            lines.append(value_line)
        lines.extend(_examples_lines(rule))
        lines.append("")
    return lines


def _brand_section(rule: Rule) -> List[str]:
    data: Dict[str, Any] = rule.value.value
    brand_name = data.get("brandName") or rule.name or ""
    brand_symbol = data.get("brandNameSymbol") or "none"
    copyright_usage = data.get("copyrightUsage") or "first_mention"
    product_symbol = data.get("productNameSymbol") or "none"
    other_rules = data.get("otherBrandRules") or ""
    year = datetime.utcnow().year

    lines = ["## Brand Rules", "", _REQUIREMENT_BANNER.format(what="brand"), ""]
    if brand_name:
        branded = brand_name + _TRADEMARK_SYMBOLS.get(brand_symbol, "")
        lines.append(f"- **Brand Name**: {branded}")
        lines.append(f'  When referring to the brand, you MUST use "{branded}" (not just "{brand_name}").')
        if product_symbol in _TRADEMARK_SYMBOLS:
            lines.append(f"  Product names should use the {_TRADEMARK_SYMBOLS[product_symbol]} symbol.")

    if copyright_usage == "always":
        lines.append("- **Copyright Symbol**: Always add © when mentioning copyright.")
        lines.append(f'  Example: "© {year} {brand_name or "Brand"}. All rights reserved."')
    elif copyright_usage == "first_mention":
        lines.append("- **Copyright Symbol**: Add © only on the first mention of copyright per document.")
        lines.append(f'  Example: "© {year} {brand_name or "Brand"}." (only on first mention)')
    else:
        lines.append("- **Copyright Symbol**: Do not add copyright symbol automatically.")

    if other_rules.strip():
        lines.append("- **Additional Brand Rules**:")
        lines.append(f"  {other_rules}")
    lines.append("")
    return lines


def _terminology_section(rules: List[Rule]) -> List[str]:
    lines = ["## Terminology Rules", "", _REQUIREMENT_BANNER.format(what="terminology"), ""]
    for rule in rules:
        if rule.kind == RuleKind.FORBIDDEN_WORDS:
            lines.append(f"- **FORBIDDEN: {rule.name}**")
            lines.append(f"  {rule.description}")
            if rule.suggestions:
                lines.append(f"  **MUST use instead: {', '.join(rule.suggestions)}**")
        else:
            lines.append(f"- **PREFERRED: {rule.name}**")
            lines.append(f"  {rule.description}")
        value_line = _value_line(rule)
        if value_line:
            lines.append(value_line)
        lines.extend(_examples_lines(rule))
        lines.append("")
    return lines


def _other_section(rules: List[Rule]) -> List[str]:
    lines = ["## Other Rules", ""]
    for rule in rules:
        lines.append(f"- {rule.name}: {rule.description}")
        if rule.rationale:
            lines.append(f"  Why: {rule.rationale}")
        lines.append("")
    return lines


def _response_instructions(mode: EvaluationMode, rule_keys: List[str]) -> List[str]:
    if mode == EvaluationMode.LINT:
        return [
            "Return your response as JSON in this format:",
            "{",
            '  "issues": [',
            "    {",
            '      "ruleKey": "tone.formality",',
            '      "reason": "explanation of the issue",',
            '      "original": "problematic text snippet",',
            '      "suggested": "suggested improvement",',
            '      "severity": "error" | "warning" | "suggestion"',
            "    }",
            "  ]",
            "}",
            "",
            "- Every issue MUST reference a specific rule key from the rules provided above.",
            f"- Valid rule keys: {', '.join(rule_keys) if rule_keys else '(none)'}",
            '- "original" MUST be copied verbatim from the text.',
        ]

    return [
        "Return your response as JSON in this format:",
        "{",
        '  "output": "the revised or generated text",',
        '  "changes": [',
        "    {",
        '      "ruleKey": "tone.formality",',
        '      "reason": "explanation of the change with specific rule reference",',
        '      "original": "original text snippet",',
        '      "revised": "revised text snippet"',
        "    }",
        "  ],",
        '  "noChanges": false,',
        '  "noChangesReason": null',
        "}",
        "",
        "**CRITICAL INSTRUCTIONS FOR RESPONSE:**",
        '- If you make ANY changes, you MUST include them in the "changes" array with:',
        '  - "ruleKey": The exact rule key/slug that triggered the change',
        '  - "reason": A clear explanation of why this change was made, referencing the specific rule',
        '  - "original": The exact text snippet that was changed',
        '  - "revised": The exact text snippet after the change',
        "- If you make NO changes (the text already follows all brand rules), set:",
        '  - "noChanges": true',
        '  - "noChangesReason": A clear explanation of why no changes were needed',
        '  - "changes": [] (empty array)',
        "- Every change MUST reference a specific rule key from the rules provided above.",
        f"- Valid rule keys: {', '.join(rule_keys) if rule_keys else '(none)'}",
    ]


def _rule_sections(applicable: List[Rule]) -> Tuple[List[str], List[str]]:
    """Render all rule sections. Returns (lines, compiled rule keys)."""
    brand_rule = next(
        (
            r
            for r in applicable
            if r.key == BRAND_RULE_KEY and r.value is not None and r.value.kind == ValueKind.STRUCTURED
        ),
        None,
    )
    regular = [r for r in applicable if r.key not in (BRAND_RULE_KEY, ACRONYMS_ALLOWED_KEY)]
    # A brand rule without a structured value is rendered as plain terminology
    loose_brand = [r for r in applicable if r.key == BRAND_RULE_KEY and r is not brand_rule]

    tone = _ordered(r for r in regular if r.kind == RuleKind.TONE_VOICE)
    grammar = _ordered(r for r in regular if r.kind == RuleKind.GRAMMAR_STYLE)
    formatting = _ordered(r for r in regular if r.kind == RuleKind.FORMATTING)
    terminology = _ordered(
        [r for r in regular if r.kind in (RuleKind.TERMINOLOGY, RuleKind.FORBIDDEN_WORDS)] + loose_brand
    )
    other = _ordered(r for r in regular if r.kind == RuleKind.OTHER)

    lines: List[str] = []
    keys: List[str] = []

    if tone:
        lines.extend(_tone_section(tone))
        keys.extend(r.key for r in tone)
    if grammar:
        lines.extend(_grammar_section(grammar, applicable))
        keys.extend(r.key for r in grammar)
    if formatting:
        lines.extend(_formatting_section(formatting))
        keys.extend(r.key for r in formatting)
    if brand_rule is not None:
        lines.extend(_brand_section(brand_rule))
        keys.append(brand_rule.key)
    if terminology:
        lines.extend(_terminology_section(terminology))
        keys.extend(r.key for r in terminology)
    if other:
        lines.extend(_other_section(other))
        keys.extend(r.key for r in other)

    # Preserve first occurrence order, drop duplicates
    return lines, list(dict.fromkeys(keys))


def _schema_for(mode: EvaluationMode) -> Dict[str, Any]:
    return LINT_RESPONSE_SCHEMA if mode == EvaluationMode.LINT else REWRITE_RESPONSE_SCHEMA


# ============================================================================
# Public API
# ============================================================================


def compile_prompt(
    rules: Iterable[Rule],
    context: Optional[str],
    text: str,
    mode: Union[str, EvaluationMode],
    locale: Optional[str] = None,
) -> InstructionPayload:
    """
    Compile applicable rules and text into an evaluation request.

    Args:
        rules: Candidate rules (filtered here)
        context: Surface tag, e.g. "ui" or "marketing"
        text: Text to rewrite, analyze or use as generation seed
        mode: rewrite | lint | generate
        locale: Target locale

    Returns:
        InstructionPayload with prompt, compiled rule keys and response schema

    Raises:
        ValidationError: unknown mode
    """
    mode = parse_mode(mode)
    applicable = filter_rules(rules, FilterContext(surface=context, locale=locale))

    lines = _global_instructions(mode)
    lines.append(f"Locale: {locale or 'unspecified'}")
    lines.append(f"Context: {context or 'general'}")
    lines.append("")

    section_lines, rule_keys = _rule_sections(applicable)
    lines.extend(section_lines)

    lines.extend([f"## Text to {_TEXT_HEADINGS[mode]}", "", text, ""])
    lines.extend(_response_instructions(mode, rule_keys))

    logger.debug("Compiled prompt", mode=mode.value, rules=len(rule_keys), text_length=len(text))

    return InstructionPayload(
        system=SYSTEM_MESSAGE,
        prompt="\n".join(lines),
        mode=mode,
        rule_keys=rule_keys,
        response_schema=_schema_for(mode),
    )


def _brief_lines(brief: GenerateBrief) -> List[str]:
    lines = ["## Content Brief", "", f"Topic: {brief.topic}", "", "Key points:"]
    lines.extend(f"- {point}" for point in brief.key_points)
    if brief.cta:
        lines.extend(["", f"Call to action: {brief.cta}"])
    if brief.offer:
        lines.append(f"Offer: {brief.offer}")
    if brief.links:
        lines.extend(["", f"Links to include: {', '.join(brief.links)}"])
    lines.append("")
    return lines


def compile_channel_prompt(
    rules: Iterable[Rule],
    channel_id: Optional[str],
    text_or_brief: Union[str, GenerateBrief],
    mode: Union[str, EvaluationMode],
    locale: Optional[str] = None,
    options: Optional[ChannelOptions] = None,
) -> InstructionPayload:
    """
    Channel-aware variant of :func:`compile_prompt` for rewrite and generate.

    Adds the channel name, the effective character limit with its strictness,
    intent/audience/formality/energy lines, the variant count and, in generate
    mode, a content brief section.
    """
    mode = parse_mode(mode)
    if mode == EvaluationMode.LINT:
        raise ValidationError("Channel prompts support rewrite and generate modes only")
    options = options or ChannelOptions()

    lines = _global_instructions(mode)
    lines.append(f"Locale: {locale or 'unspecified'}")

    channel = get_channel(channel_id)
    if channel_id and channel is None:
        logger.warning("Unknown channel requested", channel=channel_id)

    char_limit = options.char_limit if options.char_limit is not None else (channel.char_limit if channel else None)
    if options.strict_limit is not None:
        strict = options.strict_limit
    else:
        strict = channel.strict_limit if channel else False

    if channel is not None:
        lines.append(f"Channel: {channel.name}")
    if char_limit is not None:
        marker = "STRICT - must not exceed" if strict else "guideline - aim for this length"
        lines.append(f"Character limit: {char_limit} characters ({marker})")
    if channel is not None and channel.formatting != "plain":
        lines.append(f"Formatting: {channel.formatting}")
    lines.append("")

    style_lines = []
    if options.intent:
        style_lines.append(f"Intent: {options.intent}")
    if options.audience:
        style_lines.append(f"Target audience: {options.audience}")
    if options.formality is not None:
        style_lines.append(f"Formality level: {options.formality}")
    if options.energy is not None:
        style_lines.append(f"Energy level: {options.energy}")
    if options.variants > 1:
        style_lines.append(f"Generate {options.variants} distinct variants")
    if style_lines:
        lines.extend(style_lines)
        lines.append("")

    applicable = filter_rules(rules, FilterContext(channel=channel_id, locale=locale))
    section_lines, rule_keys = _rule_sections(applicable)
    lines.extend(section_lines)

    if mode == EvaluationMode.GENERATE and isinstance(text_or_brief, GenerateBrief):
        lines.extend(_brief_lines(text_or_brief))
    else:
        text = text_or_brief if isinstance(text_or_brief, str) else ""
        lines.extend([f"## Text to {_TEXT_HEADINGS[mode]}", "", text, ""])

    lines.extend(_response_instructions(mode, rule_keys))

    logger.debug(
        "Compiled channel prompt",
        mode=mode.value,
        channel=channel_id,
        char_limit=char_limit,
        strict=strict,
        rules=len(rule_keys),
    )

    return InstructionPayload(
        system=SYSTEM_MESSAGE,
        prompt="\n".join(lines),
        mode=mode,
        rule_keys=rule_keys,
        response_schema=_schema_for(mode),
        char_limit=char_limit,
        strict_limit=strict,
        variants=options.variants,
    )
