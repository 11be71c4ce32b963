"""
Intone - Rule Governance Engine for brand language.

Checks written content against a brand's language rulebook:

1. Pattern Detector - regex/dictionary detectors with exact offsets
2. Prompt Compiler - active rules + text -> one instruction payload
3. Content Ingestion - crawl URLs, parse uploaded or linked files
4. Chunker / Reconciler - context-window splitting and offset mapping
5. Audit Aggregator - category/severity counts and bounded scores
6. Constraint Enforcer - word-safe trimming to channel limits

Usage:
    uvicorn intone.main:app
"""

__version__ = "0.1.0"
