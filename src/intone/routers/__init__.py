"""HTTP routers."""

from . import audits, constraints, health, rewrite, rules

__all__ = ["audits", "constraints", "health", "rewrite", "rules"]
