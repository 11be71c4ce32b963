"""Governance engine services: detection, compilation, ingestion and auditing."""
