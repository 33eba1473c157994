"""Aggregate model imports for Alembic auto-detection."""

from project_intake.models.intake_draft import IntakeDraft  # noqa: F401
