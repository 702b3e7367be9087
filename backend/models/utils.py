"""Shared helpers for ORM models."""

import uuid


def generate_uuid() -> str:
    """Primary key default: a random UUID4 as a string."""
    return str(uuid.uuid4())
