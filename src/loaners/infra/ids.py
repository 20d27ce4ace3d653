"""Identifier generation for text primary keys."""

import uuid

RESERVATION_PREFIX = "RES"
CUSTOMER_PREFIX = "CUST"


def new_id(prefix: str) -> str:
    """Return a prefixed identifier, e.g. RES3F9A0C21B7D4."""
    return f"{prefix}{uuid.uuid4().hex[:12].upper()}"
