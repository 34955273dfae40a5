"""
Error Message Utilities

Turns raw PostgreSQL error text into messages a librarian can act on
(duplicate barcodes, unknown borrowers, invalid states).
"""

import re
from typing import Optional

from models import BorrowerState, ItemState

# Valid values for the enum types declared in schema.sql
ENUM_VALUES = {
    "borrower_state_enum": [s.value for s in BorrowerState],
    "item_state_enum": [s.value for s in ItemState],
}

# Human-readable constraint explanations
CONSTRAINT_MESSAGES = {
    "items_barcode_key": "An item with this barcode already exists.",
    "borrowers_borrowernumber_key": "A borrower with this borrower number already exists.",
    "checkouts_barcode_key": "This item is already checked out.",
    "checkouts_barcode_fkey": "The item does not exist.",
    "checkouts_borrowernumber_fkey": "The borrower does not exist.",
    "check_fine_paid": "Paid fines cannot be negative.",
    "check_fine_due": "Fines due cannot be negative.",
}


def enhance_error_message(error: Exception) -> str:
    """
    Enhance database error messages with human-readable explanations.

    Handles:
    - Invalid enum values (adds list of valid values)
    - Known unique, foreign key and check constraints
    - Not-null violations

    Returns the enhanced error message string.
    """
    error_str = str(error)

    enum_match = re.search(r'invalid input value for enum (\w+): "([^"]*)"', error_str)
    if enum_match:
        enum_name = enum_match.group(1)
        invalid_value = enum_match.group(2)
        valid_values = ENUM_VALUES.get(enum_name, [])
        if valid_values:
            return (
                f"Invalid value '{invalid_value}' for {enum_name}. "
                f"Valid values: {', '.join(valid_values)}"
            )

    constraint_match = re.search(r'constraint "(\w+)"', error_str)
    if constraint_match:
        constraint_name = constraint_match.group(1)
        explanation = CONSTRAINT_MESSAGES.get(constraint_name)
        if explanation:
            return f"Constraint violation ({constraint_name}): {explanation}"
        if "duplicate key value" in error_str:
            return f"Duplicate entry: A record with this value already exists ({constraint_name})."
        if "foreign key constraint" in error_str:
            return (
                f"Foreign key violation ({constraint_name}): "
                f"The referenced record does not exist. {error_str}"
            )

    null_match = re.search(r'null value in column "(\w+)"', error_str)
    if null_match:
        return f"Required field missing: '{null_match.group(1)}' cannot be null."

    return error_str


def get_enum_values(enum_name: str) -> Optional[list]:
    """Get valid values for a known enum type."""
    return ENUM_VALUES.get(enum_name)
