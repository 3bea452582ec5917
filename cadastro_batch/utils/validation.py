"""
Input validation utilities for the batch job.

Provides checks for values that end up interpolated into SQL text
(table and column names) and for positional column mappings.
"""

import re
from collections.abc import Sequence


class ValidationError(ValueError):
    """Raised when input validation fails."""
    pass


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Sanitize an SQL identifier (table name, column name, etc.).

    This is a strict validation that only allows safe SQL identifiers.
    Use this for dynamic table/column names to prevent SQL injection.

    Args:
        identifier: The identifier to sanitize
        field_name: Name of the field (for error messages)

    Returns:
        The validated identifier

    Raises:
        ValidationError: If validation fails

    Examples:
        >>> sanitize_sql_identifier("pessoa")
        'pessoa'
        >>> sanitize_sql_identifier("pessoa; DROP TABLE pessoa;")  # doctest: +SKIP
        ValidationError: identifier contains invalid characters
    """
    if not identifier or not isinstance(identifier, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    identifier = identifier.strip()

    # SQL identifiers: alphanumeric and underscores only, must start with letter or underscore
    if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_]*$', identifier):
        raise ValidationError(
            f"{field_name} contains invalid characters. "
            "SQL identifiers must start with a letter or underscore and contain only "
            "alphanumeric characters and underscores."
        )

    if len(identifier) > 63:  # PostgreSQL limit
        raise ValidationError(f"{field_name} exceeds PostgreSQL maximum length of 63 characters")

    return identifier


def validate_column_names(names: Sequence[str], field_name: str = "names") -> list[str]:
    """
    Validate an ordered list of column names.

    Args:
        names: Column names in positional order
        field_name: Name of the field (for error messages)

    Returns:
        The names as a list

    Raises:
        ValidationError: If the list is empty or has duplicates
    """
    if isinstance(names, str) or not names:
        raise ValidationError(f"{field_name} must be a non-empty list of column names")

    names = [name.strip() for name in names]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ValidationError(f"{field_name} contains duplicate columns: {', '.join(duplicates)}")

    return names
