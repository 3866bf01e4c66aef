"""
Utility functions for gqlgate.

Includes:
- Case conversion (snake_case / camelCase -> PascalCase)
- Names of the types generated for each mutation
"""

from __future__ import annotations

import re


# =============================================================================
# Case conversion utilities
# =============================================================================

_SNAKE_TO_CAMEL_PATTERN = re.compile(r'_([a-z0-9])')


def to_camel_case(name: str) -> str:
    """
    Convert snake_case to camelCase.

    Examples:
        set_user_email -> setUserEmail
        setUserEmail -> setUserEmail
    """
    return _SNAKE_TO_CAMEL_PATTERN.sub(lambda match: match.group(1).upper(), name)


def to_pascal_case(name: str) -> str:
    """
    Convert snake_case or camelCase to PascalCase.

    Examples:
        set_user_email -> SetUserEmail
        setUserEmail -> SetUserEmail
    """
    camel = to_camel_case(name)
    return camel[0].upper() + camel[1:] if camel else camel


# =============================================================================
# Generated mutation type names
# =============================================================================


def mutation_input_name(mutation: str) -> str:
    return f"{to_pascal_case(mutation)}Input"


def mutation_success_name(mutation: str) -> str:
    return f"{to_pascal_case(mutation)}Success"


def mutation_result_name(mutation: str) -> str:
    return f"{to_pascal_case(mutation)}Result"


def mutation_payload_name(mutation: str) -> str:
    return f"{to_pascal_case(mutation)}Payload"
