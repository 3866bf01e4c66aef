"""
IAM (Identity and Access Management) module.
"""

from __future__ import annotations

from .guard import Capability, check_capability, guard_field
from .service import allow_all, any_of, is_owner, requires_authenticated, requires_roles

__all__ = [
    "Capability",
    "check_capability",
    "guard_field",
    "allow_all",
    "any_of",
    "is_owner",
    "requires_authenticated",
    "requires_roles",
]
