"""Configuration records for stackup operations."""

from .models import (
    ClientSettings,
    StackUpdateOptions,
    CreateOrUpdateOptions,
    ChangeSetOptions,
    DEFAULT_CAPABILITIES,
    REGION_PATTERN,
    ROLE_ARN_PATTERN,
)

__all__ = [
    "ClientSettings",
    "StackUpdateOptions",
    "CreateOrUpdateOptions",
    "ChangeSetOptions",
    "DEFAULT_CAPABILITIES",
    "REGION_PATTERN",
    "ROLE_ARN_PATTERN",
]
