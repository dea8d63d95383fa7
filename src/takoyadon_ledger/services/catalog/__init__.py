"""Catalog service exports."""

from .service import (  # noqa: F401
    DEFAULT_ACTIVITY_RULES,
    ActivityRuleBook,
    RewardCatalog,
    RewardPrice,
)
