"""Category and currency management package."""

from expense_scanner.catalog.registry import (
    CURRENCY_SUGGESTIONS,
    CategoryRegistry,
    CurrencyRegistry,
    MembershipChange,
    preferences_from_registries,
    registries_from_preferences,
)

__all__ = [
    "CURRENCY_SUGGESTIONS",
    "CategoryRegistry",
    "CurrencyRegistry",
    "MembershipChange",
    "preferences_from_registries",
    "registries_from_preferences",
]
