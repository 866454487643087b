"""
Category and Currency Registries

Both registries layer a user-managed list over a fixed set of built-ins:
- Built-ins are always present and can never be removed
- User additions are kept in insertion order
- Adding something that already exists, or removing something that
  doesn't, is a no-op reported through MembershipChange - never an error

DESIGN DECISION: Category glyphs live inside CategoryRegistry as an
explicit mapping. Adding a category records its glyph here instead of
patching a shared module-level table, so two registries never see each
other's categories.

Note the asymmetry: currencies are upper-cased before the membership
test ("usd" and "USD" are the same currency), categories are only
trimmed ("pets" and "Pets" are two categories).
"""

from enum import Enum
from typing import Iterable, Optional

from expense_scanner.models.expense import (
    BUILT_IN_CATEGORIES,
    BUILT_IN_CATEGORY_GLYPHS,
    BUILT_IN_CURRENCIES,
    CUSTOM_CATEGORY_GLYPH,
    DEFAULT_CURRENCY,
    Preferences,
)


CURRENCY_SUGGESTIONS: tuple[str, ...] = (
    "JPY", "CAD", "AUD", "CHF", "CNY", "KRW", "SGD", "AED", "BRL", "MXN",
)

_MAX_CATEGORY_LENGTH = 100
_MAX_CURRENCY_LENGTH = 10


class MembershipChange(str, Enum):
    """Result of an add/remove request."""
    ADDED = "added"
    ALREADY_EXISTS = "already_exists"
    INVALID = "invalid"          # Blank or oversized name
    REMOVED = "removed"
    NOT_FOUND = "not_found"
    PROTECTED = "protected"      # Built-ins cannot be removed

    @property
    def changed(self) -> bool:
        return self in (MembershipChange.ADDED, MembershipChange.REMOVED)


class _LayeredRegistry:
    """Built-in names plus an append-only list of user additions."""

    max_length = 100

    def __init__(self, built_ins: Iterable[str], custom: Optional[Iterable[str]] = None):
        self._built_ins: tuple[str, ...] = tuple(built_ins)
        self._custom: list[str] = []
        for name in custom or ():
            self.add(name)

    def _canonical(self, name: str) -> str:
        return name.strip()

    @property
    def built_ins(self) -> tuple[str, ...]:
        return self._built_ins

    @property
    def custom(self) -> list[str]:
        return list(self._custom)

    def all(self) -> list[str]:
        """Built-ins first, then user additions in the order they were added."""
        return [*self._built_ins, *self._custom]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self.all()

    def __iter__(self):
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._built_ins) + len(self._custom)

    def is_built_in(self, name: str) -> bool:
        return self._canonical(name) in self._built_ins

    def add(self, name: Optional[str]) -> MembershipChange:
        if not isinstance(name, str):
            return MembershipChange.INVALID
        canonical = self._canonical(name)
        if not canonical or len(canonical) > self.max_length:
            return MembershipChange.INVALID
        if canonical in self:
            return MembershipChange.ALREADY_EXISTS
        self._custom.append(canonical)
        return MembershipChange.ADDED

    def remove(self, name: Optional[str]) -> MembershipChange:
        if not isinstance(name, str):
            return MembershipChange.NOT_FOUND
        canonical = self._canonical(name)
        if canonical in self._built_ins:
            return MembershipChange.PROTECTED
        if canonical not in self._custom:
            return MembershipChange.NOT_FOUND
        self._custom.remove(canonical)
        return MembershipChange.REMOVED


class CategoryRegistry(_LayeredRegistry):
    """Expense categories: built-ins plus user-added ones, with display glyphs."""

    max_length = _MAX_CATEGORY_LENGTH

    def __init__(
        self,
        custom: Optional[Iterable[str]] = None,
        glyphs: Optional[dict[str, str]] = None,
    ):
        self._glyphs: dict[str, str] = dict(BUILT_IN_CATEGORY_GLYPHS)
        super().__init__(BUILT_IN_CATEGORIES, custom)
        for name, glyph in (glyphs or {}).items():
            if name in self._custom and glyph:
                self._glyphs[name] = glyph

    def add(
        self,
        name: Optional[str],
        glyph: Optional[str] = None,
    ) -> MembershipChange:
        result = super().add(name)
        if result == MembershipChange.ADDED:
            self._glyphs[self._custom[-1]] = glyph or CUSTOM_CATEGORY_GLYPH
        return result

    def remove(self, name: Optional[str]) -> MembershipChange:
        result = super().remove(name)
        if result == MembershipChange.REMOVED:
            self._glyphs.pop(self._canonical(name), None)
        return result

    def glyph_for(self, name: str) -> str:
        return self._glyphs.get(name, CUSTOM_CATEGORY_GLYPH)

    def glyphs(self) -> dict[str, str]:
        """Category name -> glyph for every current category (a copy)."""
        return {name: self.glyph_for(name) for name in self.all()}

    def custom_glyphs(self) -> dict[str, str]:
        return {name: self.glyph_for(name) for name in self._custom}


class CurrencyRegistry(_LayeredRegistry):
    """
    Currency codes: built-ins plus user-added ones, and the selected
    display currency.
    """

    max_length = _MAX_CURRENCY_LENGTH

    def __init__(
        self,
        custom: Optional[Iterable[str]] = None,
        selected: str = DEFAULT_CURRENCY,
    ):
        super().__init__(BUILT_IN_CURRENCIES, custom)
        self._selected = DEFAULT_CURRENCY
        self.select(selected)

    def _canonical(self, name: str) -> str:
        return name.strip().upper()

    @property
    def selected(self) -> str:
        return self._selected

    def select(self, code: Optional[str]) -> bool:
        """Select a known currency; unknown codes are ignored."""
        if not isinstance(code, str):
            return False
        canonical = self._canonical(code)
        if canonical not in self:
            return False
        self._selected = canonical
        return True

    def remove(self, name: Optional[str]) -> MembershipChange:
        result = super().remove(name)
        if result == MembershipChange.REMOVED and self._selected == self._canonical(name):
            self._selected = DEFAULT_CURRENCY
        return result

    def suggestions(self, text: str = "", limit: int = 6) -> list[str]:
        """Well-known codes not yet added whose code contains `text`."""
        needle = (text or "").strip().upper()
        return [
            code for code in CURRENCY_SUGGESTIONS
            if code not in self and needle in code
        ][:limit]


def registries_from_preferences(
    preferences: Optional[Preferences] = None,
) -> tuple[CategoryRegistry, CurrencyRegistry]:
    """Rebuild both registries from persisted preferences."""
    preferences = preferences or Preferences()
    categories = CategoryRegistry(
        custom=preferences.custom_categories,
        glyphs=preferences.category_glyphs,
    )
    currencies = CurrencyRegistry(
        custom=preferences.custom_currencies,
        selected=preferences.selected_currency,
    )
    return categories, currencies


def preferences_from_registries(
    categories: CategoryRegistry,
    currencies: CurrencyRegistry,
) -> Preferences:
    """Snapshot the user-managed parts of both registries."""
    return Preferences(
        custom_categories=categories.custom,
        category_glyphs=categories.custom_glyphs(),
        custom_currencies=currencies.custom,
        selected_currency=currencies.selected,
    )
