# ledger/services/matcher.py
#
# Merchant Pattern Matcher
# Resolves raw merchant text to a category using the stored merchant mappings.
# A mapping matches when its pattern (lower-cased) occurs anywhere inside the
# merchant text (lower-cased).
#
# When several patterns match the same text the winner is chosen
# deterministically: longest pattern first, then the most recently updated
# mapping, then pattern text ascending.

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from models import MerchantMapping


def pattern_matches(pattern: str, merchant: str) -> bool:
    return pattern.lower() in merchant.lower()


def _by_precedence(mappings: Iterable[MerchantMapping]) -> List[MerchantMapping]:
    ordered = sorted(mappings, key=lambda m: m.merchant_pattern)
    ordered.sort(key=lambda m: m.updated_at or datetime.min, reverse=True)
    ordered.sort(key=lambda m: len(m.merchant_pattern), reverse=True)
    return ordered


class MerchantMatcher:
    """
    Snapshot of the merchant mappings taken at construction time.

    Build a fresh one per request or ingestion run (see `load`); the rule base
    changes whenever a user categorizes something.
    """

    def __init__(self, mappings: Iterable[MerchantMapping]):
        self._mappings: List[MerchantMapping] = _by_precedence(mappings)

    @classmethod
    def load(cls, db: Session) -> "MerchantMatcher":
        return cls(db.query(MerchantMapping).all())

    def __len__(self) -> int:
        return len(self._mappings)

    def find(self, merchant: str) -> Optional[MerchantMapping]:
        """The single mapping selected for `merchant`, or None."""
        merchant_lower = (merchant or "").lower()
        for mapping in self._mappings:
            if mapping.merchant_pattern.lower() in merchant_lower:
                return mapping
        return None

    def resolve_category(self, merchant: str) -> Optional[str]:
        """
        Category for `merchant`, or None if nothing matches or the selected
        mapping is multi-merchant (those always go to manual review).
        """
        mapping = self.find(merchant)
        if mapping is None or mapping.is_multi_merchant:
            return None
        return mapping.category_id

    def is_multi_merchant(self, merchant: str) -> bool:
        """True if any multi-merchant pattern occurs in `merchant`."""
        merchant_lower = (merchant or "").lower()
        return any(
            m.is_multi_merchant and m.merchant_pattern.lower() in merchant_lower
            for m in self._mappings
        )


def resolve_category(db: Session, merchant: str) -> Optional[str]:
    return MerchantMatcher.load(db).resolve_category(merchant)
