"""
Asset-Type Classifier: rule-based inference from account display names.

Account names in the export are free text ("楽天カード", "投資信託/SBI",
"お財布"). The rules below map them to a coarse AssetType. Rules are
evaluated top-down and the first match wins, so order encodes priority:
a name containing both a card keyword and a bank keyword is a credit card.

This is locale-specific string matching. It is only consulted when storage
has no recorded type for the account; a recorded type (e.g. a manual
correction) always wins.
"""

import re
from dataclasses import dataclass

from kakeibo.models.ledger import AssetType


@dataclass(frozen=True)
class AssetTypeRule:
    """A single classification rule."""
    asset_type: AssetType
    pattern: str  # Regex searched anywhere in the name
    description: str  # Human-readable rule description

    def matches(self, name: str) -> bool:
        return re.search(self.pattern, name) is not None


ASSET_TYPE_RULES: tuple[AssetTypeRule, ...] = (
    # Gift cards are prepaid assets, not liabilities, despite "カード"
    AssetTypeRule(AssetType.OTHER, r"図書カード|商品券|ギフト", "gift card"),
    AssetTypeRule(AssetType.CREDIT, r"カード|クレカ|NICOS", "credit card"),
    AssetTypeRule(AssetType.CREDIT, r"借入|ローン|未払金", "loan or other liability"),
    AssetTypeRule(AssetType.INVESTMENT, r"証券|iDeCo|投資信託|MMF|株|ETF", "brokerage, retirement or fund"),
    AssetTypeRule(AssetType.IC_CARD, r"PASMO|suica|Suica|IC", "transit card"),
    AssetTypeRule(AssetType.QR_PAY, r"PayPay|LINE Pay|ハチペイ|メルペイ|ペイ", "mobile payment"),
    AssetTypeRule(AssetType.CASH, r"現金|お財布|財布|封筒|精算用", "cash or wallet"),
    AssetTypeRule(
        AssetType.BANK,
        r"ゆうちょ|三菱|SBI|ろうきん|みずほ|りそな|大阪商工|銀行|金庫",
        "bank or financial institution",
    ),
)


def infer_asset_type(name: str) -> AssetType:
    """Infer an account's AssetType from its display name."""
    for rule in ASSET_TYPE_RULES:
        if rule.matches(name):
            return rule.asset_type
    return AssetType.OTHER
