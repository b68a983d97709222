"""Monthly balance snapshot package."""

from kakeibo.snapshots.aggregator import aggregate_snapshots, closing_balances
from kakeibo.snapshots.classifier import ASSET_TYPE_RULES, AssetTypeRule, infer_asset_type

__all__ = [
    "ASSET_TYPE_RULES",
    "AssetTypeRule",
    "aggregate_snapshots",
    "closing_balances",
    "infer_asset_type",
]
