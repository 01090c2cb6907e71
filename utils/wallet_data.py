"""
Helpers for wallet snapshots handed over by the wallet data source.
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional

from app.base.models import WalletData

# The mobile wallet source emits camelCase keys
_ASSET_KEYS = {"coinType": "coin_type"}
_TRANSACTION_KEYS = {"gasUsed": "gas_used"}

def _rename(record: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    return {mapping.get(key, key): value for key, value in record.items()}

def normalize_wallet_data(raw: Optional[Dict[str, Any]]) -> Optional[WalletData]:
    """
    Normalize a wallet snapshot to the snake_case shape used by the core.

    Args:
        raw: Wallet record as received, or None

    Returns:
        WalletData with address, balance, assets and transactions, or None
    """
    if raw is None:
        return None
    assets = [_rename(a, _ASSET_KEYS) for a in raw.get("assets") or []]
    transactions = [
        {
            "digest": tx.get("digest", ""),
            "timestamp": tx.get("timestamp", 0),
            "sender": tx.get("sender", ""),
            "gas_used": tx.get("gas_used", 0),
            "success": bool(tx.get("success", False)),
            "kind": tx.get("kind", ""),
        }
        for tx in (_rename(t, _TRANSACTION_KEYS) for t in raw.get("transactions") or [])
    ]
    return {
        "address": raw.get("address", ""),
        "balance": float(raw.get("balance") or 0),
        "assets": assets,  # type: ignore[typeddict-item]
        "transactions": transactions,  # type: ignore[typeddict-item]
    }

def load_wallet_file(path: str) -> Optional[WalletData]:
    """Read a wallet snapshot from a JSON file."""
    with open(Path(path), "r", encoding="utf-8") as f:
        return normalize_wallet_data(json.load(f))
