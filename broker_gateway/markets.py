"""
Broker Gateway - Market Metadata.

============================================================
PURPOSE
============================================================
Read-only table of tradable pairs and their minimum order
constraints, loaded once from a JSON file shipped with the
package.

FILE FORMAT:
    {
      "currencies": ["MXN", ...],
      "assets": ["BTC", ...],
      "markets": [
        {"pair": ["MXN", "BTC"],
         "minimalOrder": {"amount": "...", "price": "...", "order": "..."}}
      ]
    }

`pair` is listed as [currency, asset].

============================================================
"""

import json
import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

from .types import MarketConstraints, MarketInfo, Pair


logger = logging.getLogger(__name__)


DATA_DIR = Path(__file__).parent / "data"
BITSO_MARKETS_FILE = DATA_DIR / "bitso_markets.json"


class MarketCatalog:
    """
    Static market metadata for one exchange.
    """

    def __init__(
        self,
        currencies: List[str],
        assets: List[str],
        markets: List[MarketInfo],
    ):
        self._currencies = list(currencies)
        self._assets = list(assets)
        self._markets = list(markets)

        self._constraints: Dict[Pair, MarketConstraints] = {}
        for market in self._markets:
            currency, asset = market.pair
            pair = Pair(asset=asset, currency=currency)
            self._constraints[pair] = MarketConstraints(
                pair=pair,
                min_price=market.minimal_order["price"],
                min_amount=market.minimal_order["amount"],
                min_order=market.minimal_order["order"],
            )

    @classmethod
    def from_dict(cls, data: Dict) -> "MarketCatalog":
        markets = [
            MarketInfo(
                pair=[code.upper() for code in item["pair"]],
                minimal_order={
                    key: Decimal(str(value))
                    for key, value in item["minimalOrder"].items()
                },
            )
            for item in data.get("markets", [])
        ]
        return cls(
            currencies=data.get("currencies", []),
            assets=data.get("assets", []),
            markets=markets,
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "MarketCatalog":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        catalog = cls.from_dict(data)
        logger.debug(f"Loaded {len(catalog.markets)} markets from {path}")
        return catalog

    @property
    def currencies(self) -> List[str]:
        return list(self._currencies)

    @property
    def assets(self) -> List[str]:
        return list(self._assets)

    @property
    def markets(self) -> List[MarketInfo]:
        return list(self._markets)

    def find(self, pair: Pair) -> Optional[MarketConstraints]:
        """Constraints for a pair, or None if the pair is not listed."""
        return self._constraints.get(pair)

    def __contains__(self, pair: Pair) -> bool:
        return pair in self._constraints


@lru_cache(maxsize=None)
def load_bitso_markets() -> MarketCatalog:
    """Bitso market table, loaded once per process."""
    return MarketCatalog.from_file(BITSO_MARKETS_FILE)
