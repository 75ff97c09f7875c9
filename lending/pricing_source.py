"""
pricing_source.py - Price oracle collaborators for liquidation valuation

Provides price lookups used to convert collateral into debt-asset terms.

Classes:
- PriceOracle: Protocol defining the oracle interface
- StaticPriceOracle: Time-independent prices
- TimeSeriesPriceOracle: Time-varying prices with historical data

Prices are integers with PRICE_DECIMALS (8) decimals, so 1.0 == 100_000_000.
The oracle answers immediately; a missing price is resolved by the caller
with resolve_price() and a fallback.
"""

from bisect import bisect_right
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .core import DEFAULT_PRICE, PriceNotAvailable


@runtime_checkable
class PriceOracle(Protocol):
    """
    Protocol for price oracles.

    Implementations return the price of an asset at a ledger time, or None
    when no price is configured.
    """

    def get_price(self, asset: str, timestamp: int) -> Optional[int]:
        """Get the price of an asset at a ledger time."""
        ...


def resolve_price(
    oracle: Optional[PriceOracle],
    asset: str,
    timestamp: int,
    default: Optional[int] = DEFAULT_PRICE,
) -> int:
    """
    Look up a price, falling back to default when none is configured.

    Args:
        oracle: Oracle to query (None means every lookup falls back)
        asset: Asset identifier
        timestamp: Ledger time of the lookup
        default: Fallback price; None makes a missing price an error

    Raises:
        PriceNotAvailable: if no price is found and default is None, or the
            oracle reports a negative price
    """
    price = oracle.get_price(asset, timestamp) if oracle is not None else None
    if price is None:
        if default is None:
            raise PriceNotAvailable(f"no price configured for {asset}")
        return default
    if price < 0:
        raise PriceNotAvailable(f"negative price {price} for {asset}")
    return price


class StaticPriceOracle:
    """
    Oracle with static prices (time-independent).

    Prices remain constant regardless of timestamp.
    """

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        """
        Initialize with a static price map.

        Args:
            prices: Dictionary mapping asset identifiers to 8-decimal prices
        """
        self.prices: Dict[str, int] = dict(prices) if prices else {}

    def get_price(self, asset: str, timestamp: int) -> Optional[int]:
        """Get static price (timestamp is ignored)."""
        return self.prices.get(asset)

    def update_price(self, asset: str, price: int):
        """Update the price of an asset."""
        self.prices[asset] = price

    def update_prices(self, prices: Dict[str, int]):
        """Update multiple prices at once."""
        self.prices.update(prices)

    def __repr__(self):
        return f"StaticPriceOracle({len(self.prices)} prices)"


class TimeSeriesPriceOracle:
    """
    Oracle with time-varying prices.

    Stores historical price observations and returns the most recent price
    at or before the requested ledger time.
    """

    def __init__(self, price_paths: Optional[Dict[str, List[Tuple[int, int]]]] = None):
        """
        Initialize oracle.

        Args:
            price_paths: Optional dict mapping assets to lists of (timestamp, price)

        Examples:
            oracle = TimeSeriesPriceOracle()
            oracle.add_price('XLM', 1_700_000_000, 12_000_000)

            oracle = TimeSeriesPriceOracle({
                'XLM': [(t0, 12_000_000), (t1, 11_500_000)],
            })
        """
        self.price_history: Dict[str, List[Tuple[int, int]]] = {}

        if price_paths:
            for asset, path in price_paths.items():
                if not path:
                    continue
                self.price_history[asset] = sorted(path, key=lambda x: x[0])

    def add_price(self, asset: str, timestamp: int, price: int):
        """Add a price observation for an asset at a ledger time."""
        history = self.price_history.setdefault(asset, [])
        history.append((timestamp, price))
        history.sort(key=lambda x: x[0])

    def get_price(self, asset: str, timestamp: int) -> Optional[int]:
        """
        Get price at or before the specified ledger time.

        Returns None if no observation exists at or before the timestamp.
        Uses binary search for O(log n) lookup.
        """
        history = self.price_history.get(asset)
        if not history:
            return None

        timestamps = [ts for ts, _ in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        return history[idx - 1][1]

    def __repr__(self):
        total_observations = sum(len(history) for history in self.price_history.values())
        return f"TimeSeriesPriceOracle({len(self.price_history)} assets, {total_observations} observations)"
