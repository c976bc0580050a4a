# marketdesk/websocket/market_data_store.py
"""
In-Memory Market Data Store
===========================

Latest known fields per instrument code, folded together from gateway
fragments. Written only by the gateway client's dispatcher; read by the
HTTP layer, which always gets copies.

Merge rules:
- quote/sync fragments update price, change percent, volume and raw fields
- trend fragments update the history of closing prices
- a fragment only touches the fields it carries, so a later snapshot never
  wipes history and a trend never wipes the price

Usage:
    store = MarketDataStore.get_instance()

    store.merge_snapshot({"code": "AAPL.US", "price": "189.30", "volume": "1200"})
    store.merge_trend("AAPL.US", [{"close": "187.10"}, {"close": "189.30"}])

    quote = store.get_quote("AAPL.US")
    quote.price, quote.history   # 189.3, [187.1, 189.3]
"""

import copy
import logging
import math
import threading
import time
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

PRICE_FIELDS = ("price", "closePrice", "lastPrice")
CHANGE_FIELDS = ("limitUpDown", "changePercent", "chgPct")
VOLUME_FIELDS = ("volume", "vol")
CLOSE_FIELDS = ("close", "closePrice", "c")


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).replace(",", "").rstrip("%"))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _first_number(item: Dict[str, Any], names: Iterable[str]) -> Optional[float]:
    for name in names:
        if name in item:
            number = _to_float(item[name])
            if number is not None:
                return number
    return None


@dataclass
class InstrumentQuote:
    """Latest known state of one instrument"""
    code: str
    price: Optional[float] = None
    change_percent: Optional[float] = None
    volume: Optional[float] = None
    history: Optional[List[float]] = None  # closing prices, oldest first
    fields: Dict[str, Any] = field(default_factory=dict)  # raw vendor fields, merged
    # Metadata
    last_update: float = 0.0
    update_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class StoreHealth:
    """Health status of the market data store"""
    total_instruments: int = 0
    stale_instruments: int = 0
    with_history: int = 0
    total_updates: int = 0
    oldest_data_age: float = 0.0
    newest_data_age: float = 0.0


class MarketDataStore:
    """
    Instrument code -> InstrumentQuote, merged field by field.
    """

    # Singleton instance
    _instance: Optional['MarketDataStore'] = None
    _instance_lock = threading.Lock()

    STALE_THRESHOLD_SECONDS = 60.0

    @classmethod
    def get_instance(cls) -> 'MarketDataStore':
        """Get singleton instance of MarketDataStore"""
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls()
                    logger.info("MarketDataStore singleton created")
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton instance (for testing)"""
        with cls._instance_lock:
            if cls._instance is not None:
                cls._instance.clear()
                cls._instance = None
                logger.info("MarketDataStore singleton reset")

    def __init__(self):
        self._quotes: Dict[str, InstrumentQuote] = {}
        self._total_updates = 0
        self._lock = threading.RLock()
        self._on_update_callbacks: List[Callable[[str, InstrumentQuote], None]] = []

    def merge_snapshot(self, item: Dict[str, Any]) -> bool:
        """
        Fold one quote/sync item into the store.

        Args:
            item: Vendor item dict; must carry "code"

        Returns:
            True if applied, False if the item had no code
        """
        code = item.get("code")
        if not code:
            return False

        with self._lock:
            quote = self._get_or_create(code)
            quote.fields.update(item)

            price = _first_number(item, PRICE_FIELDS)
            if price is not None:
                quote.price = price
            change = _first_number(item, CHANGE_FIELDS)
            if change is not None:
                quote.change_percent = change
            volume = _first_number(item, VOLUME_FIELDS)
            if volume is not None:
                quote.volume = volume

            self._touch(quote)
            result = copy.deepcopy(quote)

        self._notify(code, result)
        return True

    def merge_trend(self, code: str, items: Iterable[Any]) -> bool:
        """
        Replace the history series for code, leaving every other field alone.

        Args:
            code: Instrument code
            items: Trend items; dicts carrying a closing price, or bare values

        Returns:
            True if applied, False if code is empty or no closing price parsed
        """
        if not code:
            return False

        closes: List[float] = []
        for item in items or []:
            if isinstance(item, dict):
                close = _first_number(item, CLOSE_FIELDS)
            else:
                close = _to_float(item)
            if close is not None:
                closes.append(close)

        if not closes:
            logger.debug(f"No closing prices for {code}; history kept")
            return False

        with self._lock:
            quote = self._get_or_create(code)
            quote.history = closes
            self._touch(quote)
            result = copy.deepcopy(quote)

        self._notify(code, result)
        return True

    def get_price(self, code: str) -> Optional[float]:
        with self._lock:
            quote = self._quotes.get(code)
            return quote.price if quote else None

    def get_quote(self, code: str) -> Optional[InstrumentQuote]:
        """Copy of the quote for code, or None"""
        with self._lock:
            quote = self._quotes.get(code)
            return copy.deepcopy(quote) if quote else None

    def get_quotes(self, codes: List[str]) -> Dict[str, Optional[InstrumentQuote]]:
        return {code: self.get_quote(code) for code in codes}

    def get_all_quotes(self) -> Dict[str, InstrumentQuote]:
        with self._lock:
            return {code: copy.deepcopy(q) for code, q in self._quotes.items()}

    def is_stale(self, code: str) -> bool:
        with self._lock:
            quote = self._quotes.get(code)
            if not quote:
                return True
            return (time.time() - quote.last_update) > self.STALE_THRESHOLD_SECONDS

    def get_stale_instruments(self) -> List[str]:
        now = time.time()
        with self._lock:
            return [
                code for code, quote in self._quotes.items()
                if (now - quote.last_update) > self.STALE_THRESHOLD_SECONDS
            ]

    def get_health(self) -> StoreHealth:
        now = time.time()
        with self._lock:
            if not self._quotes:
                return StoreHealth()

            ages = [now - q.last_update for q in self._quotes.values()]
            return StoreHealth(
                total_instruments=len(self._quotes),
                stale_instruments=sum(1 for age in ages if age > self.STALE_THRESHOLD_SECONDS),
                with_history=sum(1 for q in self._quotes.values() if q.history is not None),
                total_updates=self._total_updates,
                oldest_data_age=max(ages),
                newest_data_age=min(ages)
            )

    def add_update_callback(self, callback: Callable[[str, InstrumentQuote], None]):
        """
        Add callback to be notified on data updates.

        Args:
            callback: Function(code, quote_copy) called after every merge
        """
        self._on_update_callbacks.append(callback)

    def remove_update_callback(self, callback: Callable[[str, InstrumentQuote], None]):
        if callback in self._on_update_callbacks:
            self._on_update_callbacks.remove(callback)

    def clear(self):
        """Full reset; the only way records are ever removed"""
        with self._lock:
            self._quotes.clear()
            self._total_updates = 0
            logger.info("MarketDataStore cleared")

    def _get_or_create(self, code: str) -> InstrumentQuote:
        quote = self._quotes.get(code)
        if quote is None:
            quote = InstrumentQuote(code=code)
            self._quotes[code] = quote
        return quote

    def _touch(self, quote: InstrumentQuote):
        quote.last_update = time.time()
        quote.update_count += 1
        self._total_updates += 1

    def _notify(self, code: str, quote: InstrumentQuote):
        for callback in list(self._on_update_callbacks):
            try:
                callback(code, quote)
            except Exception as e:
                logger.error(f"Error in update callback: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._quotes)

    def __contains__(self, code: str) -> bool:
        with self._lock:
            return code in self._quotes
