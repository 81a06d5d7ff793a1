# coding: utf-8
"""
Price fetcher - batch USD prices through the cache

Fresh cached prices are served as-is. Everything else is requested from
the provider in chunks of PRICE_FETCH_BATCH_SIZE, with a short pause
between chunks. A failed chunk is logged and skipped, so callers get a
partial result instead of an error.
"""
import asyncio
from typing import Dict, Iterable, List, Optional

from loguru import logger

from config.alerts_config import PriceFetchConfig
from src.prices.price_cache import PriceCache
from src.services.coinmarketcap_service import CoinMarketCapService, PriceProviderError


def chunked(items: List[int], size: int) -> List[List[int]]:
    """
    Split list into consecutive chunks

    Examples:
        >>> chunked([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    return [items[i:i + size] for i in range(0, len(items), size)]


class PriceFetcher:
    """
    Usage:
        >>> fetcher = PriceFetcher(cache, CoinMarketCapService())
        >>> await fetcher.get_batch_prices([1, 1027])
        {1: 67000.0, 1027: 3500.0}
    """

    def __init__(
        self,
        cache: PriceCache,
        provider: CoinMarketCapService,
        config: Optional[PriceFetchConfig] = None,
    ):
        self.cache = cache
        self.provider = provider
        self.config = config or PriceFetchConfig()

    async def get_batch_prices(self, token_ids: Iterable[int]) -> Dict[int, float]:
        """
        Prices for the requested tokens

        Args:
            token_ids: CoinMarketCap ids

        Returns:
            Mapping id -> price. Keys are always a subset of the request;
            tokens without a price are simply absent.
        """
        # Unique ids, request order kept
        requested = list(dict.fromkeys(int(token_id) for token_id in token_ids))
        prices: Dict[int, float] = {}
        need_fetch: List[int] = []

        for token_id in requested:
            cached = await self.cache.get(token_id)
            if cached is not None:
                prices[token_id] = cached
            else:
                need_fetch.append(token_id)

        if not need_fetch:
            return prices

        logger.debug(
            f"Price cache: {len(prices)} fresh, fetching {len(need_fetch)} from provider"
        )

        requested_set = set(requested)
        chunks = chunked(need_fetch, self.config.batch_size)
        for index, chunk in enumerate(chunks):
            if index > 0 and self.config.batch_delay_ms:
                await asyncio.sleep(self.config.batch_delay_ms / 1000)

            try:
                fetched = await self.provider.get_quotes_by_ids(chunk)
            except PriceProviderError as e:
                logger.error(f"Price chunk {index + 1}/{len(chunks)} failed ({len(chunk)} ids): {e}")
                continue
            except Exception as e:
                logger.exception(f"Unexpected error in price chunk {index + 1}/{len(chunks)} ({len(chunk)} ids): {e}")
                continue

            for token_id, price in fetched.items():
                if token_id not in requested_set:
                    continue
                prices[token_id] = price
                await self.cache.put(token_id, price)

        return prices

    async def get_price(self, token_id: int) -> float:
        """
        Price of a single token

        Raises:
            PriceProviderError: If no price is available
        """
        cached = await self.cache.get(token_id)
        if cached is not None:
            return cached

        fetched = await self.provider.get_quotes_by_ids([token_id])
        if token_id not in fetched:
            raise PriceProviderError(f"Price not found for token {token_id}")

        price = fetched[token_id]
        await self.cache.put(token_id, price)
        return price
