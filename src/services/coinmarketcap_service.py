# coding: utf-8
"""
CoinMarketCap API Service - USD quotes by CMC id

Token ids used everywhere in the alerts pipeline are CoinMarketCap ids,
so one `/v2/cryptocurrency/quotes/latest?id=1,1027,...` call prices a
whole chunk of tokens.

Failures are raised as PriceProviderError. Retrying is left to the
next polling cycle, this service never loops on its own.
"""
from typing import Dict, Iterable, Optional

import aiohttp
from loguru import logger

from config.config import (
    COINMARKETCAP_API_KEY,
    COINMARKETCAP_BASE_URL,
    COINMARKETCAP_TIMEOUT_SECONDS,
)


class PriceProviderError(Exception):
    """Provider call failed (transport error, non-200, malformed body)"""


class CoinMarketCapService:
    """
    Service for fetching latest USD prices from CoinMarketCap

    Authentication:
    - X-CMC_PRO_API_KEY header

    Usage:
        >>> cmc = CoinMarketCapService()
        >>> await cmc.get_quotes_by_ids([1, 1027])
        {1: 67000.12, 1027: 3500.4}
    """

    QUOTES_ENDPOINT = "/v2/cryptocurrency/quotes/latest"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = COINMARKETCAP_BASE_URL,
        timeout_seconds: int = COINMARKETCAP_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key if api_key is not None else COINMARKETCAP_API_KEY
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

        if not self.api_key:
            logger.warning(
                "CoinMarketCap API key not configured. "
                "Set COINMARKETCAP_API_KEY in .env to enable price fetching."
            )

    async def _make_request(self, endpoint: str, params: Dict[str, str]) -> dict:
        """
        Single GET against the CoinMarketCap API

        Raises:
            PriceProviderError: On missing key, transport failure or non-200 status
        """
        if not self.api_key:
            raise PriceProviderError("CoinMarketCap API key not configured")

        url = f"{self.base_url}{endpoint}"
        headers = {
            "X-CMC_PRO_API_KEY": self.api_key,
            "Accept": "application/json",
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, params=params, headers=headers) as response:
                    if response.status == 200:
                        return await response.json()

                    body = await response.text()
                    if response.status == 401:
                        logger.error("CoinMarketCap API authentication failed. Check your API key.")
                    elif response.status == 429:
                        logger.warning("CoinMarketCap rate limit exceeded.")
                    raise PriceProviderError(
                        f"CoinMarketCap API error: {response.status} - {body[:200]}"
                    )

        except (aiohttp.ClientError, TimeoutError) as e:
            raise PriceProviderError(f"CoinMarketCap request failed: {e}") from e
        except ValueError as e:
            # 200 with a body that is not JSON
            raise PriceProviderError(f"CoinMarketCap returned invalid JSON: {e}") from e

    async def get_quotes_by_ids(self, token_ids: Iterable[int]) -> Dict[int, float]:
        """
        Latest USD price for each id

        Args:
            token_ids: CoinMarketCap ids (one provider call for all of them)

        Returns:
            Mapping id -> USD price. Ids the provider does not price are omitted.

        Raises:
            PriceProviderError: If the call fails or the body has no data
        """
        ids = [int(token_id) for token_id in token_ids]
        if not ids:
            return {}

        response = await self._make_request(
            self.QUOTES_ENDPOINT,
            params={"id": ",".join(str(i) for i in ids), "convert": "USD"},
        )

        data = response.get("data") if isinstance(response, dict) else None
        if not isinstance(data, dict):
            raise PriceProviderError("CoinMarketCap response has no data section")

        prices: Dict[int, float] = {}
        for key, entry in data.items():
            # v2 returns a list per key when queried by symbol, an object when by id
            if isinstance(entry, list):
                entry = entry[0] if entry else None
            if not isinstance(entry, dict):
                continue

            quote = entry.get("quote") or {}
            price = (quote.get("USD") or {}).get("price") if isinstance(quote, dict) else None
            if price is None:
                continue

            try:
                prices[int(entry.get("id", key))] = float(price)
            except (TypeError, ValueError):
                logger.warning(f"CoinMarketCap returned unparsable price for id {key}: {price!r}")

        missing = set(ids) - set(prices)
        if missing:
            logger.debug(f"CoinMarketCap has no USD price for ids: {sorted(missing)}")

        return prices
