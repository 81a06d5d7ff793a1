"""Price cache and batch price fetching"""
from .price_cache import PriceCache
from .price_fetcher import PriceFetcher

__all__ = ['PriceCache', 'PriceFetcher']
