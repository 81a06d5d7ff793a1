"""Services for external API integrations"""
from .coinmarketcap_service import CoinMarketCapService, PriceProviderError
from .email_service import EmailSendError, ResendEmailService

__all__ = ['CoinMarketCapService', 'PriceProviderError', 'ResendEmailService', 'EmailSendError']
