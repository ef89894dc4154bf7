import threading
from datetime import datetime, timedelta

import requests

from src.config import config
from src.interfaces.credits import PaymentToken, STABLE_TOKENS
from src.interfaces.errors import PricingUnavailableError
from src.utils.general import get_current_time
from src.utils.logger import setup_logger

logger = setup_logger(__name__)

TOKEN_MINTS: dict[PaymentToken, str] = {
    PaymentToken.sol: config.SOL_TOKEN_MINT,
    PaymentToken.ghost: config.REWARD_TOKEN_MINT,
}


class PricingProvider:
    """USD prices of payment tokens from the Jupiter price API, with a bounded staleness cache."""

    def __init__(
        self,
        api_url: str = config.JUPITER_PRICE_API_URL,
        timeout: float = config.PRICE_LOOKUP_TIMEOUT_SECONDS,
        max_staleness: timedelta = timedelta(seconds=config.PRICE_MAX_STALENESS_SECONDS),
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.max_staleness = max_staleness
        self._cache: dict[PaymentToken, tuple[float, datetime]] = {}
        self._lock = threading.Lock()

    def usd_price(self, token: PaymentToken, now: datetime | None = None) -> float:
        """
        Get the USD price of a token.

        Stable tokens are priced 1:1. When the API fails, the last price is reused as long as it is younger
        than the staleness tolerance.

        Raises:
            PricingUnavailableError: If no price can be trusted
        """
        if token in STABLE_TOKENS:
            return 1.0

        now = now or get_current_time()
        try:
            price = self._fetch_price(token)
        except (requests.RequestException, ValueError, KeyError) as e:
            cached = self._cache.get(token)
            if cached is not None and now - cached[1] <= self.max_staleness:
                logger.warning(f"Price lookup for {token.value} failed ({str(e)}), using cached price {cached[0]}")
                return cached[0]
            logger.error(f"Failed to fetch {token.value} price and no fresh cached price: {str(e)}")
            raise PricingUnavailableError(token.value, str(e))

        with self._lock:
            self._cache[token] = (price, now)
        return price

    def _fetch_price(self, token: PaymentToken) -> float:
        mint = TOKEN_MINTS.get(token)
        if mint is None:
            raise ValueError(f"No mint configured for token {token.value}")

        response = requests.get(self.api_url, params={"ids": mint}, timeout=self.timeout)
        response.raise_for_status()  # Raise exception for 4XX/5XX responses
        price_data = response.json()

        token_data = (price_data.get("data") or {}).get(mint)
        if not token_data or token_data.get("price") is None:
            logger.error(f"Unexpected response format from Jupiter: {price_data}")
            raise ValueError("Unexpected response format from Jupiter")

        price = float(token_data["price"])
        if price <= 0:
            logger.error(f"Invalid token price received: {price}")
            raise ValueError("Invalid price from Jupiter")

        return price


pricing_provider = PricingProvider()
