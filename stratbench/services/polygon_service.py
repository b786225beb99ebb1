"""
Polygon.io Bar Source
Fetches historical minute aggregates for backtesting
"""
import os
import time
import httpx
import pytz
from datetime import datetime, date
from typing import Optional, List, Dict, Any
from dotenv import load_dotenv

from stratbench.config import BacktestConfig, get_backtest_config
from stratbench.exceptions import BarSourceError, BarSourceRateLimitError
from stratbench.services.backtesting.data_loader import MarketBar
from stratbench.services.logging_config import get_logger, log_api_call, log_method

load_dotenv()

logger = get_logger(__name__)

EASTERN = pytz.timezone("US/Eastern")

# Response statuses that carry usable results
_OK_STATUSES = {"OK", "DELAYED"}


class PolygonBarSource:
    """Bar source backed by the Polygon.io aggregates endpoint"""

    BASE_URL = "https://api.polygon.io"

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[BacktestConfig] = None,
    ):
        """
        Initialize the Polygon bar source.

        Args:
            api_key: Polygon API key (defaults to POLYGON_API_KEY)
            client: Shared HTTP client; a short-lived one is opened per fetch otherwise
            config: Backtest configuration, supplies the HTTP timeout
        """
        self.api_key = api_key if api_key is not None else os.getenv("POLYGON_API_KEY", "")
        self.client = client
        self.config = config or get_backtest_config()

        if not self.api_key:
            logger.warning("POLYGON_API_KEY not set. Every fetch will fail and fall back to synthetic bars")
        else:
            logger.info("Polygon API key configured successfully")

    def _aggregates_url(self, ticker: str, from_date: date, to_date: date) -> str:
        return (
            f"{self.BASE_URL}/v2/aggs/ticker/{ticker}/range/1/minute/"
            f"{from_date.isoformat()}/{to_date.isoformat()}"
        )

    @staticmethod
    def _parse_bar(raw: Dict[str, Any]) -> MarketBar:
        """Polygon aggregate -> MarketBar. `t` is epoch milliseconds (UTC)."""
        timestamp = datetime.fromtimestamp(raw["t"] / 1000, tz=pytz.utc).astimezone(EASTERN)
        return MarketBar(
            timestamp=timestamp,
            open=float(raw["o"]),
            high=float(raw["h"]),
            low=float(raw["l"]),
            close=float(raw["c"]),
            volume=float(raw.get("v", 0)),
        )

    async def _get_page(
        self,
        client: httpx.AsyncClient,
        ticker: str,
        url: str,
        params: Dict[str, str]
    ) -> Dict[str, Any]:
        """GET one page of results, mapping failures to bar source errors"""
        # Never log the key
        endpoint = url.split("?")[0]
        start_time = time.perf_counter()

        try:
            response = await client.get(url, params=params, timeout=self.config.http_timeout_seconds)
        except httpx.RequestError as e:
            log_api_call(
                logger, "GET", endpoint,
                response_time_ms=(time.perf_counter() - start_time) * 1000,
                error=f"Request failed: {e}",
                ticker=ticker
            )
            raise BarSourceError(f"Request for {ticker} failed: {e}", ticker=ticker)

        response_time_ms = (time.perf_counter() - start_time) * 1000

        if response.status_code == 429:
            log_api_call(
                logger, "GET", endpoint,
                status_code=429,
                response_time_ms=response_time_ms,
                error="Rate limit reached",
                ticker=ticker
            )
            retry_after = response.headers.get("Retry-After")
            try:
                retry_after_seconds = float(retry_after) if retry_after else None
            except ValueError:
                retry_after_seconds = None
            raise BarSourceRateLimitError(ticker=ticker, retry_after=retry_after_seconds)

        if response.status_code >= 400:
            log_api_call(
                logger, "GET", endpoint,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
                error=f"HTTP {response.status_code}",
                ticker=ticker
            )
            raise BarSourceError(
                f"Polygon returned HTTP {response.status_code} for {ticker}",
                ticker=ticker,
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError:
            raise BarSourceError(f"Polygon returned invalid JSON for {ticker}", ticker=ticker,
                                 status_code=response.status_code)

        status = data.get("status")
        if status not in _OK_STATUSES:
            message = data.get("error") or data.get("message") or status
            log_api_call(
                logger, "GET", endpoint,
                status_code=response.status_code,
                response_time_ms=response_time_ms,
                error=f"Polygon status {message}",
                ticker=ticker
            )
            raise BarSourceError(f"Polygon API error for {ticker}: {message}", ticker=ticker,
                                 status_code=response.status_code)

        log_api_call(
            logger, "GET", endpoint,
            status_code=response.status_code,
            response_time_ms=response_time_ms,
            ticker=ticker,
            results=len(data.get("results") or [])
        )
        return data

    @log_method(logger=logger)
    async def fetch_bars(self, ticker: str, from_date: date, to_date: date) -> List[MarketBar]:
        """
        Fetch minute bars for a ticker, following pagination.

        Returns:
            Bars in ascending timestamp order, US/Eastern timestamps

        Raises:
            BarSourceRateLimitError: HTTP 429
            BarSourceError: missing key, network failure, HTTP error or error payload
        """
        if not self.api_key:
            raise BarSourceError("POLYGON_API_KEY is not configured", ticker=ticker)

        url = self._aggregates_url(ticker, from_date, to_date)
        params = {"adjusted": "true", "sort": "asc", "limit": "50000", "apiKey": self.api_key}

        if self.client is not None:
            return await self._fetch_all(self.client, ticker, url, params)

        async with httpx.AsyncClient() as client:
            return await self._fetch_all(client, ticker, url, params)

    async def _fetch_all(
        self,
        client: httpx.AsyncClient,
        ticker: str,
        url: str,
        params: Dict[str, str]
    ) -> List[MarketBar]:
        bars: List[MarketBar] = []
        next_url: Optional[str] = url

        while next_url:
            data = await self._get_page(client, ticker, next_url, params)
            bars.extend(self._parse_bar(raw) for raw in data.get("results") or [])

            # next_url already encodes the query, except for the key
            next_url = data.get("next_url")
            params = {"apiKey": self.api_key}

        logger.debug(f"Fetched {len(bars)} bars for {ticker}")
        return bars
