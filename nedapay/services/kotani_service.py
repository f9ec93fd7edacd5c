import json
import logging
import time
from threading import Lock
from typing import Any, Callable
from urllib import error, parse, request

from nedapay.core.config import get_settings
from nedapay.core.exceptions import AppException

settings = get_settings()
logger = logging.getLogger(__name__)


class KotaniTokenCache:
    """Holds one Kotani auth token until ``ttl_seconds`` after it was issued."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = Lock()
        # Token and expiry are swapped together as one tuple.
        self._entry: tuple[str, float] | None = None

    def _current(self) -> str | None:
        entry = self._entry
        if entry is not None and self._clock() < entry[1]:
            return entry[0]
        return None

    def get(self, login: Callable[[], str]) -> str:
        token = self._current()
        if token is not None:
            return token
        with self._lock:
            token = self._current()
            if token is not None:
                return token
            token = login()
            self._entry = (token, self._clock() + self._ttl_seconds)
            return token

    def invalidate(self) -> None:
        with self._lock:
            self._entry = None


class KotaniClient:
    def __init__(self, base_url: str, username: str, password: str, token_cache: KotaniTokenCache, timeout: int = 20):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self.token_cache = token_cache
        self.timeout = timeout

    def _send(self, method: str, path: str, payload: dict | None = None, token: str | None = None) -> Any:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = request.Request(f"{self.base_url}{path}", data=body, method=method, headers=headers)
        with request.urlopen(req, timeout=self.timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))

    def login(self) -> str:
        if not self.username or not self.password:
            raise AppException("Kotani Pay is not configured", status_code=500)
        try:
            data = self._send(
                "POST",
                "/authentication/login",
                {"username": self.username, "password": self.password},
            )
        except (error.URLError, ValueError) as exc:
            logger.error("Failed to authenticate with Kotani Pay: %s", exc)
            raise AppException("Authentication failed", status_code=500)
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AppException("Authentication failed", status_code=500)
        logger.info("Refreshed Kotani Pay auth token")
        return token

    def _authorized(self, method: str, path: str, payload: dict | None, failure_message: str) -> Any:
        token = self.token_cache.get(self.login)
        try:
            return self._send(method, path, payload, token=token)
        except error.HTTPError as exc:
            if exc.code == 401:
                self.token_cache.invalidate()
            detail = exc.read().decode("utf-8", errors="ignore")
            logger.error("%s: HTTP %s %s", failure_message, exc.code, detail)
            raise AppException(failure_message, status_code=500)
        except (error.URLError, ValueError) as exc:
            logger.error("%s: %s", failure_message, exc)
            raise AppException(failure_message, status_code=500)

    def exchange_rate(self, from_currency: str, to_currency: str, amount: float) -> Any:
        return self._authorized(
            "POST",
            "/rates/offramp-exchange-rate",
            {"fromCurrency": from_currency, "toCurrency": to_currency, "amount": amount},
            "Failed to fetch exchange rate",
        )

    def transaction_status(self, transaction_id: str) -> Any:
        query = parse.urlencode({"transactionId": transaction_id})
        return self._authorized(
            "GET",
            f"/offramp/mobile-money/status?{query}",
            None,
            "Failed to fetch transaction status",
        )


def build_kotani_client() -> KotaniClient:
    return KotaniClient(
        base_url=settings.KOTANI_API_BASE,
        username=settings.KOTANI_USERNAME,
        password=settings.KOTANI_PASSWORD,
        token_cache=KotaniTokenCache(settings.KOTANI_TOKEN_TTL_SECONDS),
    )
