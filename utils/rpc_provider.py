import asyncio
from typing import List, Optional

from web3 import AsyncHTTPProvider


class RotatingAsyncHTTPProvider(AsyncHTTPProvider):
    """
    Async HTTP provider that rotates between multiple RPC URLs when rate-limited
    or on connection errors. Attempts each URL once per request and advances on
    failures. All callers share one event loop, so the index needs no lock.
    """

    def __init__(self, rpc_urls: List[str], request_kwargs: Optional[dict] = None):
        urls = list(dict.fromkeys([u.strip() for u in rpc_urls or [] if u and u.strip()]))
        if not urls:
            raise ValueError("rpc_urls must be a non-empty list")
        super().__init__(endpoint_uri=urls[0], request_kwargs=request_kwargs)
        self._urls: List[str] = urls
        self._idx: int = 0

    @property
    def current_url(self) -> str:
        return self._urls[self._idx]

    def _advance(self) -> None:
        self._idx = (self._idx + 1) % len(self._urls)
        self.endpoint_uri = self._urls[self._idx]

    @staticmethod
    def _should_rotate_on_error(error_obj) -> bool:
        if not error_obj:
            return False
        if not isinstance(error_obj, dict):
            error_obj = {"message": str(error_obj)}
        msg = str(error_obj.get("message", "")).lower()
        code = error_obj.get("code")
        rate_tokens = [
            "rate limit", "too many requests", "daily request count exceeded",
            "exceeded", "request limit", "over capacity",
            "project id request rate exceeded",
        ]
        if any(tok in msg for tok in rate_tokens):
            return True
        # -32000 is also geth's generic error (nonce too low, insufficient funds);
        # resending those to another node only repeats the rejection
        if code in (-32005, 429):
            return True
        return False

    async def make_request(self, method, params):  # type: ignore[override]
        attempts = 0
        last_exc: Optional[BaseException] = None
        last_error_resp: Optional[dict] = None
        total = len(self._urls)

        while attempts < total:
            try:
                response = await super().make_request(method, params)
                if isinstance(response, dict) and "error" in response and self._should_rotate_on_error(response["error"]):
                    self._advance()
                    attempts += 1
                    last_error_resp = response
                    await asyncio.sleep(0.1)
                    continue
                return response
            except Exception as e:
                last_exc = e
                self._advance()
                attempts += 1
                await asyncio.sleep(0.1)

        if last_exc is not None:
            raise last_exc
        return last_error_resp if last_error_resp is not None else {"error": {"code": 429, "message": "All RPC URLs rate limited or failed"}}
