from typing import Any, ClassVar

import httpx

from docproc.providers.base import BaseProviderAdapter
from docproc.providers.exceptions import PermanentProviderError, TransientProviderError

_TRANSIENT_STATUS = frozenset({408, 409, 425, 429})


class HttpProviderAdapter(BaseProviderAdapter):
    """Base for backends called directly over their REST API with httpx.

    ``http_client`` may be injected (e.g. with an ``httpx.MockTransport``);
    otherwise one client per adapter is created with the adapter timeout.
    """

    DEFAULT_BASE_URL: ClassVar[str]

    def __init__(
        self,
        *,
        api_key: str = "",
        timeout_seconds: int = 60,
        base_url: str | None = None,
        http_client: httpx.Client | None = None,
    ) -> None:
        super().__init__(
            api_key=api_key,
            timeout_seconds=timeout_seconds,
            base_url=(base_url or self.DEFAULT_BASE_URL).rstrip("/"),
        )
        self._http = http_client or httpx.Client(timeout=timeout_seconds)

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        provider = self.provider_type.value
        try:
            response = self._http.post(
                f"{self._base_url}{path}",
                json=payload,
                headers=self._headers(),
                timeout=self._timeout_seconds,
            )
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            raise TransientProviderError(
                f"{self.name} network error: {exc}", provider=provider
            ) from exc

        if response.status_code >= 500 or response.status_code in _TRANSIENT_STATUS:
            raise TransientProviderError(
                f"{self.name} API error {response.status_code}: {response.text[:200]}",
                provider=provider,
            )
        if response.status_code >= 400:
            raise PermanentProviderError(
                f"{self.name} rejected request {response.status_code}: {response.text[:200]}",
                provider=provider,
            )
        try:
            data: dict[str, Any] = response.json()
        except ValueError as exc:
            raise TransientProviderError(
                f"{self.name} returned a non-JSON body", provider=provider
            ) from exc
        return data
