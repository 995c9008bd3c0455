"""HTTP client for the remote store used by the sync manager."""
import json
import logging
import mimetypes
from typing import Any

import httpx

from plasticwatch.config import settings
from plasticwatch.utils.exceptions import (
    AppException,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TransientIOError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_ERRORS = {
    401: AuthorizationError,
    403: AuthorizationError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("detail") or body)
    return str(body)


class RemoteStore:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        user_claims: str | dict | None = None,
        client: httpx.AsyncClient | None = None,
        bucket: str | None = None,
    ):
        self.bucket = bucket or settings.image_bucket
        self._headers: dict[str, str] = {}

        api_key = settings.remote_api_key if api_key is None else api_key
        if api_key:
            self._headers["X-API-Key"] = api_key

        claims = settings.remote_user_claims if user_claims is None else user_claims
        if isinstance(claims, dict):
            claims = json.dumps(claims)
        if claims:
            self._headers["X-User-Claims"] = claims

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.remote_api_url,
            timeout=settings.remote_timeout_seconds,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise TransientIOError(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 400:
            message = f"{method} {url} returned {response.status_code}: {_error_message(response)}"
            error_cls = _STATUS_ERRORS.get(response.status_code)
            if error_cls is None:
                raise TransientIOError(message)
            raise error_cls(message)
        return response

    async def is_online(self) -> bool:
        try:
            response = await self._client.get("/health", headers=self._headers)
        except httpx.HTTPError as exc:
            logger.debug("Remote store unreachable: %s", exc)
            return False
        return response.status_code == 200

    async def upload_file(self, blob: bytes, name: str, path: str | None = None) -> str:
        """Upload an image blob and return its public URL."""
        content_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
        response = await self._request(
            "POST",
            f"/api/v1/storage/{self.bucket}",
            files={"file": (name, blob, content_type)},
            data={"path": path} if path else None,
        )
        return response.json()["data"]["public_url"]

    async def insert_contribution(self, record: dict[str, Any]) -> dict[str, Any]:
        response = await self._request("POST", "/api/v1/contributions", json=record)
        data = response.json().get("data")
        if not isinstance(data, dict):
            raise AppException("Remote store returned no contribution", status_code=502)
        return data
