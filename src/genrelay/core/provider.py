"""Inference provider client (Replicate HTTP API).

The relay only needs two provider operations:

``run(model_id, input)``
    Create a prediction and wait for it to finish, returning its ``output``.
``submit(model_id, input, webhook_url)``
    Create a prediction that reports completion to ``webhook_url`` and return
    its id immediately.

:class:`Provider` is the structural interface the rest of the relay depends
on; :class:`ReplicateClient` implements it over a shared
``httpx.AsyncClient``.  Tests substitute in-memory fakes.

Error classification
--------------------
Failures are reported as :class:`~genrelay.core.errors.ProviderError`
(transient, safe to retry) or
:class:`~genrelay.core.errors.ProviderRejected` (permanent):

========================================  ==========
Condition                                 Class
========================================  ==========
Network error / timeout                   transient
HTTP 5xx, 408, 429                        transient
Response body is not a JSON object        transient
Prediction ended ``failed``/``canceled``  transient
Any other HTTP 4xx (e.g. 422 validation)  permanent
========================================  ==========

There is no overall deadline on polling; a prediction that never reaches a
terminal state keeps the request open until the caller's own timeout fires.

The create call asks Replicate to block for at most ``sync_wait`` seconds
(``Prefer: wait=N``).  The wait is always strictly below the HTTP client's
read timeout; a prediction still running when it expires is polled.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Protocol

import httpx

from genrelay.core.errors import ProviderError, ProviderRejected

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})

_TRANSIENT_STATUS_CODES = frozenset({408, 429})

_MAX_SYNC_WAIT = 60


class Provider(Protocol):
    """Structural interface of an inference provider."""

    async def run(self, model_id: str, input: dict[str, Any]) -> Any: ...

    async def submit(self, model_id: str, input: dict[str, Any], webhook_url: str) -> str: ...


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("title") or body)
    return str(body)


def bounded_sync_wait(sync_wait: int | None, read_timeout: float | None) -> int | None:
    """Return the ``Prefer: wait`` seconds to send, strictly below ``read_timeout``.

    ``None`` means no blocking wait: the create call returns at once and the
    client polls.
    """
    if sync_wait is None:
        return None
    wait = min(sync_wait, _MAX_SYNC_WAIT)
    if read_timeout is not None:
        wait = min(wait, math.ceil(read_timeout) - 1)
    return wait if wait >= 1 else None


class ReplicateClient:
    """Async client for the Replicate predictions API.

    Attributes:
        base_url: API root, e.g. ``https://api.replicate.com``.
        poll_interval: Seconds between status polls while waiting.
        sync_wait: Seconds Replicate may block the create call, already
            capped below the client's read timeout.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_token: str,
        base_url: str = "https://api.replicate.com",
        poll_interval: float = 1.0,
        sync_wait: int | None = 30,
    ) -> None:
        self._client = client
        self._api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.sync_wait = bounded_sync_wait(sync_wait, client.timeout.read)
        if sync_wait is not None and self.sync_wait != sync_wait:
            logger.warning(
                "sync_wait lowered from %s to %s to stay below the HTTP read timeout.",
                sync_wait,
                self.sync_wait,
            )

    # -- Public interface ---------------------------------------------------

    async def run(self, model_id: str, input: dict[str, Any]) -> Any:
        """Create a prediction and wait until it reaches a terminal status.

        Returns:
            The prediction's ``output`` field.

        Raises:
            ProviderError: On transient failure or a failed prediction.
            ProviderRejected: If the provider refuses the request outright.
        """
        prediction = await self._create(model_id, input, wait=True)

        while prediction.get("status") not in TERMINAL_STATUSES:
            await asyncio.sleep(self.poll_interval)
            prediction = await self._get(prediction["id"])

        status = prediction.get("status")
        if status != "succeeded":
            error = prediction.get("error") or f"prediction {status}"
            raise ProviderError(
                f"Prediction {prediction.get('id')} {status}: {error}",
                debug={"predictionId": prediction.get("id"), "status": status},
            )
        return prediction.get("output")

    async def submit(self, model_id: str, input: dict[str, Any], webhook_url: str) -> str:
        """Create a prediction that calls ``webhook_url`` when it completes.

        Returns:
            The prediction id.
        """
        prediction = await self._create(
            model_id,
            input,
            webhook=webhook_url,
            webhook_events_filter=["completed"],
        )
        return prediction["id"]

    # -- HTTP helpers -------------------------------------------------------

    def _headers(self, *, wait: bool = False) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        if wait and self.sync_wait is not None:
            headers["Prefer"] = f"wait={self.sync_wait}"
        return headers

    def _create_url_and_body(
        self, model_id: str, input: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        # "owner/name:version" pins a version; bare "owner/name" uses the
        # model's latest deployment endpoint.
        if ":" in model_id:
            _, version = model_id.split(":", 1)
            return f"{self.base_url}/v1/predictions", {"version": version, "input": input}
        return f"{self.base_url}/v1/models/{model_id}/predictions", {"input": input}

    async def _create(
        self,
        model_id: str,
        input: dict[str, Any],
        *,
        wait: bool = False,
        **extra: Any,
    ) -> dict[str, Any]:
        url, body = self._create_url_and_body(model_id, input)
        body.update(extra)
        logger.info("Creating prediction for %s (wait=%s).", model_id, wait)
        response = await self._request("POST", url, json=body, headers=self._headers(wait=wait))
        prediction = self._decode(response)
        if "id" not in prediction:
            raise ProviderError(
                "Provider response has no prediction id",
                debug={"keys": sorted(prediction)},
            )
        return prediction

    async def _get(self, prediction_id: str) -> dict[str, Any]:
        url = f"{self.base_url}/v1/predictions/{prediction_id}"
        response = await self._request("GET", url, headers=self._headers())
        return self._decode(response)

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Provider request failed: {type(exc).__name__}: {exc}") from exc

        if response.is_success:
            return response

        detail = _error_detail(response)
        debug = {"status": response.status_code}
        if response.status_code >= 500 or response.status_code in _TRANSIENT_STATUS_CODES:
            raise ProviderError(f"Provider error {response.status_code}: {detail}", debug=debug)
        raise ProviderRejected(f"Provider rejected request: {detail}", debug=debug)

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("Malformed provider response") from exc
        if not isinstance(body, dict):
            raise ProviderError(
                "Malformed provider response",
                debug={"type": type(body).__name__},
            )
        return body
