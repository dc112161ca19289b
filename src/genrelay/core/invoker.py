"""Provider invocation with bounded retry and callback submission.

:class:`ProviderInvoker` sits between the handler and a
:class:`~genrelay.core.provider.Provider`:

- :meth:`ProviderInvoker.run` waits for a result, retrying transient failures
  up to ``max_attempts`` calls in total with a randomized delay between them
  so that many failing requests don't hit the provider in lockstep.
- :meth:`ProviderInvoker.submit` hands the job to the provider with a webhook
  and returns a :class:`~genrelay.core.types.Pending` immediately.  The
  routing metadata rides along inside the input under ``_meta`` and comes
  back verbatim in the callback payload.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

from genrelay.core.errors import (
    MisconfiguredCallback,
    ProviderError,
    ProviderRejected,
    ProviderUnavailable,
)
from genrelay.core.provider import Provider
from genrelay.core.types import Pending

logger = logging.getLogger(__name__)

META_KEY = "_meta"


class ProviderInvoker:
    """Calls the provider in synchronous or callback mode.

    Attributes:
        max_attempts: Total number of provider calls in :meth:`run`.
        backoff_min, backoff_max: Bounds (seconds) of the random delay
            between attempts.
        callback_url: Webhook URL used by :meth:`submit`, or ``None`` when
            callback mode is not configured.
    """

    def __init__(
        self,
        provider: Provider,
        *,
        max_attempts: int = 2,
        backoff_min: float = 0.2,
        backoff_max: float = 0.6,
        callback_url: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._provider = provider
        self.max_attempts = max_attempts
        self.backoff_min = backoff_min
        self.backoff_max = max(backoff_min, backoff_max)
        self.callback_url = callback_url
        self._sleep = sleep

    async def run(self, model_id: str, input: dict[str, Any]) -> Any:
        """Invoke the model and wait for its output.

        Raises:
            ProviderRejected: Immediately, if the provider refuses the input.
            ProviderUnavailable: After ``max_attempts`` transient failures.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._provider.run(model_id, input)
            except ProviderRejected as exc:
                logger.warning("Provider rejected %s: %s", model_id, exc)
                raise
            except Exception as exc:
                # Anything short of an explicit rejection is worth another try.
                last_error = exc
                logger.warning(
                    "Provider attempt %d/%d for %s failed: %s",
                    attempt,
                    self.max_attempts,
                    model_id,
                    exc,
                )

            if attempt < self.max_attempts:
                await self._sleep(random.uniform(self.backoff_min, self.backoff_max))

        raise ProviderUnavailable(
            f"Provider unavailable after {self.max_attempts} attempts: {last_error}",
            debug={"attempts": self.max_attempts},
        ) from last_error

    async def submit(
        self,
        model_id: str,
        input: dict[str, Any],
        metadata: dict[str, Any],
    ) -> Pending:
        """Submit a prediction that completes through the callback route.

        Submission is not retried: a duplicate submission would produce a
        duplicate video and a second callback.

        Raises:
            MisconfiguredCallback: If no callback URL is configured.  Raised
                before anything is sent.
            ProviderRejected: If the provider refuses the input.
            ProviderUnavailable: If the submission fails transiently.
        """
        if not self.callback_url:
            raise MisconfiguredCallback("Callback mode requires GENRELAY_CALLBACK_URL")

        payload = dict(input)
        payload[META_KEY] = metadata

        try:
            job_id = await self._provider.submit(model_id, payload, self.callback_url)
        except ProviderError as exc:
            if not exc.transient:
                raise
            raise ProviderUnavailable(f"Provider unavailable: {exc}") from exc

        logger.info("Submitted %s prediction %s (callback mode).", model_id, job_id)
        return Pending(job_id=str(job_id))
