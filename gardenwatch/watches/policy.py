"""Reconnection policy for watch connections.

Exponential backoff keyed by the 1-based attempt number::

    delay_ms(attempt) = min(max_delay_ms, base_delay_ms * 2 ** (attempt - 1))

so consecutive attempts wait ``base, 2*base, 4*base, ...`` until the cap.

Jitter is optional and off by default.  With ``jitter=j`` the delay is drawn
uniformly from ``[d * (1 - j), d]`` where ``d`` is the delay above; it never
exceeds the cap.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

# Credentials and missing collections do not heal by waiting.
_NON_RETRYABLE_STATUS = frozenset({401, 403, 404})


@dataclass(frozen=True)
class ReconnectDecision:
    """Outcome of a policy decision."""

    retry: bool
    delay_ms: int = 0


_NO_RETRY = ReconnectDecision(retry=False)


class ReconnectionPolicy:
    """Decides whether and when a disconnected watch is re-established."""

    def __init__(
        self,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 60000,
        max_attempts: int | None = None,
        jitter: float = 0.0,
        rng: random.Random | None = None,
    ) -> None:
        if base_delay_ms <= 0:
            raise ValueError("base_delay_ms must be positive")
        if max_delay_ms < base_delay_ms:
            raise ValueError("max_delay_ms must not be smaller than base_delay_ms")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError("jitter must be within [0, 1]")
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.max_attempts = max_attempts or None
        self.jitter = jitter
        self._rng = rng or random.Random()

    def decide(self, error: BaseException | None, attempt: int) -> ReconnectDecision:
        """Return the decision for the *attempt*-th reconnect after *error*.

        A clean disconnect (``error is None``) never retries.
        """
        if error is None:
            return _NO_RETRY
        if not self.is_retryable(error):
            return _NO_RETRY
        if self.max_attempts is not None and attempt > self.max_attempts:
            return _NO_RETRY
        return ReconnectDecision(retry=True, delay_ms=self._jittered(self.delay_ms(attempt)))

    def delay_ms(self, attempt: int) -> int:
        """Backoff delay without jitter for a 1-based *attempt*."""
        exponent = max(attempt, 1) - 1
        # Past this point the product exceeds any sane cap.
        if exponent >= 63:
            return self.max_delay_ms
        return min(self.max_delay_ms, self.base_delay_ms * 2**exponent)

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, ApiException):
            return error.status not in _NON_RETRYABLE_STATUS
        return True

    def _jittered(self, delay: int) -> int:
        if not self.jitter:
            return delay
        low = delay * (1.0 - self.jitter)
        return int(self._rng.uniform(low, delay))
