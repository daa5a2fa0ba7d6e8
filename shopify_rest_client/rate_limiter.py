"""Call-limit tracking for Shopify's leaky bucket."""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

# Shopify sends "X-Shopify-Shop-Api-Call-Limit: 32/40".
CALL_LIMIT_HEADER = "shop-api-call-limit"


@dataclass
class RateState:
    """Bucket usage reported by the most recent response."""
    used: int = 0
    capacity: int = 0

    @property
    def ratio(self) -> float:
        if self.capacity <= 0:
            return 0.0
        return self.used / self.capacity


def parse_call_limit(headers: Optional[Mapping[str, str]]) -> RateState:
    """
    Parse the call-limit header out of a response's headers.

    A missing or malformed header yields an empty state (no throttling).
    """
    if not headers:
        return RateState()

    value = None
    for name, header_value in headers.items():
        if CALL_LIMIT_HEADER in name.lower():
            value = header_value
            break
    if not value:
        return RateState()

    used, sep, capacity = value.partition("/")
    if not sep:
        return RateState()
    try:
        return RateState(used=int(used.strip()), capacity=int(capacity.strip()))
    except ValueError:
        logger.debug("Ignoring malformed call limit header: %r", value)
        return RateState()


class CallLimitTracker:
    """
    Advisory rate limiter driven by Shopify's call-limit header.

    Shopify exposes a leaky bucket as ``used/capacity``. Once the ratio reaches
    the threshold, the next outgoing call is delayed by a random interval so that
    several workers sharing the same bucket do not retry in lockstep.

    State is per instance and not synchronized.
    """

    def __init__(
        self,
        enabled: bool = True,
        threshold: float = 0.8,
        min_delay: float = 3.0,
        max_delay: float = 10.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize the tracker.

        Args:
            enabled: When False, wait() never sleeps
            threshold: Ratio at which the next call gets delayed
            min_delay: Lower bound of the randomized delay, in seconds
            max_delay: Upper bound of the randomized delay, in seconds
            sleep: Blocking sleep function (injectable for tests)
            rng: Random source (injectable for tests)
        """
        self.enabled = enabled
        self.threshold = threshold
        self.min_delay = min_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.state = RateState()
        self.delay_next_call = False

    def update(self, headers: Optional[Mapping[str, str]]) -> RateState:
        """Overwrite the state from response headers and recompute the delay flag."""
        self.state = parse_call_limit(headers)
        self.delay_next_call = self.call_limit_reached()
        return self.state

    def get_call_limit(self) -> float:
        """Return used/capacity, or 0 when the capacity is unknown."""
        return self.state.ratio

    def call_limit_reached(self) -> bool:
        return self.get_call_limit() >= self.threshold

    def wait(self) -> float:
        """
        Sleep before the next call if the previous response asked for it.

        Returns:
            Seconds slept (0 when no delay was needed)
        """
        if not (self.enabled and self.delay_next_call):
            return 0.0
        delay = self._rng.uniform(self.min_delay, self.max_delay)
        logger.warning(
            "Shopify call limit at %d/%d, sleeping %.1fs before next call",
            self.state.used,
            self.state.capacity,
            delay,
        )
        self._sleep(delay)
        return delay
