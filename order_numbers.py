"""
Human-readable order numbers: PREFIX + YYMMDD + 4 random digits.

A taken number gets a fresh random suffix, up to MAX_ATTEMPTS tries. After
that, or if the uniqueness lookup itself fails, the number falls back to
PREFIX + epoch milliseconds + 3 random digits, which is not re-checked.
"""
import logging
import random
from datetime import datetime
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5


class OrderNumberGenerator:
    def __init__(self, is_taken: Callable[[str], bool], prefix: str = "RD",
                 rng: Optional[random.Random] = None):
        self.is_taken = is_taken
        self.prefix = prefix
        self.rng = rng or random.SystemRandom()

    def generate(self, current: datetime) -> str:
        suffix = self.rng.randint(0, 9999)
        return f"{self.prefix}{current:%y%m%d}{suffix:04d}"

    def fallback(self, current: datetime) -> str:
        millis = int(current.timestamp() * 1000)
        return f"{self.prefix}{millis}{self.rng.randint(0, 999):03d}"

    def is_unique(self, candidate: str) -> bool:
        return not self.is_taken(candidate)

    def assign(self, current: datetime) -> str:
        try:
            for _ in range(MAX_ATTEMPTS):
                candidate = self.generate(current)
                if self.is_unique(candidate):
                    return candidate
                logger.info("Order number %s already taken, retrying", candidate)
        except Exception:
            logger.exception("Order number lookup failed, using timestamp fallback")
            return self.fallback(current)
        logger.warning("No free order number after %d attempts, using timestamp fallback",
                       MAX_ATTEMPTS)
        return self.fallback(current)
