"""Bounded exponential backoff for transient store errors."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from x509_lifecycle.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retry StoreUnavailable with exponential backoff, then give up."""

    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def call(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Invoke ``operation``, retrying transient failures.

        Raises:
            StoreUnavailable: When every attempt failed
        """
        for attempt in range(self.max_attempts):
            try:
                return operation(*args, **kwargs)
            except StoreUnavailable as e:
                if attempt < self.max_attempts - 1:
                    delay = self.base_delay * (2**attempt)
                    logger.warning(f"{e}, retrying in {delay}s...")
                    self.sleep(delay)
                    continue
                logger.error(f"{e}, giving up after {self.max_attempts} attempts")
                raise

        raise StoreUnavailable("Max retries exceeded")
