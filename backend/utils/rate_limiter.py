"""Rate limiting for login attempts and outbound report emails."""
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

logger = logging.getLogger(__name__)

class RateLimiter:
    def __init__(self):
        # In-memory, per process
        self.attempts = {}

    async def check_rate_limit(
        self,
        key: str,
        max_attempts: int,
        window_minutes: int
    ) -> tuple[bool, Optional[str]]:
        """
        Check if rate limit is exceeded, recording this attempt when allowed.

        Returns:
            (allowed: bool, error_message: Optional[str])
        """
        now = datetime.now(timezone.utc)
        window = timedelta(minutes=window_minutes)

        self.attempts[key] = [
            timestamp for timestamp in self.attempts.get(key, [])
            if now - timestamp < window
        ]

        if len(self.attempts[key]) >= max_attempts:
            wait_until = min(self.attempts[key]) + window
            wait_seconds = int((wait_until - now).total_seconds())
            logger.warning(f"Rate limit hit for {key}")
            return False, f"Rate limit exceeded. Try again in {wait_seconds} seconds"

        self.attempts[key].append(now)
        return True, None

    def reset(self, key: str):
        """Forget recorded attempts, e.g. after a successful login."""
        self.attempts.pop(key, None)

rate_limiter = RateLimiter()
