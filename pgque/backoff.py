"""
Retry backoff policies.

A backoff policy maps the number of failures a job has accumulated to the
delay before it becomes eligible again.
"""

from datetime import timedelta
from typing import Callable, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pgque.config import Settings
from pgque.constants import MAX_BACKOFF_SECONDS

# Type alias for backoff policies
BackoffPolicy = Callable[[int], timedelta]


class PolynomialBackoff(BaseModel):
    """
    Polynomial backoff that saturates at a ceiling.

    delay(n) = min(base_seconds + n ** exponent, max_seconds)

    With the defaults a job waits 4s after its first failure, 19s after
    the second, 84s after the third, and never more than a day.
    """

    model_config = ConfigDict(frozen=True)

    base_seconds: float = Field(default=3.0, gt=0, allow_inf_nan=False)
    exponent: float = Field(default=4.0, ge=0, allow_inf_nan=False)
    max_seconds: float = Field(
        default=86400.0, gt=0, le=MAX_BACKOFF_SECONDS, allow_inf_nan=False
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> Self:
        if self.max_seconds < self.base_seconds:
            raise ValueError("max_seconds must be >= base_seconds")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "PolynomialBackoff":
        """Build the policy from application settings."""
        return cls(
            base_seconds=settings.backoff_base_seconds,
            exponent=settings.backoff_exponent,
            max_seconds=settings.backoff_max_seconds,
        )

    def __call__(self, error_count: int) -> timedelta:
        """
        Compute the delay for a job that has failed error_count times.

        Args:
            error_count: Number of failures, including the one being recorded.

        Returns:
            The delay before the job may run again.

        Raises:
            ValueError: If error_count is negative.
        """
        if error_count < 0:
            raise ValueError(f"error_count must be >= 0, got {error_count}")

        ceiling = timedelta(seconds=self.max_seconds)
        try:
            growth = float(error_count) ** self.exponent
        except OverflowError:
            return ceiling
        if growth >= self.max_seconds - self.base_seconds:
            return ceiling
        return timedelta(seconds=self.base_seconds + growth)
