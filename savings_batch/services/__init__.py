"""savings_batch.services -- Daily contribution processor."""

from savings_batch.services.processor import (
    DailyContributionProcessor,
    build_daily_processor,
)

__all__ = ["DailyContributionProcessor", "build_daily_processor"]
