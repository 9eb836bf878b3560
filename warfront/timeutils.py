"""UTC time utilities for income days and war timers."""

import datetime
import time

from warfront.models import RULES_CONFIG

COLLECTION_HOUR = RULES_CONFIG.income.collection_hour_utc


def now() -> float:
    """Current epoch seconds."""
    return time.time()


def collection_day_start(timestamp: float, hour: int = COLLECTION_HOUR) -> float:
    """Start of the income day containing `timestamp` (rolls over at `hour` UTC)."""
    moment = datetime.datetime.fromtimestamp(timestamp, datetime.timezone.utc)
    start = moment.replace(hour=hour, minute=0, second=0, microsecond=0)
    if start > moment:
        start -= datetime.timedelta(days=1)
    return start.timestamp()


def next_collection_at(timestamp: float, hour: int = COLLECTION_HOUR) -> float:
    return collection_day_start(timestamp, hour) + 24 * 3600

