"""Next-run computation for product check intervals."""

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

FALLBACK_INTERVAL = timedelta(hours=24)


def next_check(expression: str | None, now: datetime) -> datetime:
    """
    Next fire time of a crontab ``expression`` strictly after ``now`` (UTC).

    Invalid or empty expressions fall back to ``now + 24h``.
    """
    if expression:
        try:
            trigger = CronTrigger.from_crontab(expression, timezone=timezone.utc)
        except ValueError as e:
            logger.warning("Invalid check interval %r (%s); checking again in 24h", expression, e)
        else:
            fire = trigger.get_next_fire_time(None, now + timedelta(seconds=1))
            if fire is not None:
                return fire.astimezone(timezone.utc)
    return now + FALLBACK_INTERVAL
