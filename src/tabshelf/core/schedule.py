"""
Auto-sync schedule evaluation.
"""

from datetime import datetime

from tabshelf.core.models import AutoSyncFrequency, Settings


def should_auto_sync(settings: Settings, now: datetime | None = None) -> bool:
    """
    Decide whether a startup sync is due.

    Periods are calendar based in local time: "weekly" compares ISO weeks,
    "monthly" compares year and month, "yearly" compares years. A library
    that never synced has a last sync at the epoch, so it is always due.

    Args:
        settings: Current library settings
        now: Reference time, defaults to the current local time

    Returns:
        True if a sync should run now
    """
    if not settings.auto_sync_enabled:
        return False

    now = now or datetime.now()
    last = datetime.fromtimestamp(settings.last_sync_time)
    frequency = settings.auto_sync_frequency

    if frequency == AutoSyncFrequency.STARTUP:
        return True
    if frequency == AutoSyncFrequency.WEEKLY:
        return last.isocalendar()[:2] != now.isocalendar()[:2]
    if frequency == AutoSyncFrequency.MONTHLY:
        return (last.year, last.month) != (now.year, now.month)
    if frequency == AutoSyncFrequency.YEARLY:
        return last.year != now.year
    return True
