# backend/portfolio_tracker/utils/date_utils.py
"""
Trading calendar helpers.

"Today" and "trading day" are always judged in the trading timezone
(America/New_York by default), never in the server's local timezone.
A trading day is Monday through Friday; exchange holidays are not
modelled, so a holiday simply values at the prior close.

Usage:
    from portfolio_tracker.utils.date_utils import today_in_market, get_business_days

    days = get_business_days(start_date, today_in_market())
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from portfolio_tracker.config import settings


def market_timezone() -> ZoneInfo:
    """The configured trading timezone."""
    return ZoneInfo(settings.trading_timezone)


def now_in_market() -> datetime:
    """Current wall-clock time in the trading timezone (tz-aware)."""
    return datetime.now(timezone.utc).astimezone(market_timezone())


def today_in_market() -> date:
    """Current calendar date in the trading timezone."""
    return now_in_market().date()


def market_date_of(moment: datetime) -> date:
    """
    Calendar date of an instant, as seen in the trading timezone.

    Naive datetimes are assumed to be UTC (that is how they are stored).
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(market_timezone()).date()


def is_business_day(d: date) -> bool:
    """
    Check if a date is a business day (weekday).

    Returns:
        True if Monday-Friday, False if Saturday-Sunday
    """
    return d.weekday() < 5


def get_business_days(start_date: date, end_date: date) -> list[date]:
    """
    Get list of business days (weekdays) in a date range.

    Args:
        start_date: First date in range (inclusive)
        end_date: Last date in range (inclusive)

    Returns:
        List of weekdays, sorted chronologically

    Example:
        >>> get_business_days(date(2024, 1, 1), date(2024, 1, 7))
        [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3),
         date(2024, 1, 4), date(2024, 1, 5)]  # Mon-Fri
    """
    return [d for d in iter_days(start_date, end_date) if is_business_day(d)]


def iter_days(start_date: date, end_date: date):
    """Yield every calendar day from start_date to end_date inclusive."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def previous_business_day(d: date) -> date:
    """
    Get the business day before a given date.

    Monday returns the previous Friday.
    """
    prev_day = d - timedelta(days=1)
    while prev_day.weekday() >= 5:
        prev_day -= timedelta(days=1)
    return prev_day


def is_market_open(moment: datetime | None = None) -> bool:
    """True between market open and close on a trading day."""
    moment = moment or now_in_market()
    local = moment.astimezone(market_timezone())
    if not is_business_day(local.date()):
        return False
    return settings.market_open <= local.time() < settings.market_close


def market_time_on(d: date, at: time) -> datetime:
    """A tz-aware datetime for ``at`` on date ``d`` in the trading timezone."""
    return datetime.combine(d, at, tzinfo=market_timezone())
