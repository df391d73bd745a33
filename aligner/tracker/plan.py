"""Tray replacement plan."""

import logging
from datetime import date, timedelta

from .models import TrayEntry

logger = logging.getLogger(__name__)


def generate_trays(count: int, days_per_tray: int, start_date: date, is_upper: bool) -> list[TrayEntry]:
    """
    Generate the plan for one arch.

    Args:
        count: Number of trays
        days_per_tray: Days each tray is worn
        start_date: Start date of tray 1
        is_upper: True for the upper arch

    Returns:
        Trays 1..count, tray i starting (i-1)*days_per_tray days after start_date
    """
    return [
        TrayEntry(
            tray_number=i + 1,
            start_date=start_date + timedelta(days=i * days_per_tray),
            is_upper=is_upper,
        )
        for i in range(count)
    ]


def setup_plan(
    upper_count: int, lower_count: int, days_per_tray: int, start_date: date
) -> tuple[list[TrayEntry], list[TrayEntry]]:
    """Generate (upper_trays, lower_trays) from a shared start date."""
    upper = generate_trays(upper_count, days_per_tray, start_date, is_upper=True)
    lower = generate_trays(lower_count, days_per_tray, start_date, is_upper=False)
    logger.info(
        f"Plan created: {upper_count} upper, {lower_count} lower, "
        f"{days_per_tray} days per tray from {start_date}"
    )
    return upper, lower


def shift_tray_date(trays: list[TrayEntry], index: int, new_date: date) -> list[TrayEntry]:
    """
    Move one tray's start date and shift every later tray by the same delta.

    Trays before index are untouched. An out-of-range index leaves the plan
    unchanged.

    Example:
        trays start on days 0, 14, 28, 42, 56; moving index 2 by +3 days
        gives 0, 14, 31, 45, 59
    """
    if index < 0 or index >= len(trays):
        logger.warning(f"Tray index {index} out of range (plan has {len(trays)} trays)")
        return list(trays)

    diff = new_date - trays[index].start_date
    updated = list(trays[:index])
    updated.append(trays[index].model_copy(update={"start_date": new_date}))
    for tray in trays[index + 1:]:
        updated.append(tray.model_copy(update={"start_date": tray.start_date + diff}))

    logger.info(f"Tray {index + 1} moved to {new_date} ({diff.days:+d} days)")
    return updated


def is_current_tray(current: int, tray_number: int) -> bool:
    return tray_number == current


def is_past_tray(current: int, tray_number: int) -> bool:
    """A tray before the current one has already been worn."""
    return tray_number < current
