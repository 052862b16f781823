"""
Season detection and override resolution for towns.

Per season key, the first matching rule wins:
1. forced-off override row      -> excluded (forced_off)
2. override window holds as_of  -> included (override)
3. override window misses as_of -> excluded (override); no fallback to auto-detection
4. no override row              -> auto-detected
"""
import logging
from datetime import date, datetime
from typing import Callable, Dict, FrozenSet, Iterable, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from recommendations.dtos import OverrideState, SeasonResolution, SeasonSource
from recommendations.exceptions import OverrideConflict, UnknownSeasonKey
from recommendations.models import (
    PRIMARY_SEASONS, SEASON_DISABLED_SENTINEL, RouteWindow, SeasonKey, SeasonOverride
)
from recommendations.windows import resolve_route_window
from towns.models import Town

logger = logging.getLogger(__name__)

SEASON_KEY_ORDER = list(SeasonKey)

# (tag, (start month, start day), (end month, end day)); ranges may wrap the year end
AUTO_SEASON_RULES = (
    (SeasonKey.HOLIDAY, (11, 15), (12, 31)),
    (SeasonKey.SCHOOL, (8, 1), (5, 25)),
    (SeasonKey.FOOTBALL, (8, 15), (11, 30)),
)


def parse_season_key(value) -> SeasonKey:
    """
    Raises:
        UnknownSeasonKey: if the value is not a known season key
    """
    if isinstance(value, SeasonKey):
        return value
    if not isinstance(value, str):
        raise UnknownSeasonKey(value)
    try:
        return SeasonKey(value.strip().lower())
    except ValueError:
        raise UnknownSeasonKey(value)


def primary_season_for_month(month: int) -> SeasonKey:
    if month == 12 or month <= 2:
        return SeasonKey.WINTER
    if month <= 5:
        return SeasonKey.SPRING
    if month <= 8:
        return SeasonKey.SUMMER
    return SeasonKey.FALL


def _month_day_in_range(month: int, day: int, start: tuple, end: tuple) -> bool:
    current = month * 100 + day
    start_key = start[0] * 100 + start[1]
    end_key = end[0] * 100 + end[1]
    if start_key <= end_key:
        return start_key <= current <= end_key
    # Cross-year range (e.g. Aug -> May)
    return current >= start_key or current <= end_key


def detect_season_tags(as_of: date) -> FrozenSet[SeasonKey]:
    """Calendar based auto-detection: the primary season plus recurring local seasons."""
    tags = {primary_season_for_month(as_of.month)}
    for tag, start, end in AUTO_SEASON_RULES:
        if _month_day_in_range(as_of.month, as_of.day, start, end):
            tags.add(tag)
    return frozenset(tags)


def overrides_from_rows(rows: Iterable) -> Dict[str, OverrideState]:
    """
    Index override rows by season key.

    Raises:
        OverrideConflict: if two rows target the same season key
    """
    overrides: Dict[str, OverrideState] = {}
    for row in rows:
        key = parse_season_key(row.season_key).value
        if key in overrides:
            raise OverrideConflict(f"More than one override row for season '{key}'")
        overrides[key] = row.state if isinstance(row, SeasonOverride) else OverrideState.from_dates(
            start_date=row.start_date,
            end_date=row.end_date,
            notes=getattr(row, 'notes', None),
            sentinel=SEASON_DISABLED_SENTINEL,
        )
    return overrides


def resolve_season_state(as_of: date, overrides: Mapping[str, OverrideState],
                         detected: Iterable, override_season=None) -> SeasonResolution:
    """
    Reconcile auto-detected tags with a town's override rows.

    Args:
        as_of: date being resolved (town local date)
        overrides: OverrideState per season key value; missing keys are AUTO
        detected: auto-detected season tags for as_of
        override_season: optional caller-supplied season to switch on for this
            request; it cannot revive a forced-off season

    Returns:
        SeasonResolution with tags in canonical order and a source per key
    """
    detected_keys = {parse_season_key(tag).value for tag in detected}
    included = set()
    sources: Dict[str, SeasonSource] = {}
    notes: Dict[str, str] = {}

    for key in SEASON_KEY_ORDER:
        state = overrides.get(key.value) or OverrideState.auto()
        if state.source is SeasonSource.AUTO:
            sources[key.value] = SeasonSource.AUTO
            if key.value in detected_keys:
                included.add(key.value)
        elif state.is_forced_off:
            sources[key.value] = SeasonSource.FORCED_OFF
        else:
            sources[key.value] = SeasonSource.OVERRIDE
            if state.contains(as_of):
                included.add(key.value)
                if state.notes and state.notes.strip():
                    notes[key.value] = state.notes.strip()

    primary = primary_season_for_month(as_of.month)
    if override_season:
        requested = parse_season_key(override_season)
        if sources[requested.value] is not SeasonSource.FORCED_OFF:
            included.add(requested.value)
            sources[requested.value] = SeasonSource.OVERRIDE
            if requested in PRIMARY_SEASONS:
                primary = requested

    return SeasonResolution(
        as_of=as_of,
        season_tags=tuple(key.value for key in SEASON_KEY_ORDER if key.value in included),
        sources=sources,
        primary_season=primary.value,
        notes=notes,
    )


def town_zone(town: Town) -> ZoneInfo:
    """The town's timezone, falling back to the configured default for bad values."""
    default_tz = getattr(settings, 'TOWNFLOW', {}).get('DEFAULT_TIMEZONE', 'America/Chicago')
    try:
        return ZoneInfo(town.timezone or default_tz)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Town {town.id} has invalid timezone '{town.timezone}', using {default_tz}")
        return ZoneInfo(default_tz)


class SeasonResolver:
    """
    Resolves season tags and route windows for a town.
    The clock and detector are injected so resolution is testable.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None,
                 detector: Optional[Callable[[date], Iterable]] = None):
        self.clock = clock or timezone.now
        self.detector = detector or detect_season_tags

    def local_now(self, town: Town, now: Optional[datetime] = None) -> datetime:
        current = now or self.clock()
        if timezone.is_naive(current):
            current = timezone.make_aware(current, ZoneInfo('UTC'))
        return current.astimezone(town_zone(town))

    def resolve(self, town_id, as_of_date: Optional[date] = None, override_season=None) -> SeasonResolution:
        """
        Resolve the season tags of a town.

        Args:
            town_id: UUID of the town
            as_of_date: date to resolve; defaults to today in the town's timezone
            override_season: optional season key switched on for this request

        Raises:
            UnknownTown: if the town is not stored
            UnknownSeasonKey: if override_season is not a season key
        """
        town = Town.get_or_raise(town_id)
        as_of = as_of_date or self.local_now(town).date()
        overrides = overrides_from_rows(SeasonOverride.objects.filter(town=town))
        return resolve_season_state(as_of, overrides, self.detector(as_of), override_season)

    def resolve_window(self, town_id, override=None, now: Optional[datetime] = None) -> RouteWindow:
        """
        Route window for a town. An explicit override wins; otherwise the
        window comes from the clock in the town's timezone.
        """
        town = Town.get_or_raise(town_id)
        if override:
            return resolve_route_window(now or self.clock(), override)
        return resolve_route_window(self.local_now(town, now))


class SeasonOverrideService:
    """Admin-side writes to a town's season override rows."""

    def upsert_override(self, town_id, season_key, start_date: Optional[date] = None,
                        end_date: Optional[date] = None, notes: Optional[str] = None) -> SeasonOverride:
        """
        Store a manual window for one season key, replacing any existing row.

        Raises:
            OverrideConflict: for an inverted window or a window on the disable sentinel
            UnknownSeasonKey, UnknownTown
        """
        key = parse_season_key(season_key)
        validate_override_window(start_date, end_date)
        town = Town.get_or_raise(town_id)
        with transaction.atomic():
            row, created = SeasonOverride.objects.update_or_create(
                town=town,
                season_key=key,
                defaults={
                    'start_date': start_date,
                    'end_date': end_date,
                    'notes': notes,
                }
            )
        action = "created" if created else "updated"
        logger.info(f"Season override {action} for {key.value} in town {town.id}: {start_date}..{end_date}")
        return row

    def force_off(self, town_id, season_key, notes: Optional[str] = None) -> SeasonOverride:
        """Switch a season off for a town regardless of auto-detection."""
        key = parse_season_key(season_key)
        town = Town.get_or_raise(town_id)
        with transaction.atomic():
            row, _ = SeasonOverride.objects.update_or_create(
                town=town,
                season_key=key,
                defaults={
                    'start_date': SEASON_DISABLED_SENTINEL,
                    'end_date': SEASON_DISABLED_SENTINEL,
                    'notes': notes,
                }
            )
        logger.info(f"Season {key.value} forced off in town {town.id}")
        return row

    def clear_override(self, town_id, season_key) -> bool:
        """Delete the override row so the season goes back to auto-detection."""
        key = parse_season_key(season_key)
        town = Town.get_or_raise(town_id)
        deleted, _ = SeasonOverride.objects.filter(town=town, season_key=key).delete()
        if deleted:
            logger.info(f"Season override for {key.value} cleared in town {town.id}")
        return bool(deleted)


def validate_override_window(start_date: Optional[date], end_date: Optional[date]) -> None:
    """
    Raises:
        OverrideConflict: if the window is inverted or touches the disable sentinel
    """
    if SEASON_DISABLED_SENTINEL in (start_date, end_date):
        raise OverrideConflict(
            f"{SEASON_DISABLED_SENTINEL.isoformat()} is reserved for force-disabled seasons"
        )
    if start_date and end_date and start_date > end_date:
        raise OverrideConflict(f"Override window starts after it ends ({start_date} > {end_date})")
