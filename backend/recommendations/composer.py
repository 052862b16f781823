"""
Daily recommendation composer.

compose() is a pure assembly step over already fetched inputs: base content
first, then boost sections in a fixed, user-facing order, each gated by the
feature that owns it. DailyPlanService gathers those inputs for a town.
"""
import copy
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from django.db import DatabaseError
from django.utils import timezone

from recommendations.dtos import (
    BaseContent, BoostPayloads, DailyContext, DailyRecommendationPack, PackSection
)
from recommendations.exceptions import TownError
from recommendations.seasons import SeasonResolver
from towns.milestones import FeatureKey, MilestoneTracker, is_feature_unlocked
from towns.models import Town

logger = logging.getLogger(__name__)

BASE_SECTIONS = (
    ('today_special', "Today's Special"),
    ('post', "Ready-to-Post"),
    ('sign', "Sign"),
)

# (section key, owning feature, title). Order is the copy-paste order shown to owners.
# A None feature only needs a resolved town context.
BOOST_SECTIONS = (
    ('local', None, "Local Boost"),
    ('town', None, "Town Boost"),
    ('story', FeatureKey.TOWN_STORIES, "Town Story"),
    ('graph', FeatureKey.TOWN_GRAPH_ROUTES, "Town Graph Boost"),
    ('micro_route', FeatureKey.TOWN_GRAPH_ROUTES, "Micro-Route"),
    ('seasonal', FeatureKey.TOWN_PULSE_LEARNING, "Seasonal Boost"),
)


def _has_content(payload: Any) -> bool:
    if payload is None:
        return False
    if isinstance(payload, str):
        return bool(payload.strip())
    if isinstance(payload, (dict, list, tuple, set, frozenset)):
        return len(payload) > 0
    return True


def compose(context: DailyContext) -> DailyRecommendationPack:
    """
    Assemble the daily pack for one business.

    Base sections are included whenever supplied. A boost section is included
    only when its owning feature is unlocked and its payload is non-empty.
    When the milestone summary or the season resolution is missing, every
    boost is left out and only the base content is returned.

    Args:
        context: DailyContext with everything already fetched

    Returns:
        DailyRecommendationPack: same input always gives the same pack
    """
    sections: List[PackSection] = []

    base = context.base or BaseContent()
    for key, title in BASE_SECTIONS:
        payload = getattr(base, key)
        if _has_content(payload):
            sections.append(PackSection(key=key, title=title, payload=copy.deepcopy(payload)))

    season_tags = ()
    if context.milestone is not None and context.season is not None:
        season_tags = tuple(context.season.season_tags)
        boosts = context.boosts or BoostPayloads()
        for key, feature, title in BOOST_SECTIONS:
            if feature is not None and not is_feature_unlocked(context.milestone, feature):
                continue
            payload = getattr(boosts, key)
            if not _has_content(payload):
                continue
            sections.append(PackSection(key=key, title=title, payload=copy.deepcopy(payload)))

    route_window = str(context.route_window) if context.route_window else None
    return DailyRecommendationPack(
        sections=tuple(sections),
        route_window=route_window,
        season_tags=season_tags,
    )


class DailyPlanService:
    """
    Gathers milestone, season and route window for a town and hands them to
    compose(). Town level and storage failures only drop the boosts; the base
    plan always renders.
    """

    def __init__(self, tracker: Optional[MilestoneTracker] = None,
                 resolver: Optional[SeasonResolver] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or timezone.now
        self.tracker = tracker or MilestoneTracker()
        self.resolver = resolver or SeasonResolver(clock=self.clock)

    def build_context(self, town_id, base: Optional[BaseContent] = None,
                      boosts: Optional[BoostPayloads] = None, now: Optional[datetime] = None,
                      window_override=None) -> DailyContext:
        milestone = None
        season = None
        route_window = None
        try:
            current = now or self.clock()
            milestone = self.tracker.summarize(town_id)
            town_now = self.resolver.local_now(Town.get_or_raise(town_id), current)
            season = self.resolver.resolve(town_id, as_of_date=town_now.date())
            route_window = self.resolver.resolve_window(town_id, override=window_override, now=current)
        except (TownError, DatabaseError) as e:
            logger.warning(f"Building daily pack for town {town_id} without boosts: {e}")
            milestone = None
            season = None

        return DailyContext(
            base=base,
            milestone=milestone,
            season=season,
            route_window=route_window,
            boosts=boosts or BoostPayloads(),
        )

    def build_pack(self, town_id, base: Optional[BaseContent] = None,
                   boosts: Optional[BoostPayloads] = None, now: Optional[datetime] = None,
                   window_override=None) -> DailyRecommendationPack:
        """
        Build the daily pack for a business in a town.

        Args:
            town_id: UUID of the town
            base: base content from the content generator
            boosts: optional boost payloads
            now: moment to resolve seasons and route window for; defaults to the clock
            window_override: explicit route window, wins over the clock

        Returns:
            DailyRecommendationPack
        """
        context = self.build_context(town_id, base, boosts, now, window_override)
        pack = compose(context)
        logger.debug(f"Daily pack for town {town_id}: {pack.section_keys}")
        return pack
