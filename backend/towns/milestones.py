"""
MilestoneTracker: maps the number of active businesses in a town to the
features that town has unlocked.
"""
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Tuple

from django.db import models

from towns.models import Town, TownMembership

logger = logging.getLogger(__name__)


class FeatureKey(models.TextChoices):
    """Town features gated behind participation milestones"""
    TOWN_STORIES = 'town_stories', 'Town Stories'
    TOWN_PULSE_LEARNING = 'town_pulse_learning', 'Town Pulse Learning'
    TOWN_GRAPH_ROUTES = 'town_graph_routes', 'Town Graph Routes'


# (threshold, feature) in unlock order. Thresholds are inclusive.
UNLOCK_THRESHOLDS: Tuple[Tuple[int, FeatureKey], ...] = (
    (3, FeatureKey.TOWN_STORIES),
    (5, FeatureKey.TOWN_PULSE_LEARNING),
    (10, FeatureKey.TOWN_GRAPH_ROUTES),
)


@dataclass(frozen=True)
class MilestoneSummary:
    """
    Derived view of a town's participation. Never stored; recompute it
    whenever memberships may have changed.
    """
    active_count: int
    features_unlocked: FrozenSet[FeatureKey] = field(default_factory=frozenset)
    launch_message: Optional[str] = None
    momentum_line: Optional[str] = None

    def sorted_features(self) -> List[str]:
        """Unlocked features in unlock order, as plain strings."""
        return [feature.value for _, feature in UNLOCK_THRESHOLDS if feature in self.features_unlocked]

    def to_dict(self) -> dict:
        return {
            'active_count': self.active_count,
            'features_unlocked': self.sorted_features(),
            'launch_message': self.launch_message,
            'momentum_line': self.momentum_line,
        }


def features_for_count(active_count: int) -> FrozenSet[FeatureKey]:
    """Features unlocked at a given active business count."""
    return frozenset(feature for threshold, feature in UNLOCK_THRESHOLDS if active_count >= threshold)


def launch_message_for_count(active_count: int) -> Optional[str]:
    if active_count <= 1:
        return "You're starting something new here."
    if active_count == 2:
        return "You're not alone anymore."
    if active_count >= 5:
        return "Your town now has a shared rhythm."
    return None


def momentum_line_for_count(active_count: int) -> Optional[str]:
    if active_count >= 2:
        return "Your town is building momentum."
    return None


def next_unlock(active_count: int) -> Optional[Tuple[FeatureKey, int]]:
    """
    The next feature a town can unlock and how many more active
    businesses it needs. None once everything is unlocked.
    """
    for threshold, feature in UNLOCK_THRESHOLDS:
        if active_count < threshold:
            return feature, threshold - active_count
    return None


def summary_for_count(active_count: int) -> MilestoneSummary:
    """Build a MilestoneSummary from a count without touching the database."""
    active_count = max(0, int(active_count))
    return MilestoneSummary(
        active_count=active_count,
        features_unlocked=features_for_count(active_count),
        launch_message=launch_message_for_count(active_count),
        momentum_line=momentum_line_for_count(active_count),
    )


def is_feature_unlocked(summary: MilestoneSummary, feature) -> bool:
    """Pure membership check against an already computed summary."""
    try:
        feature = FeatureKey(feature)
    except ValueError:
        return False
    return feature in summary.features_unlocked


class MilestoneTracker:
    """
    Read-only service counting active memberships per town.
    Hidden and inactive memberships are excluded from the count.
    """

    def count_active(self, town_id) -> int:
        """
        Number of memberships counting toward milestones.

        Raises:
            UnknownTown: if the town is not stored
        """
        Town.ensure_exists(town_id)
        return TownMembership.objects.filter(town_id=town_id).counted().count()

    def summarize(self, town_id) -> MilestoneSummary:
        """
        Computes the milestone summary for a town.

        Args:
            town_id: UUID (or UUID string) of the town

        Returns:
            MilestoneSummary with the active count and unlocked features

        Raises:
            UnknownTown: if the town is not stored
        """
        active_count = self.count_active(town_id)
        summary = summary_for_count(active_count)
        logger.debug(f"Town {town_id} has {active_count} active businesses, unlocked {summary.sorted_features()}")
        return summary
