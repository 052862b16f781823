import uuid
from datetime import date

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from recommendations.categories import Category
from recommendations.dtos import FlowEdgeDTO, OverrideState
from towns.models import Town


# Stored start/end pair meaning "this season is switched off for the town"
SEASON_DISABLED_SENTINEL = date(1970, 1, 1)


class SeasonKey(models.TextChoices):
    """Recurring local temporal context. Declaration order is the output order."""
    WINTER = 'winter', 'Winter'
    SPRING = 'spring', 'Spring'
    SUMMER = 'summer', 'Summer'
    FALL = 'fall', 'Fall'
    HOLIDAY = 'holiday', 'Holiday'
    SCHOOL = 'school', 'School'
    FOOTBALL = 'football', 'Football'
    BASKETBALL = 'basketball', 'Basketball'
    BASEBALL = 'baseball', 'Baseball'
    FESTIVAL = 'festival', 'Festival'


PRIMARY_SEASONS = (SeasonKey.WINTER, SeasonKey.SPRING, SeasonKey.SUMMER, SeasonKey.FALL)


class RouteWindow(models.TextChoices):
    """Coarse time-of-day / day-of-week buckets"""
    MORNING = 'morning', 'Morning'
    LUNCH = 'lunch', 'Lunch'
    AFTER_WORK = 'after_work', 'After Work'
    EVENING = 'evening', 'Evening'
    WEEKEND = 'weekend', 'Weekend'


class FlowEdge(models.Model):
    """
    Directed, weighted "customers at A are often next seen at B" edge.
    One row per (town, from, to); the weight only grows.
    Written by TownFlowGraph.record_transition() with an atomic F() increment.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    town = models.ForeignKey(Town, on_delete=models.CASCADE, related_name='flow_edges')
    from_category = models.CharField(max_length=20, choices=Category.choices)
    to_category = models.CharField(max_length=20, choices=Category.choices)
    weight = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'recommendations_flow_edge'
        unique_together = ('town', 'from_category', 'to_category')
        indexes = [
            models.Index(fields=['town', 'from_category'], name='rec_flow_edge_from_idx'),
        ]

    def __str__(self):
        return f"{self.town.name}: {self.from_category} -> {self.to_category} ({self.weight})"

    def to_dto(self) -> FlowEdgeDTO:
        return FlowEdgeDTO(
            from_category=Category(self.from_category),
            to_category=Category(self.to_category),
            weight=self.weight,
        )


class SeasonOverride(models.Model):
    """
    Admin override for one season key in one town.

    No row: the season is auto-detected.
    Sentinel dates (1970-01-01..1970-01-01): the season is forced off.
    Real dates: the season is on inside [start_date, end_date] and off outside it.
    A null bound leaves that side of the window open.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    town = models.ForeignKey(Town, on_delete=models.CASCADE, related_name='season_overrides')
    season_key = models.CharField(max_length=20, choices=SeasonKey.choices)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'recommendations_season_override'
        unique_together = ('town', 'season_key')

    def __str__(self):
        return f"{self.town.name}: {self.season_key} override"

    @property
    def state(self) -> OverrideState:
        """Decode the stored date pair into an explicit override state."""
        return OverrideState.from_dates(
            start_date=self.start_date,
            end_date=self.end_date,
            notes=self.notes,
            sentinel=SEASON_DISABLED_SENTINEL,
        )

    @property
    def is_forced_off(self) -> bool:
        return self.state.is_forced_off


class RouteSeasonWeight(models.Model):
    """
    Admin-tuned weight adjustment for one flow edge while a season tag is
    active and the route window matches. Applied on read, never written
    back into FlowEdge.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    town = models.ForeignKey(Town, on_delete=models.CASCADE, related_name='route_season_weights')
    season_tag = models.CharField(max_length=20, choices=SeasonKey.choices)
    window = models.CharField(max_length=20, choices=RouteWindow.choices)
    from_category = models.CharField(max_length=20, choices=Category.choices)
    to_category = models.CharField(max_length=20, choices=Category.choices)
    weight_delta = models.IntegerField(
        default=1,
        validators=[MinValueValidator(-1000), MaxValueValidator(1000)],
        help_text="Added to the edge weight while the season tag and window are active"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'recommendations_route_season_weight'
        indexes = [
            models.Index(fields=['town', 'window'], name='rec_season_weight_win_idx'),
        ]

    def __str__(self):
        return f"{self.town.name}: {self.season_tag}/{self.window} {self.from_category} -> {self.to_category} {self.weight_delta:+d}"
