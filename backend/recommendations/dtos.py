"""
Data Transfer Objects (DTOs) passed between the flow graph, the season
resolver and the daily composer.
"""
import copy
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from recommendations.categories import Category
from towns.milestones import MilestoneSummary


@dataclass(frozen=True)
class FlowEdgeDTO:
    """A weighted edge detached from the database row"""
    from_category: Category
    to_category: Category
    weight: int

    def to_dict(self) -> dict:
        return {
            'from': self.from_category.value,
            'to': self.to_category.value,
            'weight': self.weight,
        }


class SeasonSource(Enum):
    """Where a season tag's state came from"""
    AUTO = 'auto'
    OVERRIDE = 'override'
    FORCED_OFF = 'forced_off'


@dataclass(frozen=True)
class OverrideState:
    """
    Explicit form of a stored override row: AUTO (no row), OVERRIDE with an
    optional start/end window, or FORCED_OFF.
    """
    source: SeasonSource
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = None

    @classmethod
    def auto(cls) -> "OverrideState":
        return cls(source=SeasonSource.AUTO)

    @classmethod
    def forced_off(cls, notes: Optional[str] = None) -> "OverrideState":
        return cls(source=SeasonSource.FORCED_OFF, notes=notes)

    @classmethod
    def window(cls, start_date: Optional[date], end_date: Optional[date], notes: Optional[str] = None) -> "OverrideState":
        return cls(source=SeasonSource.OVERRIDE, start_date=start_date, end_date=end_date, notes=notes)

    @classmethod
    def from_dates(cls, start_date: Optional[date], end_date: Optional[date],
                   notes: Optional[str], sentinel: date) -> "OverrideState":
        if start_date == sentinel and end_date == sentinel:
            return cls.forced_off(notes)
        return cls.window(start_date, end_date, notes)

    @property
    def is_forced_off(self) -> bool:
        return self.source is SeasonSource.FORCED_OFF

    def contains(self, as_of: date) -> bool:
        """Whether as_of falls inside the override window (inclusive, null bounds are open)."""
        if self.source is not SeasonSource.OVERRIDE:
            return False
        if self.start_date is not None and as_of < self.start_date:
            return False
        if self.end_date is not None and as_of > self.end_date:
            return False
        return True


@dataclass(frozen=True)
class SeasonResolution:
    """
    Resolved season context for one town and date.
    season_tags is in canonical season key order.
    """
    as_of: date
    season_tags: Tuple[str, ...]
    sources: Mapping[str, SeasonSource]
    primary_season: str
    notes: Mapping[str, str] = field(default_factory=dict)

    def includes(self, season_key) -> bool:
        return str(season_key) in self.season_tags

    def source_for(self, season_key) -> SeasonSource:
        return self.sources.get(str(season_key), SeasonSource.AUTO)

    def to_dict(self) -> dict:
        return {
            'as_of': self.as_of.isoformat(),
            'season_tags': list(self.season_tags),
            'primary_season': self.primary_season,
            'sources': {key: source.value for key, source in self.sources.items()},
            'notes': dict(self.notes),
        }


@dataclass(frozen=True)
class BaseContent:
    """
    Base daily plan produced by the content generation collaborator.
    Payloads are opaque; they are placed into the pack as given.
    """
    today_special: Any = None
    post: Any = None
    sign: Any = None


@dataclass(frozen=True)
class BoostPayloads:
    """Optional boost payloads fetched by upstream collaborators"""
    local: Any = None
    town: Any = None
    story: Any = None
    graph: Any = None
    micro_route: Any = None
    seasonal: Any = None


@dataclass(frozen=True)
class DailyContext:
    """
    Everything the composer needs, already fetched.
    milestone or season is None when the town could not be resolved.
    """
    base: Optional[BaseContent] = None
    milestone: Optional[MilestoneSummary] = None
    season: Optional[SeasonResolution] = None
    route_window: Optional[str] = None
    boosts: BoostPayloads = field(default_factory=BoostPayloads)


@dataclass(frozen=True)
class PackSection:
    key: str
    title: str
    payload: Any

    def to_dict(self) -> dict:
        return {
            'key': self.key,
            'title': self.title,
            'payload': copy.deepcopy(self.payload),
        }


@dataclass(frozen=True)
class DailyRecommendationPack:
    """
    Ordered, presentable daily plan. Built fresh per request and never
    mutated afterwards.
    """
    sections: Tuple[PackSection, ...] = ()
    route_window: Optional[str] = None
    season_tags: Tuple[str, ...] = ()

    @property
    def section_keys(self) -> List[str]:
        return [section.key for section in self.sections]

    def get(self, key: str) -> Optional[PackSection]:
        for section in self.sections:
            if section.key == key:
                return section
        return None

    def caption_add_ons(self) -> List[str]:
        """Caption add-on lines of every section that carries one, in section order."""
        lines = []
        for section in self.sections:
            payload = section.payload
            if isinstance(payload, Mapping):
                line = payload.get('caption_add_on') or payload.get('captionAddOn')
                if isinstance(line, str) and line.strip():
                    lines.append(line.strip())
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sections': [section.to_dict() for section in self.sections],
            'route_window': self.route_window,
            'season_tags': list(self.season_tags),
        }
