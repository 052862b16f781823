"""
TownFlowGraph: per-town directed category graph ("what locals do next").
Also hosts the pure chain derivation used to turn edges into copy such as
"Coffee / Cafe → Fitness → Retail".
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from recommendations.categories import CATEGORY_ORDER, Category, category_label, parse_category
from recommendations.dtos import FlowEdgeDTO
from recommendations.exceptions import InvalidTransition
from recommendations.models import FlowEdge, RouteSeasonWeight
from towns.models import Town

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_MAX_LENGTH = 4
CHAIN_SEPARATOR = " → "


def _coerce_edge(edge) -> FlowEdgeDTO:
    """Accepts FlowEdgeDTO, FlowEdge rows or (from, to, weight) tuples."""
    if isinstance(edge, FlowEdgeDTO):
        return edge
    if isinstance(edge, FlowEdge):
        return edge.to_dto()
    from_category, to_category, weight = edge
    return FlowEdgeDTO(
        from_category=parse_category(from_category),
        to_category=parse_category(to_category),
        weight=int(weight),
    )


def rank_edges(edges: Iterable) -> List[FlowEdgeDTO]:
    """
    Sorts edges heaviest first. Ties fall back to the lexical order of
    (from, to) so the ranking is reproducible.
    """
    coerced = [_coerce_edge(edge) for edge in edges]
    return sorted(
        coerced,
        key=lambda e: (-e.weight, e.from_category.value, e.to_category.value),
    )


def derive_chain(edges: Iterable, max_length: int = DEFAULT_CHAIN_MAX_LENGTH) -> List[Category]:
    """
    Greedy, weight-first walk over a set of edges.

    1. Seed the chain with the heaviest edge (from, to).
    2. From the last category, follow its heaviest outgoing edge whose
       target is not already in the chain.
    3. Stop at max_length or when no such edge exists.

    This is a single greedy walk, not a heaviest-path search.

    Args:
        edges: FlowEdgeDTOs (or rows / (from, to, weight) tuples)
        max_length: maximum number of categories in the chain

    Returns:
        List[Category]: the chain, empty when there are no edges
    """
    ranked = [edge for edge in rank_edges(edges) if edge.from_category != edge.to_category]
    if not ranked or max_length <= 0:
        return []

    seed = ranked[0]
    chain = [seed.from_category, seed.to_category][:max_length]

    while len(chain) < max_length:
        last = chain[-1]
        next_edge = next(
            (edge for edge in ranked if edge.from_category == last and edge.to_category not in chain),
            None
        )
        if next_edge is None:
            break
        chain.append(next_edge.to_category)

    return chain


def format_chain(chain: Sequence[Category], separator: str = CHAIN_SEPARATOR) -> str:
    """Human readable chain. Empty string for an empty chain; callers own the fallback copy."""
    return separator.join(category_label(category) for category in chain)


def apply_season_weight_deltas(edges: Iterable, season_weights: Iterable,
                               season_tags: Iterable[str], window: Optional[str]) -> List[FlowEdgeDTO]:
    """
    Adds the configured deltas of every season weight whose tag is active and
    whose window matches. Adjusted weights never drop below zero.

    Args:
        edges: base edges of the town
        season_weights: RouteSeasonWeight rows (or objects with the same attributes)
        season_tags: currently active season tags
        window: current route window

    Returns:
        List[FlowEdgeDTO]: adjusted copies of the input edges
    """
    active_tags = {str(tag) for tag in season_tags}
    deltas: Dict[tuple, int] = {}
    for row in season_weights:
        if str(row.season_tag) not in active_tags or str(row.window) != str(window):
            continue
        key = (str(row.from_category), str(row.to_category))
        deltas[key] = deltas.get(key, 0) + int(row.weight_delta)

    adjusted = []
    for edge in (_coerce_edge(edge) for edge in edges):
        delta = deltas.get((edge.from_category.value, edge.to_category.value), 0)
        adjusted.append(FlowEdgeDTO(
            from_category=edge.from_category,
            to_category=edge.to_category,
            weight=max(0, edge.weight + delta),
        ))
    return adjusted


class TownFlowGraph:
    """
    Storage-backed flow graph. Purely mechanical: no feature gating here,
    the daily composer decides what is shown.
    """

    MAX_TOP_EDGES = 10

    def __init__(self, chain_max_length: Optional[int] = None, top_edges_limit: Optional[int] = None):
        config = getattr(settings, 'TOWNFLOW', {})
        if chain_max_length is None:
            chain_max_length = config.get('FLOW_CHAIN_MAX_LENGTH', DEFAULT_CHAIN_MAX_LENGTH)
        if top_edges_limit is None:
            top_edges_limit = config.get('TOP_EDGES_LIMIT', 3)
        self.chain_max_length = chain_max_length
        self.top_edges_limit = top_edges_limit

    def record_transition(self, town_id, from_category, to_category) -> FlowEdgeDTO:
        """
        Counts one observed transition from one category to another.
        Creates the edge at weight 1 or increments it atomically in the database.

        Args:
            town_id: UUID of the town
            from_category: Category (or its value) customers came from
            to_category: Category (or its value) customers went to next

        Returns:
            FlowEdgeDTO: the edge after the increment

        Raises:
            UnknownCategory: if either category is outside the vocabulary
            InvalidTransition: if from and to are the same category
            UnknownTown: if the town is not stored
        """
        from_cat = parse_category(from_category)
        to_cat = parse_category(to_category)
        if from_cat == to_cat:
            raise InvalidTransition(from_cat.value, to_cat.value)

        Town.ensure_exists(town_id)
        edge_query = FlowEdge.objects.filter(town_id=town_id, from_category=from_cat, to_category=to_cat)

        with transaction.atomic():
            updated = edge_query.update(weight=F('weight') + 1, updated_at=timezone.now())
            if not updated:
                try:
                    with transaction.atomic():
                        FlowEdge.objects.create(
                            town_id=town_id,
                            from_category=from_cat,
                            to_category=to_cat,
                            weight=1,
                        )
                except IntegrityError:
                    # Lost the insert race; the row exists now
                    edge_query.update(weight=F('weight') + 1, updated_at=timezone.now())

        edge = edge_query.get()
        logger.info(f"Recorded transition {from_cat.value} -> {to_cat.value} in town {town_id} (weight {edge.weight})")
        return edge.to_dto()

    def list_edges(self, town_id) -> List[FlowEdgeDTO]:
        """
        All edges of a town. Ordering is not guaranteed; callers sort as needed.

        Raises:
            UnknownTown: if the town is not stored
        """
        Town.ensure_exists(town_id)
        return [edge.to_dto() for edge in FlowEdge.objects.filter(town_id=town_id)]

    def list_top_edges_from(self, town_id, category, limit: Optional[int] = None) -> List[FlowEdgeDTO]:
        """Heaviest outgoing edges of one category (limit clamped to 1..10)."""
        from_cat = parse_category(category)
        limit = max(1, min(self.MAX_TOP_EDGES, limit or self.top_edges_limit))
        Town.ensure_exists(town_id)
        rows = FlowEdge.objects.filter(
            town_id=town_id,
            from_category=from_cat,
        ).order_by('-weight', 'to_category')[:limit]
        return [edge.to_dto() for edge in rows]

    def get_graph(self, town_id) -> dict:
        """
        Snapshot of the graph: nodes in canonical category order and edges
        heaviest first.
        """
        edges = rank_edges(self.list_edges(town_id))
        node_set = set()
        for edge in edges:
            node_set.add(edge.from_category)
            node_set.add(edge.to_category)
        return {
            'nodes': [category.value for category in CATEGORY_ORDER if category in node_set],
            'edges': [edge.to_dict() for edge in edges],
        }

    def derive_town_chain(self, town_id, season_tags: Iterable[str] = (),
                          window: Optional[str] = None) -> List[Category]:
        """
        Chain for a town. When a window is given, the town's seasonal route
        weights for the active season tags are applied first.
        """
        edges = self.list_edges(town_id)
        if window is not None:
            season_weights = RouteSeasonWeight.objects.filter(town_id=town_id, window=str(window))
            edges = apply_season_weight_deltas(edges, season_weights, season_tags, window)
        return derive_chain(edges, max_length=self.chain_max_length)
