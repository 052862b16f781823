"""
Tests for the recommendations module.
"""
import json
import random
import threading
import uuid
from datetime import date, datetime, timezone as dt_timezone
from unittest.mock import MagicMock, patch

from django.db import DatabaseError, connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from django.test.utils import CaptureQueriesContext
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from recommendations.categories import (
    Category, category_from_business_type, category_label, infer_category_from_text, parse_category
)
from recommendations.composer import DailyPlanService, compose
from recommendations.dtos import (
    BaseContent, BoostPayloads, DailyContext, FlowEdgeDTO, OverrideState, SeasonResolution, SeasonSource
)
from recommendations.exceptions import (
    InvalidTransition, OverrideConflict, UnknownCategory, UnknownRouteWindow, UnknownSeasonKey, UnknownTown
)
from recommendations.flow_graph import (
    TownFlowGraph, apply_season_weight_deltas, derive_chain, format_chain, rank_edges
)
from recommendations.models import (
    SEASON_DISABLED_SENTINEL, FlowEdge, RouteSeasonWeight, RouteWindow, SeasonKey, SeasonOverride
)
from recommendations.seasons import (
    SeasonOverrideService, SeasonResolver, detect_season_tags, primary_season_for_month,
    resolve_season_state
)
from recommendations.windows import (
    optional_route_window, resolve_route_window, window_from_day_hour, window_label
)
from towns.milestones import summary_for_count
from towns.models import Town, TownMembership

COFFEE, FITNESS, BEAUTY, RETAIL, FOOD = (
    Category.COFFEE, Category.FITNESS, Category.BEAUTY, Category.RETAIL, Category.FOOD
)

# Monday 2024-07-15 12:00 in America/Chicago
MONDAY_NOON_CHICAGO = datetime(2024, 7, 15, 17, 0, tzinfo=dt_timezone.utc)


def edge(from_category, to_category, weight):
    return FlowEdgeDTO(from_category=from_category, to_category=to_category, weight=weight)


def add_members(town, count):
    for i in range(count):
        TownMembership.objects.create(town=town, business_id=f'biz-{i}', business_name=f'Business {i}')


class CategoryTest(SimpleTestCase):
    """Test cases for the category vocabulary"""

    def test_parse_category(self):
        self.assertEqual(parse_category('coffee'), COFFEE)
        self.assertEqual(parse_category('  Fitness '), FITNESS)
        self.assertEqual(parse_category(RETAIL), RETAIL)

    def test_parse_category_rejects_unknown_values(self):
        for value in ('bowling', '', None, 3):
            with self.assertRaises(UnknownCategory):
                parse_category(value)

    def test_labels(self):
        self.assertEqual(category_label('coffee'), 'Coffee / Cafe')
        self.assertEqual(category_label(Category.OTHER), 'Local stop')

    def test_category_from_business_type(self):
        self.assertEqual(category_from_business_type('gym'), FITNESS)
        self.assertEqual(category_from_business_type('Salon'), BEAUTY)
        self.assertEqual(category_from_business_type('barber'), Category.SERVICES)
        self.assertEqual(category_from_business_type('retail'), RETAIL)
        self.assertEqual(category_from_business_type('tattoo'), Category.OTHER)
        self.assertEqual(category_from_business_type(None), Category.OTHER)

    def test_infer_category_from_text(self):
        self.assertEqual(infer_category_from_text('Grab a latte before class'), FITNESS)
        self.assertEqual(infer_category_from_text('Fresh espresso all morning'), COFFEE)
        self.assertEqual(infer_category_from_text('New arrivals at the boutique'), RETAIL)
        self.assertIsNone(infer_category_from_text('Hello neighbors'))
        self.assertIsNone(infer_category_from_text(''))


class DeriveChainTest(SimpleTestCase):
    """Test cases for the greedy chain derivation"""

    def test_town_flow_scenario(self):
        """Heaviest edge seeds the chain, then the walk follows heaviest unvisited edges"""
        edges = [edge(COFFEE, FITNESS, 5), edge(FITNESS, RETAIL, 3), edge(COFFEE, RETAIL, 1)]
        self.assertEqual(derive_chain(edges), [COFFEE, FITNESS, RETAIL])

    def test_empty_edges(self):
        self.assertEqual(derive_chain([]), [])

    def test_accepts_tuples(self):
        self.assertEqual(derive_chain([('coffee', 'food', 2)]), [COFFEE, FOOD])

    def test_walk_avoids_cycles(self):
        """An edge back into the chain is skipped in favor of a lighter unvisited one"""
        edges = [
            edge(COFFEE, FITNESS, 10),
            edge(FITNESS, COFFEE, 9),
            edge(FITNESS, BEAUTY, 2),
        ]
        self.assertEqual(derive_chain(edges), [COFFEE, FITNESS, BEAUTY])

    def test_walk_is_greedy_not_optimal(self):
        """The walk commits to the heaviest seed even when another path is heavier overall"""
        edges = [
            edge(COFFEE, FITNESS, 10),
            edge(COFFEE, FOOD, 9),
            edge(FOOD, RETAIL, 9),
            edge(RETAIL, BEAUTY, 9),
        ]
        self.assertEqual(derive_chain(edges), [COFFEE, FITNESS])

    def test_ties_break_lexically(self):
        """Equal weights are ranked by (from, to) value"""
        edges = [edge(RETAIL, FOOD, 4), edge(COFFEE, RETAIL, 4), edge(COFFEE, FITNESS, 4)]
        ranked = rank_edges(edges)
        self.assertEqual(
            [(e.from_category, e.to_category) for e in ranked],
            [(COFFEE, FITNESS), (COFFEE, RETAIL), (RETAIL, FOOD)]
        )
        self.assertEqual(derive_chain(edges), [COFFEE, FITNESS])

    def test_input_order_does_not_matter(self):
        edges = [edge(COFFEE, FITNESS, 5), edge(FITNESS, RETAIL, 3), edge(RETAIL, FOOD, 3), edge(FITNESS, FOOD, 3)]
        self.assertEqual(derive_chain(edges), derive_chain(list(reversed(edges))))

    def test_self_loops_are_ignored(self):
        edges = [edge(COFFEE, COFFEE, 50), edge(FOOD, RETAIL, 1)]
        self.assertEqual(derive_chain(edges), [FOOD, RETAIL])

    def test_max_length(self):
        edges = [
            edge(COFFEE, FITNESS, 9), edge(FITNESS, BEAUTY, 8), edge(BEAUTY, RETAIL, 7),
            edge(RETAIL, FOOD, 6), edge(FOOD, Category.SERVICES, 5),
        ]
        self.assertEqual(derive_chain(edges), [COFFEE, FITNESS, BEAUTY, RETAIL])
        self.assertEqual(derive_chain(edges, max_length=6), [COFFEE, FITNESS, BEAUTY, RETAIL, FOOD, Category.SERVICES])
        self.assertEqual(derive_chain(edges, max_length=2), [COFFEE, FITNESS])
        self.assertEqual(derive_chain(edges, max_length=1), [COFFEE])
        self.assertEqual(derive_chain(edges, max_length=0), [])

    def test_random_edge_sets(self):
        """Deterministic, repeat-free and bounded for arbitrary edge sets"""
        rng = random.Random(1337)
        categories = list(Category)
        for _ in range(200):
            weights = {}
            for _ in range(rng.randint(0, 20)):
                pair = (rng.choice(categories), rng.choice(categories))
                weights[pair] = rng.randint(0, 12)
            edges = [edge(f, t, w) for (f, t), w in weights.items()]
            max_length = rng.randint(1, 8)

            chain = derive_chain(edges, max_length=max_length)

            self.assertEqual(chain, derive_chain(edges, max_length=max_length))
            self.assertEqual(len(chain), len(set(chain)))
            self.assertLessEqual(len(chain), max_length)

            ranked = [e for e in rank_edges(edges) if e.from_category != e.to_category]
            if not ranked:
                self.assertEqual(chain, [])
                continue
            reachable = {ranked[0].from_category}
            frontier = [ranked[0].from_category]
            while frontier:
                current = frontier.pop()
                for e in ranked:
                    if e.from_category == current and e.to_category not in reachable:
                        reachable.add(e.to_category)
                        frontier.append(e.to_category)
            self.assertLessEqual(len(chain), len(reachable))
            self.assertTrue(set(chain) <= reachable)

    def test_format_chain(self):
        self.assertEqual(format_chain([COFFEE, FITNESS, RETAIL]), 'Coffee / Cafe → Fitness → Retail')
        self.assertEqual(format_chain([BEAUTY, FOOD], separator=' > '), 'Salon / Beauty > Food')
        self.assertEqual(format_chain([]), '')


class SeasonWeightDeltaTest(SimpleTestCase):
    """Test cases for seasonal route weight adjustments"""

    def setUp(self):
        self.edges = [edge(COFFEE, FITNESS, 5), edge(FITNESS, RETAIL, 3), edge(COFFEE, RETAIL, 1)]

    def test_matching_season_and_window(self):
        weights = [RouteSeasonWeight(season_tag='summer', window='lunch', from_category='coffee',
                                     to_category='retail', weight_delta=10)]

        adjusted = apply_season_weight_deltas(self.edges, weights, ['summer'], RouteWindow.LUNCH)

        self.assertEqual([e.weight for e in adjusted], [5, 3, 11])
        self.assertEqual(derive_chain(adjusted), [COFFEE, RETAIL])

    def test_inactive_season_or_other_window_is_ignored(self):
        weights = [RouteSeasonWeight(season_tag='summer', window='lunch', from_category='coffee',
                                     to_category='retail', weight_delta=10)]

        self.assertEqual(apply_season_weight_deltas(self.edges, weights, ['winter'], 'lunch'), self.edges)
        self.assertEqual(apply_season_weight_deltas(self.edges, weights, ['summer'], 'evening'), self.edges)

    def test_weights_never_drop_below_zero(self):
        weights = [RouteSeasonWeight(season_tag='fall', window='evening', from_category='coffee',
                                     to_category='fitness', weight_delta=-50)]

        adjusted = apply_season_weight_deltas(self.edges, weights, ['fall'], 'evening')

        self.assertEqual(adjusted[0].weight, 0)


class TownFlowGraphTestCase(TestCase):
    """Test cases for TownFlowGraph"""

    def setUp(self):
        """Set up test fixtures"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')
        self.graph = TownFlowGraph()

    def test_record_transition_creates_edge(self):
        result = self.graph.record_transition(self.town.id, 'coffee', 'fitness')

        self.assertEqual(result, edge(COFFEE, FITNESS, 1))
        self.assertEqual(FlowEdge.objects.get(town=self.town).weight, 1)

    def test_weight_counts_every_transition(self):
        """After N records of the same transition the weight is N"""
        for _ in range(7):
            result = self.graph.record_transition(self.town.id, COFFEE, FITNESS)

        self.assertEqual(result.weight, 7)
        self.assertEqual(FlowEdge.objects.filter(town=self.town).count(), 1)

    def test_increment_happens_in_the_database(self):
        """The increment is a single UPDATE with an F() expression, not read-modify-write"""
        self.graph.record_transition(self.town.id, COFFEE, FITNESS)

        with CaptureQueriesContext(connection) as ctx:
            self.graph.record_transition(self.town.id, COFFEE, FITNESS)

        edge_queries = [q['sql'] for q in ctx.captured_queries if 'recommendations_flow_edge' in q['sql']]
        self.assertTrue(edge_queries[0].startswith('UPDATE'))
        self.assertIn('+ 1', edge_queries[0])

    def test_stale_instance_does_not_lose_increments(self):
        """Increments applied after a row was read are still counted"""
        self.graph.record_transition(self.town.id, COFFEE, FITNESS)
        stale = FlowEdge.objects.get(town=self.town)

        self.graph.record_transition(self.town.id, COFFEE, FITNESS)
        self.graph.record_transition(self.town.id, COFFEE, FITNESS)

        self.assertEqual(stale.weight, 1)
        stale.refresh_from_db()
        self.assertEqual(stale.weight, 3)

    def test_self_loop_rejected_without_write(self):
        """Self-loops raise InvalidTransition and never touch the store"""
        with self.assertRaises(InvalidTransition):
            self.graph.record_transition(self.town.id, 'coffee', 'coffee')

        self.assertFalse(FlowEdge.objects.exists())

    def test_self_loop_rejected_for_unknown_town_too(self):
        with self.assertRaises(InvalidTransition):
            self.graph.record_transition(uuid.uuid4(), 'food', 'food')

    def test_unknown_category(self):
        with self.assertRaises(UnknownCategory):
            self.graph.record_transition(self.town.id, 'coffee', 'bowling')
        self.assertFalse(FlowEdge.objects.exists())

    def test_unknown_town(self):
        with self.assertRaises(UnknownTown):
            self.graph.record_transition(uuid.uuid4(), 'coffee', 'fitness')
        with self.assertRaises(UnknownTown):
            self.graph.list_edges(uuid.uuid4())

    def test_list_edges_is_per_town(self):
        other = Town.objects.create(name='Cedar Bend', slug='cedar-bend')
        self.graph.record_transition(self.town.id, COFFEE, FITNESS)
        self.graph.record_transition(other.id, FOOD, RETAIL)

        edges = self.graph.list_edges(self.town.id)

        self.assertEqual(edges, [edge(COFFEE, FITNESS, 1)])

    def test_top_edges_from(self):
        for to_category, count in ((FITNESS, 3), (RETAIL, 5), (FOOD, 1), (BEAUTY, 3)):
            for _ in range(count):
                self.graph.record_transition(self.town.id, COFFEE, to_category)

        top = self.graph.list_top_edges_from(self.town.id, 'coffee', limit=3)

        self.assertEqual(
            [(e.to_category, e.weight) for e in top],
            [(RETAIL, 5), (BEAUTY, 3), (FITNESS, 3)]
        )
        self.assertEqual(len(self.graph.list_top_edges_from(self.town.id, COFFEE, limit=50)), 4)

    def test_get_graph(self):
        self.graph.record_transition(self.town.id, RETAIL, COFFEE)
        self.graph.record_transition(self.town.id, COFFEE, FITNESS)
        self.graph.record_transition(self.town.id, COFFEE, FITNESS)

        snapshot = self.graph.get_graph(self.town.id)

        self.assertEqual(snapshot['nodes'], ['coffee', 'fitness', 'retail'])
        self.assertEqual(snapshot['edges'][0], {'from': 'coffee', 'to': 'fitness', 'weight': 2})

    def test_derive_town_chain(self):
        """Stored edges feed the chain; season weights apply only for a window"""
        for from_category, to_category, count in ((COFFEE, FITNESS, 5), (FITNESS, RETAIL, 3), (COFFEE, RETAIL, 1)):
            for _ in range(count):
                self.graph.record_transition(self.town.id, from_category, to_category)
        RouteSeasonWeight.objects.create(
            town=self.town, season_tag=SeasonKey.SUMMER, window=RouteWindow.LUNCH,
            from_category=COFFEE, to_category=RETAIL, weight_delta=10,
        )

        self.assertEqual(self.graph.derive_town_chain(self.town.id), [COFFEE, FITNESS, RETAIL])
        self.assertEqual(
            self.graph.derive_town_chain(self.town.id, season_tags=['summer'], window=RouteWindow.LUNCH),
            [COFFEE, RETAIL]
        )
        self.assertEqual(FlowEdge.objects.get(town=self.town, from_category=COFFEE, to_category=RETAIL).weight, 1)

    def test_chain_length_comes_from_settings(self):
        graph = TownFlowGraph(chain_max_length=2)
        for from_category, to_category in ((COFFEE, FITNESS), (FITNESS, RETAIL)):
            graph.record_transition(self.town.id, from_category, to_category)

        self.assertEqual(graph.derive_town_chain(self.town.id), [COFFEE, FITNESS])

    def test_zero_chain_length_is_respected(self):
        """An explicit 0 is not replaced by the configured default"""
        graph = TownFlowGraph(chain_max_length=0, top_edges_limit=0)
        graph.record_transition(self.town.id, COFFEE, FITNESS)

        self.assertEqual(graph.chain_max_length, 0)
        self.assertEqual(graph.top_edges_limit, 0)
        self.assertEqual(graph.derive_town_chain(self.town.id), [])
        self.assertEqual(len(graph.list_top_edges_from(self.town.id, COFFEE)), 1)
        self.assertEqual(TownFlowGraph().chain_max_length, 4)


class ConcurrentTransitionTestCase(TransactionTestCase):
    """Concurrent writers of the same transition must all be counted"""

    def test_concurrent_increments_are_not_lost(self):
        town = Town.objects.create(name='Maple Falls', slug='maple-falls')
        graph = TownFlowGraph()
        errors = []

        def worker():
            try:
                for _ in range(10):
                    graph.record_transition(town.id, COFFEE, FITNESS)
            except Exception as e:
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(FlowEdge.objects.get(town=town).weight, 50)


class SeasonDetectionTest(SimpleTestCase):
    """Test cases for calendar based season detection"""

    def test_primary_season(self):
        expected = {
            1: SeasonKey.WINTER, 2: SeasonKey.WINTER, 3: SeasonKey.SPRING, 5: SeasonKey.SPRING,
            6: SeasonKey.SUMMER, 8: SeasonKey.SUMMER, 9: SeasonKey.FALL, 11: SeasonKey.FALL,
            12: SeasonKey.WINTER,
        }
        for month, season in expected.items():
            self.assertEqual(primary_season_for_month(month), season)

    def test_recurring_seasons(self):
        self.assertEqual(detect_season_tags(date(2024, 7, 15)), {SeasonKey.SUMMER})
        self.assertEqual(
            detect_season_tags(date(2024, 9, 10)),
            {SeasonKey.FALL, SeasonKey.SCHOOL, SeasonKey.FOOTBALL}
        )
        self.assertEqual(
            detect_season_tags(date(2024, 12, 1)),
            {SeasonKey.WINTER, SeasonKey.HOLIDAY, SeasonKey.SCHOOL}
        )

    def test_range_boundaries(self):
        """Ranges are inclusive and school wraps the year end"""
        self.assertIn(SeasonKey.SCHOOL, detect_season_tags(date(2024, 5, 25)))
        self.assertNotIn(SeasonKey.SCHOOL, detect_season_tags(date(2024, 5, 26)))
        self.assertIn(SeasonKey.SCHOOL, detect_season_tags(date(2024, 8, 1)))
        self.assertNotIn(SeasonKey.FOOTBALL, detect_season_tags(date(2024, 8, 14)))
        self.assertIn(SeasonKey.FOOTBALL, detect_season_tags(date(2024, 11, 30)))
        self.assertNotIn(SeasonKey.HOLIDAY, detect_season_tags(date(2024, 11, 14)))
        self.assertIn(SeasonKey.HOLIDAY, detect_season_tags(date(2024, 12, 31)))


class ResolveSeasonStateTest(SimpleTestCase):
    """Test cases for the override precedence rules"""

    AS_OF = date(2024, 7, 15)

    def test_no_override_uses_detection(self):
        resolution = resolve_season_state(self.AS_OF, {}, {SeasonKey.SUMMER})

        self.assertEqual(resolution.season_tags, ('summer',))
        self.assertEqual(resolution.source_for('summer'), SeasonSource.AUTO)
        self.assertEqual(resolution.primary_season, 'summer')

    def test_forced_off_beats_detection(self):
        """A force-disabled season is never included, even when detected"""
        overrides = {'summer': OverrideState.forced_off()}

        resolution = resolve_season_state(self.AS_OF, overrides, {SeasonKey.SUMMER})

        self.assertNotIn('summer', resolution.season_tags)
        self.assertEqual(resolution.source_for('summer'), SeasonSource.FORCED_OFF)

    def test_window_containing_date_includes_tag(self):
        overrides = {'festival': OverrideState.window(date(2024, 7, 10), date(2024, 7, 20), 'Summer fair')}

        resolution = resolve_season_state(self.AS_OF, overrides, {SeasonKey.SUMMER})

        self.assertEqual(resolution.season_tags, ('summer', 'festival'))
        self.assertEqual(resolution.source_for('festival'), SeasonSource.OVERRIDE)
        self.assertEqual(resolution.notes, {'festival': 'Summer fair'})

    def test_window_missing_date_excludes_tag_without_fallback(self):
        """Outside its window an override excludes the tag; detection is not consulted"""
        overrides = {'summer': OverrideState.window(date(2024, 6, 1), date(2024, 6, 30))}

        resolution = resolve_season_state(self.AS_OF, overrides, {SeasonKey.SUMMER})

        self.assertNotIn('summer', resolution.season_tags)
        self.assertEqual(resolution.source_for('summer'), SeasonSource.OVERRIDE)

    def test_window_bounds_are_inclusive(self):
        overrides = {'festival': OverrideState.window(date(2024, 7, 15), date(2024, 7, 15))}
        self.assertIn('festival', resolve_season_state(self.AS_OF, overrides, set()).season_tags)

    def test_null_bounds_are_open(self):
        open_start = {'festival': OverrideState.window(None, date(2024, 7, 31))}
        open_end = {'festival': OverrideState.window(date(2024, 8, 1), None)}

        self.assertIn('festival', resolve_season_state(self.AS_OF, open_start, set()).season_tags)
        self.assertNotIn('festival', resolve_season_state(self.AS_OF, open_end, set()).season_tags)

    def test_tags_in_canonical_order(self):
        detected = {SeasonKey.FOOTBALL, SeasonKey.FALL, SeasonKey.SCHOOL}
        overrides = {'basketball': OverrideState.window(None, None)}

        resolution = resolve_season_state(date(2024, 9, 10), overrides, detected)

        self.assertEqual(resolution.season_tags, ('fall', 'school', 'football', 'basketball'))

    def test_override_season_adds_tag(self):
        resolution = resolve_season_state(self.AS_OF, {}, {SeasonKey.SUMMER}, override_season='festival')

        self.assertEqual(resolution.season_tags, ('summer', 'festival'))
        self.assertEqual(resolution.source_for('festival'), SeasonSource.OVERRIDE)

    def test_override_season_replaces_primary_season(self):
        resolution = resolve_season_state(self.AS_OF, {}, {SeasonKey.SUMMER}, override_season='fall')

        self.assertEqual(resolution.primary_season, 'fall')
        self.assertIn('fall', resolution.season_tags)

    def test_override_season_cannot_revive_forced_off(self):
        overrides = {'festival': OverrideState.forced_off()}

        resolution = resolve_season_state(self.AS_OF, overrides, set(), override_season='festival')

        self.assertNotIn('festival', resolution.season_tags)
        self.assertEqual(resolution.source_for('festival'), SeasonSource.FORCED_OFF)

    def test_unknown_override_season(self):
        with self.assertRaises(UnknownSeasonKey):
            resolve_season_state(self.AS_OF, {}, set(), override_season='monsoon')

    def test_sentinel_decodes_to_forced_off(self):
        state = OverrideState.from_dates(
            SEASON_DISABLED_SENTINEL, SEASON_DISABLED_SENTINEL, None, sentinel=SEASON_DISABLED_SENTINEL
        )
        self.assertTrue(state.is_forced_off)
        self.assertFalse(state.contains(SEASON_DISABLED_SENTINEL))


class SeasonResolverTestCase(TestCase):
    """Test cases for SeasonResolver"""

    def setUp(self):
        """Set up test fixtures"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls', timezone='America/Chicago')
        self.resolver = SeasonResolver(clock=lambda: MONDAY_NOON_CHICAGO)

    def test_summer_override_window(self):
        """An override window holding the date includes the tag with source override"""
        SeasonOverride.objects.create(
            town=self.town, season_key=SeasonKey.SUMMER,
            start_date=date(2024, 6, 1), end_date=date(2024, 8, 31),
        )

        resolution = self.resolver.resolve(self.town.id, as_of_date=date(2024, 7, 15))

        self.assertIn('summer', resolution.season_tags)
        self.assertEqual(resolution.source_for('summer'), SeasonSource.OVERRIDE)

    def test_summer_forced_off(self):
        """The sentinel pair switches summer off even though the calendar says summer"""
        SeasonOverride.objects.create(
            town=self.town, season_key=SeasonKey.SUMMER,
            start_date=SEASON_DISABLED_SENTINEL, end_date=SEASON_DISABLED_SENTINEL,
        )

        resolution = self.resolver.resolve(self.town.id, as_of_date=date(2024, 7, 15))

        self.assertIn(SeasonKey.SUMMER, detect_season_tags(date(2024, 7, 15)))
        self.assertNotIn('summer', resolution.season_tags)
        self.assertEqual(resolution.source_for('summer'), SeasonSource.FORCED_OFF)

    def test_overrides_are_per_town(self):
        other = Town.objects.create(name='Cedar Bend', slug='cedar-bend')
        SeasonOverride.objects.create(
            town=other, season_key=SeasonKey.SUMMER,
            start_date=SEASON_DISABLED_SENTINEL, end_date=SEASON_DISABLED_SENTINEL,
        )

        resolution = self.resolver.resolve(self.town.id, as_of_date=date(2024, 7, 15))

        self.assertIn('summer', resolution.season_tags)

    def test_default_date_is_town_local(self):
        """Without a date the clock is read in the town's timezone"""
        # 03:00 UTC on March 1st is still February 29th in Chicago
        resolver = SeasonResolver(clock=lambda: datetime(2024, 3, 1, 3, 0, tzinfo=dt_timezone.utc))

        resolution = resolver.resolve(self.town.id)

        self.assertEqual(resolution.as_of, date(2024, 2, 29))
        self.assertEqual(resolution.primary_season, 'winter')

    def test_injected_detector(self):
        resolver = SeasonResolver(detector=lambda as_of: {SeasonKey.BASEBALL})

        resolution = resolver.resolve(self.town.id, as_of_date=date(2024, 7, 15))

        self.assertEqual(resolution.season_tags, ('baseball',))

    def test_resolve_window(self):
        self.assertEqual(self.resolver.resolve_window(self.town.id), RouteWindow.LUNCH)
        self.assertEqual(self.resolver.resolve_window(self.town.id, override='evening'), RouteWindow.EVENING)

    def test_unknown_town(self):
        with self.assertRaises(UnknownTown):
            self.resolver.resolve(uuid.uuid4(), as_of_date=date(2024, 7, 15))


class SeasonOverrideServiceTestCase(TestCase):
    """Test cases for SeasonOverrideService"""

    def setUp(self):
        """Set up test fixtures"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')
        self.service = SeasonOverrideService()

    def test_upsert_replaces_existing_row(self):
        self.service.upsert_override(self.town.id, 'festival', date(2024, 7, 1), date(2024, 7, 4))
        row = self.service.upsert_override(self.town.id, 'festival', date(2024, 7, 10), date(2024, 7, 14), 'Moved')

        self.assertEqual(SeasonOverride.objects.filter(town=self.town).count(), 1)
        self.assertEqual(row.start_date, date(2024, 7, 10))
        self.assertEqual(row.notes, 'Moved')
        self.assertEqual(row.state.source, SeasonSource.OVERRIDE)

    def test_inverted_window_conflicts(self):
        with self.assertRaises(OverrideConflict):
            self.service.upsert_override(self.town.id, 'festival', date(2024, 7, 10), date(2024, 7, 1))
        self.assertFalse(SeasonOverride.objects.exists())

    def test_sentinel_window_conflicts(self):
        with self.assertRaises(OverrideConflict):
            self.service.upsert_override(self.town.id, 'festival', SEASON_DISABLED_SENTINEL, date(2024, 7, 1))

    def test_unknown_season_key(self):
        with self.assertRaises(UnknownSeasonKey):
            self.service.upsert_override(self.town.id, 'monsoon')

    def test_force_off_and_clear(self):
        """Force-off writes the sentinel pair; clearing returns the season to auto"""
        row = self.service.force_off(self.town.id, SeasonKey.FOOTBALL, notes='No home games')

        self.assertEqual((row.start_date, row.end_date), (SEASON_DISABLED_SENTINEL, SEASON_DISABLED_SENTINEL))
        self.assertTrue(row.is_forced_off)

        self.assertTrue(self.service.clear_override(self.town.id, 'football'))
        self.assertFalse(self.service.clear_override(self.town.id, 'football'))
        resolution = SeasonResolver().resolve(self.town.id, as_of_date=date(2024, 9, 10))
        self.assertEqual(resolution.source_for('football'), SeasonSource.AUTO)
        self.assertIn('football', resolution.season_tags)


class RouteWindowTest(SimpleTestCase):
    """Test cases for route window resolution"""

    def test_weekday_buckets(self):
        expected = {
            0: RouteWindow.MORNING, 10: RouteWindow.MORNING,
            11: RouteWindow.LUNCH, 14: RouteWindow.LUNCH,
            15: RouteWindow.AFTER_WORK, 18: RouteWindow.AFTER_WORK,
            19: RouteWindow.EVENING, 21: RouteWindow.EVENING,
            22: RouteWindow.MORNING, 23: RouteWindow.MORNING,
        }
        for hour, window in expected.items():
            self.assertEqual(window_from_day_hour(1, hour), window)

    def test_weekend_and_friday_night(self):
        self.assertEqual(window_from_day_hour(5, 9), RouteWindow.WEEKEND)
        self.assertEqual(window_from_day_hour(6, 23), RouteWindow.WEEKEND)
        self.assertEqual(window_from_day_hour(4, 21), RouteWindow.EVENING)
        self.assertEqual(window_from_day_hour(4, 22), RouteWindow.WEEKEND)

    def test_resolve_from_datetime(self):
        self.assertEqual(resolve_route_window(datetime(2024, 7, 15, 12, 0)), RouteWindow.LUNCH)
        self.assertEqual(resolve_route_window(datetime(2024, 7, 19, 22, 30)), RouteWindow.WEEKEND)
        self.assertEqual(resolve_route_window(datetime(2024, 7, 20, 12, 0)), RouteWindow.WEEKEND)

    def test_override_wins(self):
        self.assertEqual(resolve_route_window(datetime(2024, 7, 20, 12, 0), 'morning'), RouteWindow.MORNING)
        self.assertEqual(resolve_route_window(datetime(2024, 7, 15, 12, 0), 'After_Work'), RouteWindow.AFTER_WORK)

    def test_unknown_window(self):
        with self.assertRaises(UnknownRouteWindow):
            resolve_route_window(datetime(2024, 7, 15, 12, 0), 'brunch')

    def test_optional_route_window(self):
        self.assertIsNone(optional_route_window(None))
        self.assertIsNone(optional_route_window('  '))
        self.assertEqual(optional_route_window('lunch'), RouteWindow.LUNCH)

    def test_window_label(self):
        self.assertEqual(window_label('after_work'), 'After Work')
        self.assertEqual(window_label(RouteWindow.LUNCH), 'Lunch')


class ComposeTest(SimpleTestCase):
    """Test cases for the daily pack composer"""

    def setUp(self):
        self.base = BaseContent(
            today_special='Iced latte + muffin $6',
            post={'caption': 'Cool down with us today', 'caption_add_on': 'Tag a friend'},
            sign='Cold brew is back',
        )
        self.boosts = BoostPayloads(
            local='Stop by after the farmers market',
            town={'caption_add_on': 'Part of the Maple Falls network'},
            story={'text': 'Three shops, one street'},
            graph={'next_stop': 'fitness', 'caption_add_on': 'Then hit a class next door'},
            micro_route={'chain': ['coffee', 'fitness', 'retail']},
            seasonal={'tag': 'summer', 'line': 'Summer hours start now'},
        )
        self.season = SeasonResolution(
            as_of=date(2024, 7, 15),
            season_tags=('summer',),
            sources={'summer': SeasonSource.AUTO},
            primary_season='summer',
        )

    def context(self, active_count=10, **kwargs):
        values = {
            'base': self.base,
            'milestone': summary_for_count(active_count),
            'season': self.season,
            'route_window': RouteWindow.LUNCH,
            'boosts': self.boosts,
        }
        values.update(kwargs)
        return DailyContext(**values)

    def test_fixed_section_order(self):
        """Every boost present and unlocked appears in the fixed order"""
        pack = compose(self.context())

        self.assertEqual(
            pack.section_keys,
            ['today_special', 'post', 'sign', 'local', 'town', 'story', 'graph', 'micro_route', 'seasonal']
        )
        self.assertEqual(pack.route_window, 'lunch')
        self.assertEqual(pack.season_tags, ('summer',))

    def test_compose_is_idempotent(self):
        context = self.context()
        first = json.dumps(compose(context).to_dict())
        second = json.dumps(compose(context).to_dict())
        self.assertEqual(first, second)

    def test_boosts_gated_by_milestones(self):
        self.assertEqual(
            compose(self.context(active_count=2)).section_keys,
            ['today_special', 'post', 'sign', 'local', 'town']
        )
        self.assertEqual(
            compose(self.context(active_count=4)).section_keys,
            ['today_special', 'post', 'sign', 'local', 'town', 'story']
        )
        self.assertEqual(
            compose(self.context(active_count=5)).section_keys,
            ['today_special', 'post', 'sign', 'local', 'town', 'story', 'seasonal']
        )

    def test_empty_payloads_are_skipped(self):
        boosts = BoostPayloads(local='', town=None, story={}, graph={'next_stop': 'fitness'}, micro_route=[], seasonal='  ')

        pack = compose(self.context(boosts=boosts))

        self.assertEqual(pack.section_keys, ['today_special', 'post', 'sign', 'graph'])

    def test_missing_town_context_drops_all_boosts(self):
        """Without milestone or season the base plan still renders"""
        for context in (self.context(milestone=None), self.context(season=None)):
            pack = compose(context)
            self.assertEqual(pack.section_keys, ['today_special', 'post', 'sign'])
            self.assertEqual(pack.season_tags, ())

    def test_missing_base_sections_are_left_out(self):
        pack = compose(self.context(base=BaseContent(post='Just a post'), active_count=0))
        self.assertEqual(pack.section_keys, ['post', 'local', 'town'])

        self.assertEqual(compose(DailyContext()).section_keys, [])

    def test_pack_is_detached_from_inputs(self):
        payload = {'text': 'Three shops, one street'}
        context = self.context(boosts=BoostPayloads(story=payload))

        pack = compose(context)
        payload['text'] = 'changed'

        self.assertEqual(pack.get('story').payload, {'text': 'Three shops, one street'})
        self.assertEqual(pack.get('story').title, 'Town Story')
        self.assertIsNone(pack.get('seasonal'))

    def test_caption_add_ons_in_section_order(self):
        pack = compose(self.context())
        self.assertEqual(
            pack.caption_add_ons(),
            ['Tag a friend', 'Part of the Maple Falls network', 'Then hit a class next door']
        )


class DailyPlanServiceTestCase(TestCase):
    """Test cases for DailyPlanService"""

    def setUp(self):
        """Set up test fixtures"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')
        self.service = DailyPlanService(clock=lambda: MONDAY_NOON_CHICAGO)
        self.base = BaseContent(today_special='Special', post='Post', sign='Sign')
        self.boosts = BoostPayloads(local='Local', story='Story', graph='Graph', seasonal='Seasonal')

    def test_build_pack_for_town(self):
        add_members(self.town, 5)

        pack = self.service.build_pack(self.town.id, self.base, self.boosts)

        self.assertEqual(pack.section_keys, ['today_special', 'post', 'sign', 'local', 'story', 'seasonal'])
        self.assertEqual(pack.route_window, 'lunch')
        self.assertEqual(pack.season_tags, ('summer',))

    def test_window_override(self):
        pack = self.service.build_pack(self.town.id, self.base, self.boosts, window_override=RouteWindow.EVENING)
        self.assertEqual(pack.route_window, 'evening')

    def test_unknown_town_still_renders_base(self):
        """A failed town lookup drops boosts and logs a warning instead of raising"""
        with self.assertLogs('recommendations.composer', level='WARNING') as logs:
            pack = self.service.build_pack(uuid.uuid4(), self.base, self.boosts)

        self.assertEqual(pack.section_keys, ['today_special', 'post', 'sign'])
        self.assertIsNone(pack.route_window)
        self.assertIn('without boosts', logs.output[0])

    def test_storage_failure_still_renders_base(self):
        """A database error while loading town data drops boosts instead of raising"""
        add_members(self.town, 10)
        tracker = MagicMock()
        tracker.summarize.side_effect = DatabaseError('membership store timed out')
        service = DailyPlanService(tracker=tracker, clock=lambda: MONDAY_NOON_CHICAGO)

        with self.assertLogs('recommendations.composer', level='WARNING') as logs:
            pack = service.build_pack(self.town.id, base=BaseContent(today_special='Latte'), boosts=self.boosts)

        self.assertEqual(pack.section_keys, ['today_special'])
        self.assertIn('membership store timed out', logs.output[0])


class FlowGraphAPITest(APITestCase):
    """Test cases for the flow graph endpoints"""

    def setUp(self):
        """Set up test data"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')

    def record(self, from_category, to_category, town_id=None):
        url = reverse('recommendations:record_transition')
        data = {'town_id': str(town_id or self.town.id), 'from_category': from_category, 'to_category': to_category}
        return self.client.post(url, data, format='json')

    def test_record_transition(self):
        self.record('coffee', 'fitness')
        response = self.record('coffee', 'fitness')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['edge'], {'from': 'coffee', 'to': 'fitness', 'weight': 2})

    def test_record_transition_errors(self):
        self.assertEqual(self.record('coffee', 'coffee').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.record('coffee', 'bowling').status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.record('coffee', 'fitness', uuid.uuid4()).status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(FlowEdge.objects.exists())

    def test_graph_with_chain(self):
        for from_category, to_category, count in (('coffee', 'fitness', 5), ('fitness', 'retail', 3), ('coffee', 'retail', 1)):
            for _ in range(count):
                self.record(from_category, to_category)
        url = reverse('recommendations:town_graph')

        response = self.client.get(url, {'town_id': str(self.town.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['chain'], ['coffee', 'fitness', 'retail'])
        self.assertEqual(response.data['chain_label'], 'Coffee / Cafe → Fitness → Retail')
        self.assertEqual(response.data['nodes'], ['coffee', 'fitness', 'retail'])

    def test_graph_without_edges(self):
        url = reverse('recommendations:town_graph')

        response = self.client.get(url, {'town_id': str(self.town.id)})

        self.assertEqual(response.data['chain'], [])
        self.assertEqual(response.data['chain_label'], 'Still learning local flow')
        self.assertIsNone(response.data['window'])
        self.assertIsNone(response.data['window_label'])

    def test_graph_for_window(self):
        """A window query applies seasonal weights and labels the window"""
        self.record('coffee', 'fitness')
        url = reverse('recommendations:town_graph')

        response = self.client.get(url, {'town_id': str(self.town.id), 'window': 'after_work'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['window'], 'after_work')
        self.assertEqual(response.data['window_label'], 'After Work')
        self.assertEqual(response.data['chain'], ['coffee', 'fitness'])

    def test_graph_requires_town(self):
        url = reverse('recommendations:town_graph')
        self.assertEqual(self.client.get(url).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(self.client.get(url, {'town_id': str(uuid.uuid4())}).status_code, status.HTTP_404_NOT_FOUND)

    def test_top_edges(self):
        self.record('coffee', 'fitness')
        self.record('coffee', 'retail')
        self.record('coffee', 'retail')
        url = reverse('recommendations:top_edges')

        response = self.client.get(url, {'town_id': str(self.town.id), 'category': 'coffee', 'limit': 1})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['edges'], [{'from': 'coffee', 'to': 'retail', 'weight': 2}])


class SeasonAPITest(APITestCase):
    """Test cases for the season endpoints"""

    def setUp(self):
        """Set up test data"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')

    def test_resolve_season(self):
        SeasonOverride.objects.create(
            town=self.town, season_key=SeasonKey.SUMMER,
            start_date=date(2024, 6, 1), end_date=date(2024, 8, 31), notes='Lake season',
        )
        url = reverse('recommendations:season')

        response = self.client.get(url, {'town_id': str(self.town.id), 'as_of': '2024-07-15', 'window': 'lunch'})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['season_tags'], ['summer'])
        self.assertEqual(response.data['sources']['summer'], 'override')
        self.assertEqual(response.data['notes'], {'summer': 'Lake season'})
        self.assertEqual(response.data['route_window'], 'lunch')
        self.assertEqual(response.data['route_window_label'], 'Lunch')

    def test_resolve_season_errors(self):
        url = reverse('recommendations:season')
        params = {'town_id': str(self.town.id), 'as_of': '2024-07-15'}

        self.assertEqual(self.client.get(url, dict(params, window='brunch')).status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(
            self.client.get(url, dict(params, override_season='monsoon')).status_code,
            status.HTTP_400_BAD_REQUEST
        )
        self.assertEqual(
            self.client.get(url, dict(params, town_id=str(uuid.uuid4()))).status_code,
            status.HTTP_404_NOT_FOUND
        )

    def test_create_override(self):
        url = reverse('recommendations:season-override-list')
        data = {'town_id': str(self.town.id), 'season_key': 'festival', 'start_date': '2024-07-10', 'end_date': '2024-07-14'}

        response = self.client.post(url, data, format='json')
        self.client.post(url, dict(data, end_date='2024-07-20'), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['state'], 'override')
        self.assertEqual(SeasonOverride.objects.get(town=self.town).end_date, date(2024, 7, 20))

    def test_create_inverted_override(self):
        url = reverse('recommendations:season-override-list')
        data = {'town_id': str(self.town.id), 'season_key': 'festival', 'start_date': '2024-07-14', 'end_date': '2024-07-10'}

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(SeasonOverride.objects.exists())

    def test_force_off_and_delete(self):
        url = reverse('recommendations:season-override-force-off')

        response = self.client.post(url, {'town_id': str(self.town.id), 'season_key': 'summer'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['state'], 'forced_off')

        detail = reverse('recommendations:season-override-detail', args=[response.data['id']])
        self.assertEqual(self.client.delete(detail).status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(SeasonOverride.objects.exists())


class DailyPackAPITest(APITestCase):
    """Test cases for the daily pack endpoint"""

    def setUp(self):
        """Set up test data"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')
        self.url = reverse('recommendations:daily_pack')
        self.data = {
            'town_id': str(self.town.id),
            'base': {'today_special': 'Special', 'post': {'caption': 'Post', 'caption_add_on': 'Tag us'}, 'sign': 'Sign'},
            'boosts': {'local': 'Local', 'town': 'Town', 'story': 'Story', 'graph': 'Graph',
                       'micro_route': 'Route', 'seasonal': 'Seasonal'},
            'now': '2024-07-15T17:00:00Z',
        }

    def test_daily_pack(self):
        add_members(self.town, 10)

        response = self.client.post(self.url, self.data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            [section['key'] for section in response.data['sections']],
            ['today_special', 'post', 'sign', 'local', 'town', 'story', 'graph', 'micro_route', 'seasonal']
        )
        self.assertEqual(response.data['route_window'], 'lunch')
        self.assertEqual(response.data['caption_add_ons'], ['Tag us'])

    def test_daily_pack_unknown_town_keeps_base(self):
        response = self.client.post(self.url, dict(self.data, town_id=str(uuid.uuid4())), format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([section['key'] for section in response.data['sections']], ['today_special', 'post', 'sign'])

    def test_daily_pack_rejects_unknown_window(self):
        response = self.client.post(self.url, dict(self.data, window='brunch'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_daily_pack_storage_failure_keeps_base(self):
        """A database error behind the pack still returns the base plan"""
        add_members(self.town, 10)

        with patch('recommendations.composer.MilestoneTracker.summarize',
                   side_effect=DatabaseError('membership store timed out')):
            response = self.client.post(self.url, self.data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([section['key'] for section in response.data['sections']], ['today_special', 'post', 'sign'])
        self.assertIsNone(response.data['route_window'])
