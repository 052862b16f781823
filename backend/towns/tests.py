"""
Tests for the towns module.
"""
import uuid

from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from towns.exceptions import TownError, UnknownTown
from towns.milestones import (
    FeatureKey, MilestoneSummary, MilestoneTracker, features_for_count,
    is_feature_unlocked, next_unlock, summary_for_count
)
from towns.models import ParticipationLevel, Town, TownMembership


def add_members(town, count, **kwargs):
    """Create `count` memberships in a town"""
    start = TownMembership.objects.filter(town=town).count()
    for i in range(start, start + count):
        TownMembership.objects.create(
            town=town,
            business_id=f'biz-{i}',
            business_name=f'Business {i}',
            **kwargs
        )


class MilestoneThresholdTest(SimpleTestCase):
    """Test cases for the pure milestone helpers"""

    def test_threshold_boundaries(self):
        """Thresholds are exact: 3, 5 and 10"""
        self.assertEqual(features_for_count(0), frozenset())
        self.assertEqual(features_for_count(2), frozenset())
        self.assertEqual(features_for_count(3), {FeatureKey.TOWN_STORIES})
        self.assertEqual(features_for_count(4), {FeatureKey.TOWN_STORIES})
        self.assertEqual(
            features_for_count(5),
            {FeatureKey.TOWN_STORIES, FeatureKey.TOWN_PULSE_LEARNING}
        )
        self.assertNotIn(FeatureKey.TOWN_GRAPH_ROUTES, features_for_count(9))
        self.assertEqual(features_for_count(10), set(FeatureKey))
        self.assertEqual(features_for_count(250), set(FeatureKey))

    def test_is_feature_unlocked(self):
        """Membership check accepts enum members and raw strings"""
        summary = summary_for_count(4)
        self.assertTrue(is_feature_unlocked(summary, FeatureKey.TOWN_STORIES))
        self.assertTrue(is_feature_unlocked(summary, 'town_stories'))
        self.assertFalse(is_feature_unlocked(summary, FeatureKey.TOWN_GRAPH_ROUTES))
        self.assertFalse(is_feature_unlocked(summary, 'not_a_feature'))

    def test_next_unlock(self):
        """Next unlock names the feature and the businesses still needed"""
        self.assertEqual(next_unlock(0), (FeatureKey.TOWN_STORIES, 3))
        self.assertEqual(next_unlock(3), (FeatureKey.TOWN_PULSE_LEARNING, 2))
        self.assertEqual(next_unlock(7), (FeatureKey.TOWN_GRAPH_ROUTES, 3))
        self.assertIsNone(next_unlock(10))

    def test_launch_and_momentum_copy(self):
        """Launch message and momentum line follow the active count"""
        self.assertEqual(summary_for_count(1).launch_message, "You're starting something new here.")
        self.assertEqual(summary_for_count(2).launch_message, "You're not alone anymore.")
        self.assertIsNone(summary_for_count(3).launch_message)
        self.assertEqual(summary_for_count(6).launch_message, "Your town now has a shared rhythm.")
        self.assertIsNone(summary_for_count(1).momentum_line)
        self.assertEqual(summary_for_count(2).momentum_line, "Your town is building momentum.")

    def test_summary_to_dict_lists_features_in_unlock_order(self):
        summary = MilestoneSummary(
            active_count=12,
            features_unlocked=frozenset([FeatureKey.TOWN_GRAPH_ROUTES, FeatureKey.TOWN_STORIES]),
        )
        self.assertEqual(summary.to_dict()['features_unlocked'], ['town_stories', 'town_graph_routes'])


class MilestoneTrackerTestCase(TestCase):
    """Test cases for MilestoneTracker"""

    def setUp(self):
        """Set up test fixtures"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')
        self.tracker = MilestoneTracker()

    def test_four_active_businesses_unlock_stories_only(self):
        """4 active businesses unlock town stories but not graph routes"""
        add_members(self.town, 4)

        summary = self.tracker.summarize(self.town.id)

        self.assertEqual(summary.active_count, 4)
        self.assertEqual(summary.features_unlocked, {FeatureKey.TOWN_STORIES})
        self.assertFalse(is_feature_unlocked(summary, FeatureKey.TOWN_GRAPH_ROUTES))

    def test_hidden_and_inactive_memberships_are_not_counted(self):
        """Only active, non-hidden memberships count"""
        add_members(self.town, 2)
        add_members(self.town, 1, participation_level=ParticipationLevel.LEADER)
        add_members(self.town, 3, participation_level=ParticipationLevel.HIDDEN)
        add_members(self.town, 2, active=False)

        summary = self.tracker.summarize(self.town.id)

        self.assertEqual(summary.active_count, 3)
        self.assertEqual(summary.features_unlocked, {FeatureKey.TOWN_STORIES})

    def test_other_towns_do_not_count(self):
        other = Town.objects.create(name='Cedar Bend', slug='cedar-bend')
        add_members(other, 10)

        self.assertEqual(self.tracker.count_active(self.town.id), 0)
        self.assertEqual(self.tracker.count_active(other.id), 10)

    def test_summary_follows_membership_changes(self):
        """Summaries are recomputed on every call"""
        add_members(self.town, 9)
        self.assertNotIn(FeatureKey.TOWN_GRAPH_ROUTES, self.tracker.summarize(self.town.id).features_unlocked)

        add_members(self.town, 1)
        self.assertIn(FeatureKey.TOWN_GRAPH_ROUTES, self.tracker.summarize(self.town.id).features_unlocked)

    def test_unknown_town(self):
        """Missing or malformed town ids raise UnknownTown"""
        with self.assertRaises(UnknownTown):
            self.tracker.summarize(uuid.uuid4())
        with self.assertRaises(UnknownTown):
            self.tracker.summarize('not-a-uuid')

    def test_unknown_town_is_a_town_error(self):
        self.assertTrue(issubclass(UnknownTown, TownError))

    def test_one_membership_per_business(self):
        add_members(self.town, 1)
        with self.assertRaises(IntegrityError), transaction.atomic():
            TownMembership.objects.create(town=self.town, business_id='biz-0')


class TownAPITest(APITestCase):
    """Test cases for the towns API"""

    def setUp(self):
        """Set up test data"""
        self.town = Town.objects.create(name='Maple Falls', slug='maple-falls')

    def test_create_town(self):
        url = reverse('towns:town-list')
        data = {'name': 'Cedar Bend', 'slug': 'cedar-bend', 'timezone': 'America/Denver'}

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Town.objects.get(slug='cedar-bend').timezone, 'America/Denver')

    def test_create_town_rejects_unknown_timezone(self):
        url = reverse('towns:town-list')
        data = {'name': 'Cedar Bend', 'slug': 'cedar-bend', 'timezone': 'Mars/Olympus'}

        response = self.client.post(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_milestones(self):
        """Milestones endpoint reports features and the next unlock"""
        add_members(self.town, 4)
        url = reverse('towns:town-milestones', args=[self.town.id])

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['active_count'], 4)
        self.assertEqual(response.data['features_unlocked'], ['town_stories'])
        self.assertEqual(
            response.data['next_unlock'],
            {'feature': 'town_pulse_learning', 'businesses_needed': 1}
        )

    def test_milestones_unknown_town(self):
        url = reverse('towns:town-milestones', args=[uuid.uuid4()])

        response = self.client.get(url)

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertIn('error', response.data)

    def test_memberships_filtered_by_town(self):
        """Membership list can be filtered by town and exposes the flow category"""
        other = Town.objects.create(name='Cedar Bend', slug='cedar-bend')
        TownMembership.objects.create(town=self.town, business_id='b1', business_type='gym')
        TownMembership.objects.create(town=other, business_id='b2', business_type='cafe')
        url = reverse('towns:membership-list')

        response = self.client.get(url, {'town_id': str(self.town.id)})

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['business_id'], 'b1')
        self.assertEqual(response.data[0]['category'], 'fitness')

    def test_membership_category_falls_back_to_business_name(self):
        """Unmapped business types take their category from the business name"""
        TownMembership.objects.create(
            town=self.town, business_id='b1', business_name='Main St Espresso', business_type='kiosk'
        )
        TownMembership.objects.create(
            town=self.town, business_id='b2', business_name='Hello Neighbor', business_type=''
        )
        url = reverse('towns:membership-list')

        response = self.client.get(url, {'town_id': str(self.town.id)})

        categories = {row['business_id']: row['category'] for row in response.data}
        self.assertEqual(categories, {'b1': 'coffee', 'b2': 'other'})
