"""
Serializers for the recommendations module.
"""
from rest_framework import serializers

from recommendations.models import RouteSeasonWeight, SeasonOverride


class TransitionSerializer(serializers.Serializer):
    """Input for recording one observed category -> category transition"""
    town_id = serializers.UUIDField()
    from_category = serializers.CharField()
    to_category = serializers.CharField()


class SeasonOverrideSerializer(serializers.ModelSerializer):
    state = serializers.SerializerMethodField()

    class Meta:
        model = SeasonOverride
        fields = ['id', 'town', 'season_key', 'start_date', 'end_date', 'notes', 'state', 'created_at', 'updated_at']
        read_only_fields = fields

    def get_state(self, obj):
        return obj.state.source.value


class SeasonOverrideWriteSerializer(serializers.Serializer):
    """Input for storing a manual season window"""
    town_id = serializers.UUIDField()
    season_key = serializers.CharField()
    start_date = serializers.DateField(required=False, allow_null=True, default=None)
    end_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)


class ForceOffSerializer(serializers.Serializer):
    town_id = serializers.UUIDField()
    season_key = serializers.CharField()
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True, default=None)


class RouteSeasonWeightSerializer(serializers.ModelSerializer):
    class Meta:
        model = RouteSeasonWeight
        fields = ['id', 'town', 'season_tag', 'window', 'from_category', 'to_category', 'weight_delta', 'created_at']
        read_only_fields = ['id', 'created_at']


class SeasonQuerySerializer(serializers.Serializer):
    """Query parameters of the season endpoint"""
    town_id = serializers.UUIDField()
    as_of = serializers.DateField(required=False)
    override_season = serializers.CharField(required=False, allow_blank=True)
    window = serializers.CharField(required=False, allow_blank=True)


class BaseContentSerializer(serializers.Serializer):
    """Base plan from the content generator; payloads are passed through untouched"""
    today_special = serializers.JSONField(required=False, allow_null=True, default=None)
    post = serializers.JSONField(required=False, allow_null=True, default=None)
    sign = serializers.JSONField(required=False, allow_null=True, default=None)


class BoostPayloadsSerializer(serializers.Serializer):
    local = serializers.JSONField(required=False, allow_null=True, default=None)
    town = serializers.JSONField(required=False, allow_null=True, default=None)
    story = serializers.JSONField(required=False, allow_null=True, default=None)
    graph = serializers.JSONField(required=False, allow_null=True, default=None)
    micro_route = serializers.JSONField(required=False, allow_null=True, default=None)
    seasonal = serializers.JSONField(required=False, allow_null=True, default=None)


class DailyPackRequestSerializer(serializers.Serializer):
    """Input for building a daily recommendation pack"""
    town_id = serializers.UUIDField()
    base = BaseContentSerializer(required=False)
    boosts = BoostPayloadsSerializer(required=False)
    window = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    now = serializers.DateTimeField(required=False)
