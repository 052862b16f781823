"""
Serializers for the towns module.
"""
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from rest_framework import serializers

from recommendations.categories import Category, category_from_business_type, infer_category_from_text
from towns.models import Town, TownMembership


class TownSerializer(serializers.ModelSerializer):
    class Meta:
        model = Town
        fields = ['id', 'name', 'slug', 'region', 'timezone', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def validate_timezone(self, value):
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError):
            raise serializers.ValidationError(f"Unknown timezone '{value}'")
        return value


class TownMembershipSerializer(serializers.ModelSerializer):
    category = serializers.SerializerMethodField()

    class Meta:
        model = TownMembership
        fields = [
            'id', 'town', 'business_id', 'business_name', 'business_type', 'category',
            'participation_level', 'active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'category', 'created_at', 'updated_at']

    def get_category(self, obj):
        category = category_from_business_type(obj.business_type)
        if category == Category.OTHER:
            # Unmapped business types fall back to hints in the business name
            category = infer_category_from_text(obj.business_name) or Category.OTHER
        return category.value


class MilestoneSummarySerializer(serializers.Serializer):
    """Serializer for MilestoneSummary plus the next unlock hint"""
    active_count = serializers.IntegerField()
    features_unlocked = serializers.ListField(child=serializers.CharField())
    launch_message = serializers.CharField(allow_null=True)
    momentum_line = serializers.CharField(allow_null=True)
    next_unlock = serializers.DictField(allow_null=True)
