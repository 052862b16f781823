"""
Django admin configuration for recommendations models.
"""
from django.contrib import admin
from recommendations.models import FlowEdge, RouteSeasonWeight, SeasonOverride


@admin.register(FlowEdge)
class FlowEdgeAdmin(admin.ModelAdmin):
    list_display = ['town', 'from_category', 'to_category', 'weight', 'updated_at']
    list_filter = ['from_category', 'to_category', 'town']
    search_fields = ['town__name']
    readonly_fields = ['id', 'weight', 'created_at', 'updated_at']
    ordering = ['town', '-weight']


@admin.register(SeasonOverride)
class SeasonOverrideAdmin(admin.ModelAdmin):
    list_display = ['town', 'season_key', 'start_date', 'end_date', 'override_state', 'updated_at']
    list_filter = ['season_key', 'town']
    search_fields = ['town__name', 'notes']
    readonly_fields = ['id', 'created_at', 'updated_at']

    @admin.display(description='State')
    def override_state(self, obj):
        return obj.state.source.value


@admin.register(RouteSeasonWeight)
class RouteSeasonWeightAdmin(admin.ModelAdmin):
    list_display = ['town', 'season_tag', 'window', 'from_category', 'to_category', 'weight_delta']
    list_filter = ['season_tag', 'window', 'town']
    search_fields = ['town__name']
    readonly_fields = ['id', 'created_at']
