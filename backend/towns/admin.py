"""
Django admin configuration for towns models.
"""
from django.contrib import admin
from towns.models import Town, TownMembership


class TownMembershipInline(admin.TabularInline):
    model = TownMembership
    extra = 0
    fields = ['business_id', 'business_name', 'business_type', 'participation_level', 'active']


@admin.register(Town)
class TownAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'region', 'timezone', 'created_at']
    search_fields = ['name', 'slug', 'region']
    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['id', 'created_at', 'updated_at']
    inlines = [TownMembershipInline]


@admin.register(TownMembership)
class TownMembershipAdmin(admin.ModelAdmin):
    list_display = ['business_name', 'business_id', 'town', 'business_type', 'participation_level', 'active']
    list_filter = ['participation_level', 'active', 'town']
    search_fields = ['business_name', 'business_id', 'town__name']
    readonly_fields = ['id', 'created_at', 'updated_at']
