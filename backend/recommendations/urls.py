"""
URL configuration for the recommendations module.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from recommendations.views import (
    RecordTransitionView, TownGraphView, TopEdgesView, SeasonView,
    SeasonOverrideViewSet, RouteSeasonWeightViewSet, DailyPackView
)

router = DefaultRouter()
router.register(r'season-overrides', SeasonOverrideViewSet, basename='season-override')
router.register(r'route-season-weights', RouteSeasonWeightViewSet, basename='route-season-weight')

app_name = 'recommendations'

urlpatterns = [
    path('', include(router.urls)),
    path('transitions/', RecordTransitionView.as_view(), name='record_transition'),
    path('graph/', TownGraphView.as_view(), name='town_graph'),
    path('graph/top/', TopEdgesView.as_view(), name='top_edges'),
    path('season/', SeasonView.as_view(), name='season'),
    path('daily/', DailyPackView.as_view(), name='daily_pack'),
]
