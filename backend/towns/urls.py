"""
URL configuration for the towns module.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from towns.views import TownViewSet, TownMembershipViewSet

router = DefaultRouter()
router.register(r'towns', TownViewSet, basename='town')
router.register(r'memberships', TownMembershipViewSet, basename='membership')

app_name = 'towns'

urlpatterns = [
    path('', include(router.urls)),
]
