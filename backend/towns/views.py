"""
Views for the towns module.
"""
import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from towns.exceptions import TownError, UnknownTown
from towns.milestones import MilestoneTracker, next_unlock
from towns.models import Town, TownMembership
from towns.serializers import MilestoneSummarySerializer, TownMembershipSerializer, TownSerializer

logger = logging.getLogger(__name__)


def town_error_response(error: Exception) -> Response:
    """Translate an engine error into the API error body and status."""
    if isinstance(error, UnknownTown):
        return Response({'error': str(error)}, status=status.HTTP_404_NOT_FOUND)
    if isinstance(error, TownError):
        return Response({'error': str(error)}, status=status.HTTP_400_BAD_REQUEST)
    logger.error(f"Unexpected error: {error}", exc_info=error)
    return Response({'error': str(error)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


class TownViewSet(viewsets.ModelViewSet):
    """
    ViewSet for managing towns.
    """
    queryset = Town.objects.all()
    serializer_class = TownSerializer

    @action(detail=True, methods=['get'])
    def milestones(self, request, pk=None):
        """
        Milestone summary of a town: active business count, unlocked
        features and the next feature within reach.
        """
        try:
            summary = MilestoneTracker().summarize(pk)
        except Exception as e:
            return town_error_response(e)

        data = summary.to_dict()
        upcoming = next_unlock(summary.active_count)
        data['next_unlock'] = None
        if upcoming:
            feature, needed = upcoming
            data['next_unlock'] = {'feature': feature.value, 'businesses_needed': needed}

        serializer = MilestoneSummarySerializer(data)
        return Response(serializer.data, status=status.HTTP_200_OK)


class TownMembershipViewSet(viewsets.ModelViewSet):
    """
    ViewSet for managing business memberships in towns.
    """
    queryset = TownMembership.objects.all()
    serializer_class = TownMembershipSerializer

    def get_queryset(self):
        """Filter memberships by town if town_id is provided"""
        queryset = TownMembership.objects.select_related('town').order_by('created_at')
        town_id = self.request.query_params.get('town_id')
        if town_id:
            queryset = queryset.filter(town_id=town_id)
        return queryset
