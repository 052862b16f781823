"""
Views for the recommendations module.
"""
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from recommendations.composer import DailyPlanService
from recommendations.dtos import BaseContent, BoostPayloads
from recommendations.flow_graph import TownFlowGraph, format_chain
from recommendations.models import RouteSeasonWeight, SeasonOverride
from recommendations.seasons import SeasonOverrideService, SeasonResolver
from recommendations.serializers import (
    DailyPackRequestSerializer, ForceOffSerializer, RouteSeasonWeightSerializer,
    SeasonOverrideSerializer, SeasonOverrideWriteSerializer, SeasonQuerySerializer,
    TransitionSerializer
)
from recommendations.windows import optional_route_window, window_label
from towns.views import town_error_response

CHAIN_FALLBACK = "Still learning local flow"


class RecordTransitionView(APIView):
    """
    API endpoint for recording an observed category transition.

    POST /api/recommendations/transitions/
    Body:
    {
        "town_id": "uuid",
        "from_category": "coffee",
        "to_category": "fitness"
    }
    """

    def post(self, request):
        """Count one transition in the town's flow graph"""
        serializer = TransitionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = serializer.validated_data
        try:
            edge = TownFlowGraph().record_transition(
                data['town_id'], data['from_category'], data['to_category']
            )
        except Exception as e:
            return town_error_response(e)

        return Response({'edge': edge.to_dict()}, status=status.HTTP_201_CREATED)


class TownGraphView(APIView):
    """
    API endpoint for a town's flow graph and its derived chain.

    GET /api/recommendations/graph/?town_id=uuid&window=lunch

    With a window, seasonal route weights for the town's active seasons
    are applied before the chain is derived.
    """

    def get(self, request):
        """Get graph snapshot and chain for a town"""
        town_id = request.query_params.get('town_id')
        if not town_id:
            return Response(
                {'error': 'town_id parameter is required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            window = optional_route_window(request.query_params.get('window'))
            graph = TownFlowGraph()
            snapshot = graph.get_graph(town_id)
            season_tags = ()
            if window is not None:
                season_tags = SeasonResolver().resolve(town_id).season_tags
            chain = graph.derive_town_chain(town_id, season_tags=season_tags, window=window)
        except Exception as e:
            return town_error_response(e)

        snapshot['chain'] = [category.value for category in chain]
        snapshot['chain_label'] = format_chain(chain) or CHAIN_FALLBACK
        snapshot['window'] = window.value if window else None
        snapshot['window_label'] = window_label(window) if window else None
        return Response(snapshot, status=status.HTTP_200_OK)


class TopEdgesView(APIView):
    """
    API endpoint for the heaviest next stops from one category.

    GET /api/recommendations/graph/top/?town_id=uuid&category=coffee&limit=3
    """

    def get(self, request):
        town_id = request.query_params.get('town_id')
        category = request.query_params.get('category')
        if not town_id or not category:
            return Response(
                {'error': 'town_id and category parameters are required'},
                status=status.HTTP_400_BAD_REQUEST
            )

        limit = request.query_params.get('limit')
        try:
            limit = int(limit) if limit else None
        except ValueError:
            return Response(
                {'error': 'limit must be an integer'},
                status=status.HTTP_400_BAD_REQUEST
            )

        try:
            edges = TownFlowGraph().list_top_edges_from(town_id, category, limit)
        except Exception as e:
            return town_error_response(e)

        return Response({'edges': [edge.to_dict() for edge in edges]}, status=status.HTTP_200_OK)


class SeasonView(APIView):
    """
    API endpoint for the resolved season tags and route window of a town.

    GET /api/recommendations/season/?town_id=uuid&as_of=2024-07-15&override_season=festival&window=lunch
    """

    def get(self, request):
        """Resolve season tags and route window for a town"""
        serializer = SeasonQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = serializer.validated_data
        resolver = SeasonResolver()
        try:
            resolution = resolver.resolve(
                data['town_id'],
                as_of_date=data.get('as_of'),
                override_season=data.get('override_season') or None,
            )
            window = resolver.resolve_window(
                data['town_id'],
                override=optional_route_window(data.get('window')),
            )
        except Exception as e:
            return town_error_response(e)

        result = resolution.to_dict()
        result['route_window'] = window.value
        result['route_window_label'] = window_label(window)
        return Response(result, status=status.HTTP_200_OK)


class SeasonOverrideViewSet(viewsets.ModelViewSet):
    """
    ViewSet for admin season overrides.
    POST upserts the row for (town, season_key); DELETE returns the season
    to auto-detection.
    """
    queryset = SeasonOverride.objects.all()
    serializer_class = SeasonOverrideSerializer
    http_method_names = ['get', 'post', 'delete', 'head', 'options']

    def get_queryset(self):
        """Filter overrides by town if town_id is provided"""
        queryset = SeasonOverride.objects.select_related('town').order_by('season_key')
        town_id = self.request.query_params.get('town_id')
        if town_id:
            queryset = queryset.filter(town_id=town_id)
        return queryset

    def create(self, request, *args, **kwargs):
        serializer = SeasonOverrideWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = serializer.validated_data
        try:
            row = SeasonOverrideService().upsert_override(
                data['town_id'],
                data['season_key'],
                start_date=data.get('start_date'),
                end_date=data.get('end_date'),
                notes=data.get('notes'),
            )
        except Exception as e:
            return town_error_response(e)

        return Response(SeasonOverrideSerializer(row).data, status=status.HTTP_201_CREATED)

    def destroy(self, request, *args, **kwargs):
        override = self.get_object()
        SeasonOverrideService().clear_override(override.town_id, override.season_key)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['post'])
    def force_off(self, request):
        """
        Switch a season off for a town, whatever the calendar says.

        Request body:
        {
            "town_id": "uuid",
            "season_key": "football",
            "notes": "No home games this year" (optional)
        }
        """
        serializer = ForceOffSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = serializer.validated_data
        try:
            row = SeasonOverrideService().force_off(
                data['town_id'], data['season_key'], notes=data.get('notes')
            )
        except Exception as e:
            return town_error_response(e)

        return Response(SeasonOverrideSerializer(row).data, status=status.HTTP_200_OK)


class RouteSeasonWeightViewSet(viewsets.ModelViewSet):
    """
    ViewSet for seasonal route weight adjustments.
    """
    queryset = RouteSeasonWeight.objects.all()
    serializer_class = RouteSeasonWeightSerializer

    def get_queryset(self):
        queryset = RouteSeasonWeight.objects.order_by('created_at')
        town_id = self.request.query_params.get('town_id')
        if town_id:
            queryset = queryset.filter(town_id=town_id)
        return queryset


class DailyPackView(APIView):
    """
    API endpoint for composing a business's daily recommendation pack.

    POST /api/recommendations/daily/
    Body:
    {
        "town_id": "uuid",
        "base": {"today_special": "...", "post": "...", "sign": "..."},
        "boosts": {"local": "...", "story": {...}, "seasonal": {...}},
        "window": "lunch" (optional),
        "now": "2024-07-15T12:00:00Z" (optional)
    }

    Town level failures only drop the boost sections; the base plan is
    always returned.
    """

    def post(self, request):
        serializer = DailyPackRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(
                {'error': serializer.errors},
                status=status.HTTP_400_BAD_REQUEST
            )

        data = serializer.validated_data
        try:
            window = optional_route_window(data.get('window'))
        except Exception as e:
            return town_error_response(e)

        pack = DailyPlanService().build_pack(
            data['town_id'],
            base=BaseContent(**data.get('base', {})),
            boosts=BoostPayloads(**data.get('boosts', {})),
            now=data.get('now'),
            window_override=window,
        )
        result = pack.to_dict()
        result['caption_add_ons'] = pack.caption_add_ons()
        return Response(result, status=status.HTTP_200_OK)
