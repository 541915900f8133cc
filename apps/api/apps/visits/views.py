"""
Visit viewsets: lifecycle transitions and checkout completion.
"""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from apps.authz.permissions import IsVisitStaff
from apps.core.errors import DomainError, domain_error_response
from apps.visits import services
from apps.visits.models import Visit
from apps.visits.serializers import VisitSerializer, VisitTransitionSerializer


class VisitViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """
    Endpoints:
    - GET  /api/v1/visits/                   (?status=, ?visit_type=)
    - GET  /api/v1/visits/{id}/
    - GET  /api/v1/visits/{id}/transitions/  allowed next statuses
    - POST /api/v1/visits/{id}/transition/   {"new_status": "...", "reason": "..."}
    - POST /api/v1/visits/{id}/complete/     outpatient checkout
    """
    serializer_class = VisitSerializer
    permission_classes = [IsVisitStaff]

    def get_queryset(self):
        queryset = Visit.objects.select_related('patient')
        for param in ('status', 'visit_type'):
            value = self.request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        return queryset.order_by('-arrival_at')

    @action(detail=True, methods=['get'], url_path='transitions')
    def transitions(self, request, pk=None):
        visit = self.get_object()
        return Response({
            'status': visit.status,
            'allowed_transitions': services.get_allowed_transitions(visit),
        })

    @action(detail=True, methods=['post'], url_path='transition')
    def transition(self, request, pk=None):
        serializer = VisitTransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            visit = services.transition_visit(
                pk,
                serializer.validated_data['new_status'],
                actor=request.user,
                reason=serializer.validated_data.get('reason'),
            )
        except DomainError as e:
            return domain_error_response(e)

        return Response(VisitSerializer(visit).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=['post'], url_path='complete')
    def complete(self, request, pk=None):
        try:
            visit = services.complete_visit(pk, actor=request.user)
        except DomainError as e:
            return domain_error_response(e)
        return Response(VisitSerializer(visit).data, status=status.HTTP_200_OK)
