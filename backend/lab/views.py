from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, permissions, filters, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response

from booklets.models import Booklet
from booklets.views import booklets_visible_to
from core.exceptions import get_or_not_found
from core.permissions import IsBookletParticipant, IsDoctor, IsMother
from .models import LabRequest
from .serializers import (
    LabRequestSerializer, LabRequestCreateSerializer,
    CompleteLabSerializer, CancelLabSerializer,
)
from . import services


class LabRequestViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Lab requests are read here and moved through their states by the
    actions below. They are never deleted through this API.
    """
    serializer_class = LabRequestSerializer
    permission_classes = [permissions.IsAuthenticated, IsBookletParticipant]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['booklet', 'medical_entry', 'status', 'priority']
    search_fields = ['description']
    ordering_fields = ['requested_date', 'due_date', 'completed_date']

    def get_queryset(self):
        return LabRequest.objects.filter(
            booklet__in=booklets_visible_to(self.request.user)
        ).select_related('requested_by').order_by('-requested_date', '-created_at')

    def _require_doctor(self, request, message):
        if not IsDoctor().has_permission(request, self):
            raise PermissionDenied(message)

    def create(self, request, *args, **kwargs):
        self._require_doctor(request, "Only doctors can order labs.")
        serializer = LabRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        booklet = get_or_not_found(
            Booklet, data.pop('booklet'), resource='Booklet',
            queryset=booklets_visible_to(request.user),
        )
        lab = services.create_lab_request(booklet, request.user, **data)
        return Response(self.get_serializer(lab).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        self._require_doctor(request, "Patients complete a lab by uploading results.")
        lab = self.get_object()
        serializer = CompleteLabSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lab = services.complete_lab_request(lab, **serializer.validated_data)
        return Response(self.get_serializer(lab).data)

    @action(detail=True, methods=['post'], url_path='upload-results', permission_classes=[IsMother, IsBookletParticipant])
    def upload_results(self, request, pk=None):
        lab = self.get_object()
        serializer = CompleteLabSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lab = services.upload_results(lab, request.user, **serializer.validated_data)
        return Response(self.get_serializer(lab).data)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        self._require_doctor(request, "Only doctors can cancel a lab request.")
        lab = self.get_object()
        serializer = CancelLabSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lab = services.cancel_lab_request(lab, **serializer.validated_data)
        return Response(self.get_serializer(lab).data)

    @action(detail=False, methods=['get'], url_path='pending-mine')
    def pending_mine(self, request):
        self._require_doctor(request, "Only doctors order labs.")
        labs = services.pending_for_doctor(request.user)
        return Response(self.get_serializer(labs, many=True).data)
