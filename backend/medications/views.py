from django.conf import settings
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, permissions, filters
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response

from booklets.views import booklets_visible_to
from core import dates
from core.exceptions import DomainValidationError
from core.permissions import IsBookletParticipant, IsDoctor
from .models import Medication
from .serializers import (
    MedicationSerializer, MedicationIntakeLogSerializer,
    ExtendMedicationSerializer, StopMedicationSerializer, LogIntakeSerializer,
)
from . import services


class MedicationViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = MedicationSerializer
    permission_classes = [permissions.IsAuthenticated, IsBookletParticipant]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['booklet', 'medical_entry']
    search_fields = ['name', 'generic_name']
    ordering_fields = ['start_date', 'end_date', 'name']

    def get_queryset(self):
        qs = Medication.objects.filter(
            booklet__in=booklets_visible_to(self.request.user)
        ).prefetch_related('intake_logs').order_by('-start_date', 'name')
        if self.request.query_params.get('current') in ('1', 'true', 'True'):
            qs = qs.active_on(dates.today())
        return qs

    def _require_doctor(self, request):
        if not IsDoctor().has_permission(request, self):
            raise PermissionDenied("Only doctors can change a prescription.")

    @action(detail=True, methods=['post'])
    def extend(self, request, pk=None):
        self._require_doctor(request)
        medication = self.get_object()
        serializer = ExtendMedicationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        medication = services.extend_medication(
            medication,
            serializer.validated_data['end_date'],
            expected_version=serializer.validated_data.get('expected_version'),
        )
        return Response(self.get_serializer(medication).data)

    @action(detail=True, methods=['post'])
    def stop(self, request, pk=None):
        self._require_doctor(request)
        medication = self.get_object()
        serializer = StopMedicationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        medication = services.stop_medication(
            medication,
            serializer.validated_data.get('effective_date'),
            expected_version=serializer.validated_data.get('expected_version'),
        )
        return Response(self.get_serializer(medication).data)

    @action(detail=True, methods=['post'], url_path='log-intake')
    def log_intake(self, request, pk=None):
        medication = self.get_object()
        serializer = LogIntakeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        log = services.log_intake(medication, user=request.user, **serializer.validated_data)
        return Response(MedicationIntakeLogSerializer(log).data)

    @action(detail=True, methods=['get'], url_path='intake-logs')
    def intake_logs(self, request, pk=None):
        medication = self.get_object()
        logs = medication.intake_logs.order_by('-scheduled_date', 'dose_index')
        return Response(MedicationIntakeLogSerializer(logs, many=True).data)

    @action(detail=True, methods=['get'])
    def adherence(self, request, pk=None):
        medication = self.get_object()
        try:
            window = int(request.query_params.get('window_days', settings.ADHERENCE_WINDOW_DAYS))
        except ValueError:
            raise DomainValidationError("window_days must be a number.", field='window_days')
        if window <= 0:
            raise DomainValidationError("window_days must be positive.", field='window_days')
        return Response({
            'medication': str(medication.pk),
            'window_days': window,
            'adherence_rate': services.adherence_for(medication, window_days=window),
        })
