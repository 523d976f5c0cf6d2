from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import viewsets, permissions, filters, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from booklets.models import Booklet
from booklets.views import booklets_visible_to
from core.exceptions import DomainValidationError, get_or_not_found
from core.permissions import IsBookletParticipant, IsDoctor
from lab.serializers import LabRequestSerializer
from medications.serializers import MedicationSerializer
from .models import MedicalEntry
from .serializers import MedicalEntrySerializer, SaveVisitSerializer, SaveVisitResultSerializer
from . import services


class MedicalEntryViewSet(viewsets.ReadOnlyModelViewSet):
    """Entries are written only through ``SaveVisitView``."""
    serializer_class = MedicalEntrySerializer
    permission_classes = [permissions.IsAuthenticated, IsBookletParticipant]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['booklet', 'doctor', 'entry_type', 'visit_date']
    search_fields = ['diagnosis', 'notes', 'recommendations']
    ordering_fields = ['visit_date', 'created_at']

    def get_queryset(self):
        return MedicalEntry.objects.filter(
            booklet__in=booklets_visible_to(self.request.user)
        ).select_related('doctor').order_by('-visit_date', '-created_at')

    @action(detail=True, methods=['get'])
    def medications(self, request, pk=None):
        entry = self.get_object()
        meds = entry.medications.prefetch_related('intake_logs').order_by('created_at')
        return Response(MedicationSerializer(meds, many=True).data)

    @action(detail=True, methods=['get'], url_path='lab-requests')
    def lab_requests(self, request, pk=None):
        entry = self.get_object()
        return Response(LabRequestSerializer(entry.lab_requests.order_by('created_at'), many=True).data)

    @action(detail=False, methods=['get'], permission_classes=[IsDoctor])
    def today(self, request):
        """The requesting doctor's entry for today, so the form can open in edit mode."""
        booklet_id = request.query_params.get('booklet')
        if not booklet_id:
            raise DomainValidationError("booklet is required.", field='booklet')
        booklet = get_or_not_found(
            Booklet, booklet_id, resource='Booklet',
            queryset=booklets_visible_to(request.user),
        )
        entry = services.todays_entry(booklet, request.user)
        if entry is None:
            return Response(None, status=status.HTTP_204_NO_CONTENT)
        return Response(self.get_serializer(entry).data)


class SaveVisitView(APIView):
    permission_classes = [IsDoctor]

    def post(self, request, format=None):
        serializer = SaveVisitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = services.save_visit(
            data['booklet'],
            request.user,
            visit_date=data.get('visit_date'),
            entry_fields=data.get('entry') or {},
            medication_drafts=[dict(d) for d in data.get('medications', [])],
            lab_drafts=[dict(d) for d in data.get('lab_requests', [])],
            deleted_medication_ids=data.get('deleted_medication_ids', []),
            deleted_lab_ids=data.get('deleted_lab_ids', []),
            entry_id=data.get('entry_id'),
            expected_version=data.get('expected_version'),
        )
        body = SaveVisitResultSerializer(result).data
        return Response(body, status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK)
