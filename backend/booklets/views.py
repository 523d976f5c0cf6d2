from django.contrib.auth import get_user_model
from rest_framework import viewsets, permissions, filters, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response

from core.exceptions import DomainValidationError, get_or_not_found
from core.permissions import IsBookletParticipant
from .models import Booklet
from .serializers import (
    BookletSerializer, BookletCreateSerializer, BookletUpdateSerializer,
    CompleteBookletSerializer, BookletAccessSerializer, AccessTokenSerializer,
)
from . import services

User = get_user_model()


def booklets_visible_to(user):
    qs = Booklet.objects.select_related('mother')
    role = getattr(user, 'role', None)
    if user.is_superuser or role == 'ADMIN':
        return qs
    if role == 'DOCTOR':
        return qs.filter(access_records__doctor=user, access_records__revoked_at__isnull=True).distinct()
    return qs.filter(mother=user)


class BookletViewSet(viewsets.ModelViewSet):
    serializer_class = BookletSerializer
    permission_classes = [permissions.IsAuthenticated, IsBookletParticipant]
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['label', 'mother__first_name', 'mother__last_name', 'mother__username']
    ordering_fields = ['created_at', 'expected_due_date']
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def get_queryset(self):
        qs = booklets_visible_to(self.request.user).order_by('-created_at')
        booklet_status = self.request.query_params.get('status')
        if booklet_status:
            qs = qs.filter(status=booklet_status.upper())
        return qs

    def create(self, request, *args, **kwargs):
        """
        Doctors open a booklet for an existing mother ("add patient") and
        get access with it; mothers open one for themselves.
        """
        serializer = BookletCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        user = request.user
        if user.role == 'DOCTOR':
            mother = data.pop('mother', None)
            if mother is None:
                raise DomainValidationError("mother is required when a doctor opens a booklet.", field='mother')
            doctor = user
        elif user.role == 'MOTHER':
            data.pop('mother', None)
            mother, doctor = user, None
        else:
            mother, doctor = data.pop('mother', None), None

        booklet = services.create_booklet_for_patient(mother, doctor=doctor, **data)
        return Response(self.get_serializer(booklet).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        booklet = self.get_object()
        serializer = BookletUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        fields = dict(serializer.validated_data)
        expected_version = fields.pop('expected_version', None)
        booklet = services.update_booklet(booklet, fields, expected_version=expected_version)
        return Response(self.get_serializer(booklet).data)

    def _doctor_from_request(self, request, key='doctor'):
        doctor_id = request.data.get(key)
        if not doctor_id:
            if request.user.role == 'DOCTOR':
                return request.user
            raise DomainValidationError(f"{key} is required.", field=key)
        return get_or_not_found(User, doctor_id, resource='Doctor')

    @action(detail=True, methods=['get'])
    def access(self, request, pk=None):
        booklet = self.get_object()
        records = booklet.access_records.select_related('doctor').order_by('-granted_at')
        if request.user.role == 'DOCTOR':
            records = records.filter(doctor=request.user)
        return Response(BookletAccessSerializer(records, many=True).data)

    @action(detail=True, methods=['post'], url_path='grant-access')
    def grant_access(self, request, pk=None):
        booklet = self.get_object()
        if request.user.role == 'DOCTOR':
            raise PermissionDenied("Doctors join a booklet through the patient's access code.")
        access = services.grant_access(booklet, self._doctor_from_request(request))
        return Response(BookletAccessSerializer(access).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='revoke-access')
    def revoke_access(self, request, pk=None):
        booklet = self.get_object()
        doctor = self._doctor_from_request(request)
        if request.user.role == 'DOCTOR' and doctor != request.user:
            raise PermissionDenied("Doctors can only give up their own access.")
        access = services.revoke_access(booklet, doctor)
        return Response(BookletAccessSerializer(access).data)

    @action(detail=True, methods=['post'], url_path='patient-label')
    def patient_label(self, request, pk=None):
        booklet = self.get_object()
        if request.user.role != 'DOCTOR':
            raise PermissionDenied("Only doctors keep patient IDs.")
        access = services.set_patient_label(booklet, request.user, request.data.get('patient_label'))
        return Response(BookletAccessSerializer(access).data)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        serializer = CompleteBookletSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booklet = services.complete_booklet(
            self.get_object(), serializer.validated_data.get('actual_delivery_date')
        )
        return Response(self.get_serializer(booklet).data)

    @action(detail=True, methods=['post'])
    def archive(self, request, pk=None):
        booklet = services.archive_booklet(self.get_object())
        return Response(self.get_serializer(booklet).data)

    @action(detail=True, methods=['post'], url_path='access-token')
    def access_token(self, request, pk=None):
        token = services.issue_access_token(self.get_object(), request.user)
        return Response(AccessTokenSerializer(token).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='redeem-token')
    def redeem_token(self, request):
        token_id = request.data.get('token')
        if not token_id:
            raise DomainValidationError("token is required.", field='token')
        access = services.redeem_access_token(token_id, request.user)
        return Response(BookletAccessSerializer(access).data)
