from django.contrib.auth import get_user_model
from rest_framework import serializers

from core.dates import format_aog
from core.serializers import CalendarDateField
from .models import Booklet, BookletAccess, AccessToken

User = get_user_model()


class MedicalHistoryItemSerializer(serializers.Serializer):
    condition = serializers.CharField()
    notes = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    diagnosed_year = serializers.IntegerField(required=False, allow_null=True)


class BookletSerializer(serializers.ModelSerializer):
    b_id = serializers.UUIDField(source='id', read_only=True)
    mother_name = serializers.CharField(source='mother.display_name', read_only=True)
    last_menstrual_period = CalendarDateField(required=False, allow_null=True)
    expected_due_date = CalendarDateField(required=False, allow_null=True)
    actual_delivery_date = CalendarDateField(read_only=True)
    medical_history = MedicalHistoryItemSerializer(many=True, required=False)
    aog = serializers.SerializerMethodField()
    patient_label = serializers.SerializerMethodField()

    class Meta:
        model = Booklet
        fields = [
            'id', 'b_id', 'mother', 'mother_name', 'label', 'status',
            'last_menstrual_period', 'expected_due_date', 'actual_delivery_date', 'aog',
            'current_risk_level', 'notes', 'allergies', 'medical_history', 'patient_label',
            'version', 'created_at', 'updated_at',
        ]
        read_only_fields = ['id', 'b_id', 'mother', 'status', 'current_risk_level', 'version', 'created_at', 'updated_at']

    def get_aog(self, obj):
        return format_aog(obj.aog_on())

    def get_patient_label(self, obj):
        # Only the requesting doctor's own label is ever shown
        request = self.context.get('request')
        if not request or getattr(request.user, 'role', None) != 'DOCTOR':
            return None
        access = obj.active_access_for(request.user)
        return access.patient_label if access else None


class BookletCreateSerializer(serializers.Serializer):
    mother = serializers.PrimaryKeyRelatedField(queryset=User.objects.filter(role='MOTHER'), required=False)
    label = serializers.CharField()
    last_menstrual_period = CalendarDateField(required=False, allow_null=True)
    expected_due_date = CalendarDateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    allergies = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    medical_history = MedicalHistoryItemSerializer(many=True, required=False, default=list)


class BookletUpdateSerializer(serializers.Serializer):
    label = serializers.CharField(required=False)
    last_menstrual_period = CalendarDateField(required=False, allow_null=True)
    expected_due_date = CalendarDateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    allergies = serializers.ListField(child=serializers.CharField(), required=False)
    medical_history = MedicalHistoryItemSerializer(many=True, required=False)
    expected_version = serializers.IntegerField(required=False, write_only=True)


class CompleteBookletSerializer(serializers.Serializer):
    actual_delivery_date = CalendarDateField(required=False, allow_null=True)


class BookletAccessSerializer(serializers.ModelSerializer):
    access_id = serializers.UUIDField(source='id', read_only=True)
    doctor_name = serializers.CharField(source='doctor.display_name', read_only=True)
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = BookletAccess
        fields = ['access_id', 'booklet', 'doctor', 'doctor_name', 'granted_at', 'revoked_at', 'is_active', 'patient_label']
        read_only_fields = fields


class AccessTokenSerializer(serializers.ModelSerializer):
    token = serializers.UUIDField(source='id', read_only=True)

    class Meta:
        model = AccessToken
        fields = ['token', 'booklet', 'expires_at', 'used_at']
        read_only_fields = fields
