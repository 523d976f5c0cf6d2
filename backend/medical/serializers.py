from rest_framework import serializers

from core.serializers import CalendarDateField
from lab.serializers import LabRequestSerializer
from medications.serializers import MedicationSerializer
from .models import MedicalEntry


class VitalsSerializer(serializers.Serializer):
    blood_pressure = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    weight = serializers.FloatField(required=False, allow_null=True)
    temperature = serializers.FloatField(required=False, allow_null=True)
    heart_rate = serializers.IntegerField(required=False, allow_null=True)
    fetal_heart_rate = serializers.IntegerField(required=False, allow_null=True)
    fundal_height = serializers.FloatField(required=False, allow_null=True)
    aog = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class MedicalEntrySerializer(serializers.ModelSerializer):
    doctor_name = serializers.CharField(source='doctor.display_name', read_only=True)
    visit_date = CalendarDateField(read_only=True)
    follow_up_date = CalendarDateField(read_only=True)
    medication_count = serializers.SerializerMethodField()
    lab_request_count = serializers.SerializerMethodField()

    class Meta:
        model = MedicalEntry
        fields = [
            'id', 'booklet', 'doctor', 'doctor_name', 'entry_type', 'visit_date', 'notes', 'vitals',
            'diagnosis', 'recommendations', 'risk_level', 'follow_up_date', 'attachments',
            'medication_count', 'lab_request_count', 'version', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_medication_count(self, obj):
        return obj.medications.count()

    def get_lab_request_count(self, obj):
        return obj.lab_requests.count()


class EntryFieldsSerializer(serializers.Serializer):
    """Only the keys actually sent are passed on, so updates stay partial."""
    entry_type = serializers.ChoiceField(choices=[c[0] for c in MedicalEntry.ENTRY_TYPE_CHOICES], required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    vitals = VitalsSerializer(required=False)
    diagnosis = serializers.CharField(required=False, allow_blank=True)
    recommendations = serializers.CharField(required=False, allow_blank=True)
    risk_level = serializers.ChoiceField(choices=[c[0] for c in MedicalEntry.RISK_CHOICES], required=False, allow_null=True)
    follow_up_date = CalendarDateField(required=False, allow_null=True)
    attachments = serializers.ListField(child=serializers.CharField(), required=False)


class MedicationDraftSerializer(serializers.Serializer):
    id = serializers.UUIDField(required=False, allow_null=True)
    client_key = serializers.CharField(required=False, allow_null=True, max_length=64)
    name = serializers.CharField()
    generic_name = serializers.CharField(required=False, allow_blank=True, default='')
    dosage = serializers.CharField()
    instructions = serializers.CharField(required=False, allow_blank=True, default='')
    frequency_per_day = serializers.IntegerField(min_value=1, max_value=4)
    end_date = CalendarDateField(required=False, allow_null=True)
    times_of_day = serializers.ListField(child=serializers.CharField(), required=False, default=list)


class LabDraftSerializer(serializers.Serializer):
    id = serializers.UUIDField(required=False, allow_null=True)
    client_key = serializers.CharField(required=False, allow_null=True, max_length=64)
    description = serializers.CharField()
    priority = serializers.ChoiceField(choices=['ROUTINE', 'URGENT', 'STAT'], required=False, allow_null=True)
    due_date = CalendarDateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class SaveVisitSerializer(serializers.Serializer):
    booklet = serializers.UUIDField()
    entry_id = serializers.UUIDField(required=False, allow_null=True)
    expected_version = serializers.IntegerField(required=False, allow_null=True)
    visit_date = CalendarDateField(required=False, allow_null=True)
    entry = EntryFieldsSerializer(required=False, default=dict)
    medications = MedicationDraftSerializer(many=True, required=False, default=list)
    lab_requests = LabDraftSerializer(many=True, required=False, default=list)
    deleted_medication_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)
    deleted_lab_ids = serializers.ListField(child=serializers.UUIDField(), required=False, default=list)


class SaveVisitResultSerializer(serializers.Serializer):
    entry = MedicalEntrySerializer()
    created = serializers.BooleanField()
    medications = MedicationSerializer(many=True)
    lab_requests = LabRequestSerializer(many=True)
    deleted_medication_ids = serializers.ListField(child=serializers.UUIDField())
    deleted_lab_ids = serializers.ListField(child=serializers.UUIDField())
