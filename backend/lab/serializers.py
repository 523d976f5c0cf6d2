from rest_framework import serializers

from core.serializers import CalendarDateField
from .models import LabRequest


class LabRequestSerializer(serializers.ModelSerializer):
    requested_by_name = serializers.CharField(source='requested_by.display_name', read_only=True, default=None)
    requested_date = CalendarDateField(read_only=True)
    due_date = CalendarDateField(read_only=True)
    completed_date = CalendarDateField(read_only=True)

    class Meta:
        model = LabRequest
        fields = [
            'id', 'booklet', 'medical_entry', 'requested_by', 'requested_by_name',
            'description', 'status', 'priority', 'due_date', 'requested_date', 'completed_date',
            'results', 'notes', 'attachments', 'uploaded_by_mother', 'version', 'created_at',
        ]
        read_only_fields = fields


class LabRequestCreateSerializer(serializers.Serializer):
    booklet = serializers.UUIDField()
    description = serializers.CharField()
    priority = serializers.ChoiceField(choices=[c[0] for c in LabRequest.PRIORITY_CHOICES], required=False, allow_null=True)
    due_date = CalendarDateField(required=False, allow_null=True)
    requested_date = CalendarDateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class CompleteLabSerializer(serializers.Serializer):
    results = serializers.CharField(required=False, allow_blank=True, default='')
    attachments = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    completed_date = CalendarDateField(required=False, allow_null=True)
    expected_version = serializers.IntegerField(required=False)


class CancelLabSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    expected_version = serializers.IntegerField(required=False)
