from django.conf import settings
from rest_framework import serializers

from core import dates
from core.serializers import CalendarDateField
from . import engine
from .models import Medication, MedicationIntakeLog


class MedicationIntakeLogSerializer(serializers.ModelSerializer):
    scheduled_date = CalendarDateField(read_only=True)

    class Meta:
        model = MedicationIntakeLog
        fields = ['id', 'medication', 'scheduled_date', 'dose_index', 'status', 'taken_at', 'recorded_by', 'notes', 'created_at']
        read_only_fields = fields


class MedicationSerializer(serializers.ModelSerializer):
    """Stored fields plus the window answers computed for today."""
    start_date = CalendarDateField(read_only=True)
    end_date = CalendarDateField(read_only=True)
    stopped = serializers.SerializerMethodField()
    is_active = serializers.SerializerMethodField()
    status = serializers.SerializerMethodField()
    days_remaining = serializers.SerializerMethodField()
    days_remaining_display = serializers.SerializerMethodField()
    schedule = serializers.SerializerMethodField()
    adherence_rate = serializers.SerializerMethodField()

    class Meta:
        model = Medication
        fields = [
            'id', 'booklet', 'medical_entry', 'name', 'generic_name', 'dosage', 'instructions',
            'start_date', 'end_date', 'frequency_per_day', 'schedule',
            'stopped', 'is_active', 'status', 'days_remaining', 'days_remaining_display',
            'adherence_rate', 'version', 'created_at',
        ]
        read_only_fields = fields

    def _today(self):
        return self.context.get('today') or dates.today()

    def get_stopped(self, obj):
        return not obj.is_active

    def get_is_active(self, obj):
        return engine.is_active_on(obj, self._today())

    def get_status(self, obj):
        return engine.medication_status(obj, self._today())

    def get_days_remaining(self, obj):
        return dates.days_remaining(obj.end_date, self._today())

    def get_days_remaining_display(self, obj):
        return dates.format_days_remaining(dates.days_remaining(obj.end_date, self._today()))

    def get_schedule(self, obj):
        return engine.dose_schedule(obj)

    def get_adherence_rate(self, obj):
        return engine.compute_adherence(
            obj, obj.intake_logs.all(),
            window_days=settings.ADHERENCE_WINDOW_DAYS,
            today=self._today(),
        )


class ExtendMedicationSerializer(serializers.Serializer):
    end_date = CalendarDateField()
    expected_version = serializers.IntegerField(required=False)


class StopMedicationSerializer(serializers.Serializer):
    effective_date = CalendarDateField(required=False, allow_null=True)
    expected_version = serializers.IntegerField(required=False)


class LogIntakeSerializer(serializers.Serializer):
    dose_index = serializers.IntegerField(min_value=0)
    status = serializers.ChoiceField(choices=[c[0] for c in MedicationIntakeLog.STATUS_CHOICES])
    scheduled_date = CalendarDateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def to_internal_value(self, data):
        if hasattr(data, 'copy') and isinstance(data.get('status'), str):
            data = data.copy()
            data['status'] = data['status'].upper()
        return super().to_internal_value(data)
