from django.contrib import admin
from .models import Medication, MedicationIntakeLog


class MedicationIntakeLogInline(admin.TabularInline):
    model = MedicationIntakeLog
    extra = 0


@admin.register(Medication)
class MedicationAdmin(admin.ModelAdmin):
    list_display = ('name', 'dosage', 'booklet', 'start_date', 'end_date', 'frequency_per_day', 'is_active')
    list_filter = ('is_active', 'frequency_per_day')
    search_fields = ('name', 'generic_name')
    inlines = [MedicationIntakeLogInline]
