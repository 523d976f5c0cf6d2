from django.contrib import admin
from .models import MedicalEntry


@admin.register(MedicalEntry)
class MedicalEntryAdmin(admin.ModelAdmin):
    list_display = ('entry_type', 'booklet', 'doctor', 'visit_date', 'risk_level', 'follow_up_date')
    list_filter = ('entry_type', 'risk_level')
    search_fields = ('diagnosis', 'notes')
