from django.contrib import admin
from .models import LabRequest


@admin.register(LabRequest)
class LabRequestAdmin(admin.ModelAdmin):
    list_display = ('description', 'booklet', 'status', 'priority', 'requested_date', 'completed_date')
    list_filter = ('status', 'priority')
    search_fields = ('description',)
