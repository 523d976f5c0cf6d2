from django.conf import settings
from django.db import models

from core.models import VersionedModel


class MedicalEntry(VersionedModel):
    """One visit record written by a doctor into a booklet."""
    ENTRY_TYPE_CHOICES = (
        ('PRENATAL_CHECKUP', 'Prenatal Checkup'),
        ('POSTNATAL_CHECKUP', 'Postnatal Checkup'),
        ('ULTRASOUND', 'Ultrasound'),
        ('LAB_REVIEW', 'Lab Review'),
        ('CONSULTATION', 'Consultation'),
        ('EMERGENCY', 'Emergency'),
        ('DELIVERY', 'Delivery'),
        ('OTHER', 'Other'),
    )
    RISK_CHOICES = (
        ('LOW', 'Low'),
        ('HIGH', 'High'),
    )
    VITAL_KEYS = (
        'blood_pressure', 'weight', 'temperature', 'heart_rate',
        'fetal_heart_rate', 'fundal_height', 'aog',
    )

    booklet = models.ForeignKey('booklets.Booklet', on_delete=models.CASCADE, related_name='entries')
    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='medical_entries')
    entry_type = models.CharField(max_length=30, choices=ENTRY_TYPE_CHOICES)
    visit_date = models.DateField()
    notes = models.TextField(blank=True)
    # {"blood_pressure": "120/80", "weight": 62.5, "aog": "24 weeks 3 days", ...}
    vitals = models.JSONField(default=dict, blank=True)
    diagnosis = models.TextField(blank=True)
    recommendations = models.TextField(blank=True)
    risk_level = models.CharField(max_length=10, choices=RISK_CHOICES, null=True, blank=True)
    follow_up_date = models.DateField(null=True, blank=True)
    attachments = models.JSONField(default=list, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=['booklet', 'visit_date']),
        ]

    def __str__(self):
        return f"{self.get_entry_type_display()} on {self.visit_date}"
