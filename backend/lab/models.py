from django.conf import settings
from django.db import models
from django.db.models import Q

from core.models import VersionedModel


class LabRequest(VersionedModel):
    STATUS_CHOICES = (
        ('PENDING', 'Pending'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    )
    PRIORITY_CHOICES = (
        ('ROUTINE', 'Routine'),
        ('URGENT', 'Urgent'),
        ('STAT', 'Stat'),
    )

    booklet = models.ForeignKey('booklets.Booklet', on_delete=models.CASCADE, related_name='lab_requests')
    medical_entry = models.ForeignKey(
        'medical.MedicalEntry',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='lab_requests'
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='requested_labs'
    )
    client_key = models.CharField(max_length=64, null=True, blank=True)

    description = models.CharField(max_length=255)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)
    requested_date = models.DateField()
    completed_date = models.DateField(null=True, blank=True)
    results = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    # Storage references; the files themselves live outside this service
    attachments = models.JSONField(default=list, blank=True)
    uploaded_by_mother = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='uploaded_labs'
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['medical_entry', 'client_key'],
                condition=Q(client_key__isnull=False),
                name='unique_lab_draft_key',
            ),
        ]

    @property
    def is_terminal(self):
        return self.status in ('COMPLETED', 'CANCELLED')

    def __str__(self):
        return f"{self.description} - {self.status}"
