from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator
from django.db import models
from django.db.models import Q

from core.models import BaseModel, VersionedModel


class MedicationQuerySet(models.QuerySet):
    def active_on(self, day):
        """SQL form of engine.is_active_on, for list screens."""
        return self.filter(is_active=True, start_date__lte=day).filter(
            Q(end_date__isnull=True) | Q(end_date__gte=day)
        )


class Medication(VersionedModel):
    FREQUENCY_CHOICES = (
        (1, 'Once a day'),
        (2, 'Twice a day'),
        (3, 'Three times a day'),
        (4, 'As needed'),
    )

    booklet = models.ForeignKey('booklets.Booklet', on_delete=models.CASCADE, related_name='medications')
    medical_entry = models.ForeignKey(
        'medical.MedicalEntry',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='medications'
    )
    # Client-generated draft key; a re-submitted draft is not inserted twice
    client_key = models.CharField(max_length=64, null=True, blank=True)

    name = models.CharField(max_length=255)
    generic_name = models.CharField(max_length=255, blank=True)
    dosage = models.CharField(max_length=100)
    instructions = models.TextField(blank=True)
    start_date = models.DateField()
    end_date = models.DateField(null=True, blank=True)
    frequency_per_day = models.PositiveSmallIntegerField(
        choices=FREQUENCY_CHOICES,
        validators=[MinValueValidator(1), MaxValueValidator(4)]
    )
    times_of_day = models.JSONField(default=list, blank=True)
    # Only an explicit stop clears this; a past end_date does not.
    # Read it through medications.engine.is_active_on, never on its own.
    is_active = models.BooleanField(default=True)

    objects = MedicationQuerySet.as_manager()

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['medical_entry', 'client_key'],
                condition=Q(client_key__isnull=False),
                name='unique_medication_draft_key',
            ),
        ]

    def __str__(self):
        return f"{self.name} {self.dosage}"


class MedicationIntakeLog(BaseModel):
    STATUS_CHOICES = (
        ('TAKEN', 'Taken'),
        ('MISSED', 'Missed'),
        ('SKIPPED', 'Skipped'),
    )

    medication = models.ForeignKey(Medication, on_delete=models.CASCADE, related_name='intake_logs')
    scheduled_date = models.DateField()
    dose_index = models.PositiveSmallIntegerField()
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    taken_at = models.DateTimeField(null=True, blank=True)
    recorded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, related_name='+')
    notes = models.TextField(blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['medication', 'scheduled_date', 'dose_index'],
                name='one_log_per_dose_slot',
            ),
        ]

    def __str__(self):
        return f"{self.medication.name} {self.scheduled_date} #{self.dose_index} {self.status}"
