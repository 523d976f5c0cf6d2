from datetime import timedelta

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.dates import compute_aog, due_date_from_lmp
from core.models import BaseModel, VersionedModel


class Booklet(VersionedModel):
    STATUS_CHOICES = (
        ('ACTIVE', 'Active'),
        ('COMPLETED', 'Completed'),
        ('ARCHIVED', 'Archived'),
    )
    RISK_CHOICES = (
        ('LOW', 'Low'),
        ('HIGH', 'High'),
    )

    mother = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='booklets')
    label = models.CharField(max_length=255)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')

    last_menstrual_period = models.DateField(null=True, blank=True)
    expected_due_date = models.DateField(null=True, blank=True)
    actual_delivery_date = models.DateField(null=True, blank=True)
    # Copied from the latest entry that set one
    current_risk_level = models.CharField(max_length=10, choices=RISK_CHOICES, null=True, blank=True)

    notes = models.TextField(blank=True)
    allergies = models.JSONField(default=list, blank=True)
    # [{"condition": "...", "notes": "...", "diagnosed_year": 2019}, ...]
    medical_history = models.JSONField(default=list, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['mother'],
                condition=Q(status='ACTIVE'),
                name='one_active_booklet_per_mother',
            ),
        ]

    def __str__(self):
        return f"{self.label} ({self.get_status_display()})"

    @property
    def effective_due_date(self):
        return self.expected_due_date or due_date_from_lmp(self.last_menstrual_period)

    def aog_on(self, on=None):
        return compute_aog(self.effective_due_date, on)

    def active_access_for(self, doctor):
        return self.access_records.filter(doctor=doctor, revoked_at__isnull=True).first()

    def is_visible_to(self, user):
        if not (user and user.is_authenticated):
            return False
        if user.is_superuser or getattr(user, 'role', None) == 'ADMIN':
            return True
        if self.mother_id == user.id:
            return True
        return self.active_access_for(user) is not None


class BookletAccess(BaseModel):
    booklet = models.ForeignKey(Booklet, on_delete=models.PROTECT, related_name='access_records')
    doctor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='booklet_access')
    granted_at = models.DateTimeField(default=timezone.now)
    revoked_at = models.DateTimeField(null=True, blank=True)
    # The doctor's own chart number for this patient; a label, never a key
    patient_label = models.CharField(max_length=100, null=True, blank=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['booklet', 'doctor'],
                condition=Q(revoked_at__isnull=True),
                name='one_active_access_per_doctor',
            ),
        ]

    @property
    def is_active(self):
        return self.revoked_at is None

    def __str__(self):
        state = 'active' if self.is_active else 'revoked'
        return f"{self.doctor} -> {self.booklet_id} ({state})"


def default_token_expiry():
    return timezone.now() + timedelta(minutes=settings.ACCESS_TOKEN_TTL_MINUTES)


class AccessToken(BaseModel):
    """Single-use hand-off token a mother shows (as a QR code) to a doctor."""
    booklet = models.ForeignKey(Booklet, on_delete=models.CASCADE, related_name='access_tokens')
    expires_at = models.DateTimeField(default=default_token_expiry)
    used_at = models.DateTimeField(null=True, blank=True)
    used_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)

    def is_expired(self, now=None):
        return self.expires_at < (now or timezone.now())

    def __str__(self):
        return f"Token {self.id} for {self.booklet_id}"
