import uuid
from django.db import models


class BaseModel(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class VersionedModel(BaseModel):
    """
    Carries an optimistic-concurrency token. ``version`` goes up by one on
    every save so writers can detect that someone else changed the row
    since they read it.
    """
    version = models.PositiveIntegerField(default=1)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            self.version = (self.version or 0) + 1
            update_fields = kwargs.get('update_fields')
            if update_fields is not None:
                kwargs['update_fields'] = set(update_fields) | {'version', 'updated_at'}
        super().save(*args, **kwargs)

    def check_version(self, expected_version):
        from core.exceptions import StaleRecordError

        if expected_version is None:
            return
        current = type(self).objects.filter(pk=self.pk).values_list('version', flat=True).first()
        if current != expected_version:
            raise StaleRecordError(self, expected_version, current)
