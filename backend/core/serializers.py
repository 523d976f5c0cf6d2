from rest_framework import serializers

from .dates import date_key


class CalendarDateField(serializers.DateField):
    """
    Accepts ``YYYY-MM-DD``, an ISO-8601 instant or epoch milliseconds and
    stores the local calendar day.
    """
    default_error_messages = {
        'invalid': 'Date must be YYYY-MM-DD, an ISO-8601 timestamp or epoch milliseconds.',
    }

    def to_internal_value(self, value):
        try:
            return date_key(value)
        except ValueError:
            self.fail('invalid')
