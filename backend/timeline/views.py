from rest_framework import permissions
from rest_framework.response import Response
from rest_framework.views import APIView

from booklets.models import Booklet
from booklets.views import booklets_visible_to
from core import dates
from core.exceptions import DomainValidationError, get_or_not_found
from lab.serializers import LabRequestSerializer
from medical.serializers import MedicalEntrySerializer
from medications.serializers import MedicationSerializer
from .aggregation import group_by_calendar_date, resolve_selection, summarize_booklet


class BaseTimelineView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get_booklet(self, request, booklet_id):
        return get_or_not_found(
            Booklet, booklet_id, resource='Booklet',
            queryset=booklets_visible_to(request.user),
        )

    def get_requested_date(self, request):
        value = request.query_params.get('date')
        if not value or value in ('null', 'undefined'):
            return None
        try:
            return dates.date_key(value)
        except ValueError:
            raise DomainValidationError("date must be YYYY-MM-DD.", field='date')


class BookletTimelineView(BaseTimelineView):
    """
    Entries and lab requests grouped by calendar day, newest first, plus the
    full detail of one selected day (the most recent unless ``?date=`` picks
    another day that has records).
    """
    def get(self, request, booklet_id):
        booklet = self.get_booklet(request, booklet_id)
        entries = list(booklet.entries.select_related('doctor').order_by('created_at'))
        labs = list(booklet.lab_requests.select_related('requested_by').order_by('created_at'))

        entry_groups = group_by_calendar_date(entries, 'visit_date')
        lab_groups = group_by_calendar_date(labs, 'requested_date')
        days = sorted({day for day, _ in entry_groups} | {day for day, _ in lab_groups}, reverse=True)
        selected = resolve_selection(days, self.get_requested_date(request))

        selected_entries = dict(entry_groups).get(selected, [])
        selected_medications = booklet.medications.filter(
            medical_entry__in=selected_entries
        ).prefetch_related('intake_logs').order_by('created_at')

        return Response({
            "booklet": str(booklet.pk),
            "dates": days,
            "selected_date": selected,
            "entries": [
                {"date": day, "items": MedicalEntrySerializer(items, many=True).data}
                for day, items in entry_groups
            ],
            "lab_requests": [
                {"date": day, "items": LabRequestSerializer(items, many=True).data}
                for day, items in lab_groups
            ],
            "selected": {
                "entries": MedicalEntrySerializer(selected_entries, many=True).data,
                "medications": MedicationSerializer(selected_medications, many=True).data,
                "lab_requests": LabRequestSerializer(dict(lab_groups).get(selected, []), many=True).data,
            },
        })


class BookletSummaryView(BaseTimelineView):
    def get(self, request, booklet_id):
        booklet = self.get_booklet(request, booklet_id)
        return Response(summarize_booklet(booklet).as_dict())


class MyPatientsView(BaseTimelineView):
    """
    Doctors: every booklet they currently have access to, with their own
    patient label. Mothers: their own booklets.
    """
    def get(self, request):
        user = request.user
        booklets = booklets_visible_to(user).prefetch_related('entries', 'medications', 'lab_requests')
        status = request.query_params.get('status')
        if status:
            booklets = booklets.filter(status=status.upper())

        labels = {}
        if getattr(user, 'role', None) == 'DOCTOR':
            labels = dict(
                user.booklet_access.filter(revoked_at__isnull=True).values_list('booklet_id', 'patient_label')
            )

        results = []
        for booklet in booklets.order_by('-created_at'):
            summary = summarize_booklet(booklet).as_dict()
            summary.update({
                "label": booklet.label,
                "status": booklet.status,
                "mother": str(booklet.mother_id),
                "mother_name": booklet.mother.display_name,
                "patient_label": labels.get(booklet.pk),
            })
            results.append(summary)
        return Response(results)
