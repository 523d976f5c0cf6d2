from django.urls import path
from .views import BookletTimelineView, BookletSummaryView, MyPatientsView

urlpatterns = [
    path('booklets/<uuid:booklet_id>/', BookletTimelineView.as_view(), name='booklet-timeline'),
    path('booklets/<uuid:booklet_id>/summary/', BookletSummaryView.as_view(), name='booklet-summary'),
    path('my-patients/', MyPatientsView.as_view(), name='my-patients'),
]
