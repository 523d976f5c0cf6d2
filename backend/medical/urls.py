from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import MedicalEntryViewSet, SaveVisitView

router = DefaultRouter()
router.register(r'entries', MedicalEntryViewSet, basename='medical-entries')

urlpatterns = [
    path('save-visit/', SaveVisitView.as_view(), name='save-visit'),
    path('', include(router.urls)),
]
