from django.urls import path, include
from rest_framework.routers import SimpleRouter
from .views import MedicationViewSet

router = SimpleRouter()
router.register(r'', MedicationViewSet, basename='medications')

urlpatterns = [
    path('', include(router.urls)),
]
