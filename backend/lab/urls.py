from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import LabRequestViewSet

router = DefaultRouter()
router.register(r'requests', LabRequestViewSet, basename='lab-requests')

urlpatterns = [
    path('', include(router.urls)),
]
