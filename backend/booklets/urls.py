from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import BookletViewSet

router = DefaultRouter()
router.register(r'booklets', BookletViewSet, basename='booklets')

urlpatterns = [
    path('', include(router.urls)),
]
