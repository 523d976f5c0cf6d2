from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import (
    TokenObtainPairView,
    TokenRefreshView,
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/users/', include('users.urls')),
    path('api/', include('booklets.urls')),
    path('api/medical/', include('medical.urls')),
    path('api/medications/', include('medications.urls')),
    path('api/lab/', include('lab.urls')),
    path('api/timeline/', include('timeline.urls')),
]
