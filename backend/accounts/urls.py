# accounts/urls.py
"""
URL configuration for authentication.

Endpoints:
- /token/ - Obtain JWT access/refresh pair
- /token/refresh/ - Refresh an access token
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path("token/", TokenObtainPairView.as_view(), name="token-obtain"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token-refresh"),
]
