from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),

    # API routes
    path('api/v1/', include('quantum5ocial.api_router')),  # Entanglements
    path("api/v1/", include("accounts.urls")),  # Accounts separate (for auth endpoints)

    # DRF browsable API auth
    path('api-auth/', include('rest_framework.urls')),
]
