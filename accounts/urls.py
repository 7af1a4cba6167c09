from django.urls import path
from .views import (
    RegisterView,
    MeView,
    PublicUserView,
    CommunityView,
)

urlpatterns = [
    path("auth/register/", RegisterView.as_view(), name="auth-register"),
    path("user/me/", MeView.as_view(), name="user-me"),
    path("users/<str:username>/", PublicUserView.as_view(), name="user-public"),
    path("community/", CommunityView.as_view(), name="community"),
]
