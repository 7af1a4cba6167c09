# accounts/views.py
from django.contrib.auth import get_user_model
from rest_framework import permissions, generics
from rest_framework.generics import get_object_or_404

from entanglements.services import EntanglementTracker
from .serializers import (
    RegisterSerializer,
    MeSerializer,
    PublicUserSerializer,
    CommunityMemberSerializer,
)
from .throttling import RegisterThrottle
from .services import community_members
from .utils import normalize_username

User = get_user_model()


class RegisterView(generics.CreateAPIView):
    """
    POST /api/v1/auth/register/
    Public sign-up; throttled separately from the rest of the API.
    """
    permission_classes = [permissions.AllowAny]
    throttle_classes = [RegisterThrottle]
    serializer_class = RegisterSerializer


class MeView(generics.RetrieveUpdateAPIView):
    """
    GET/PUT/PATCH /api/v1/user/me/
    """
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = MeSerializer

    def get_object(self):
        return self.request.user


class PublicUserView(generics.RetrieveAPIView):
    """
    GET /api/v1/users/<username>/
    """
    permission_classes = [permissions.AllowAny]
    serializer_class = PublicUserSerializer

    def get_object(self):
        username = normalize_username(self.kwargs.get("username"))
        return get_object_or_404(User, username__iexact=username, is_active=True)


class CommunityView(generics.ListAPIView):
    """
    GET /api/v1/community/?q=<terms>
    Member directory. Each card carries the viewer's entanglement status;
    the viewer's connections are loaded once per request.
    """
    permission_classes = [permissions.AllowAny]
    serializer_class = CommunityMemberSerializer

    def get_queryset(self):
        return community_members(self.request.user, self.request.query_params.get("q", ""))

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["entanglements"] = EntanglementTracker.for_user(self.request.user)
        return context
