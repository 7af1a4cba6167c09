"""
Entanglement API views.

Thin viewsets that delegate state transitions to EntanglementTracker.
Precondition misses (self-target, wrong status for the action) are not
errors here: the endpoint answers with the unchanged status.
"""

from django.contrib.auth import get_user_model
from django.db.models import Q
from rest_framework.generics import get_object_or_404
from rest_framework import mixins, viewsets, permissions, status
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.serializers import UserSerializer
from .models import Connection
from .serializers import ConnectionSerializer, CountSerializer, EntanglementStatusSerializer
from .services import (
    EntanglementTracker,
    entangled_user_ids,
    pending_requests,
    pending_request_count,
    recent_entanglements,
)
from .status import other_participant

User = get_user_model()


class ConnectionViewSet(mixins.ListModelMixin,
                        mixins.RetrieveModelMixin,
                        mixins.DestroyModelMixin,
                        viewsets.GenericViewSet):
    """
    ViewSet for connection rows the current user takes part in.

    Endpoints:
    - GET    /api/v1/connections/                 - List sent and received connections.
    - GET    /api/v1/connections/{id}/            - Retrieve a specific connection.
    - DELETE /api/v1/connections/{id}/            - Remove a connection (either participant).
    - POST   /api/v1/connections/{id}/accept/     - Accept a received request.
    - POST   /api/v1/connections/{id}/decline/    - Decline a received request.
    - GET    /api/v1/connections/requests/        - Incoming pending requests.
    - GET    /api/v1/connections/requests/count/  - Number of incoming pending requests.
    - GET    /api/v1/connections/recent/          - Recently accepted or declined connections.
    """
    serializer_class = ConnectionSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        return (
            Connection.objects.filter(Q(requester=user) | Q(target=user))
            .select_related('requester', 'target')
        )

    def _tracker(self):
        return EntanglementTracker.for_user(self.request.user)

    def _respond(self, request, accept):
        connection = self.get_object()
        verb = 'accept' if accept else 'decline'
        if connection.target_id != request.user.pk:
            return Response(
                {'error': f'You are not authorized to {verb} this request.'},
                status=status.HTTP_403_FORBIDDEN
            )

        if connection.status != Connection.Status.PENDING:
            return Response(
                {'error': 'This request is no longer pending.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        tracker = self._tracker()
        if accept:
            tracker.entangle(connection.requester_id)
        else:
            tracker.decline(connection.requester_id)

        row = tracker.get_connection(connection.requester_id)
        if row is None:
            # Forgotten by the decline policy; report the stored row as it is now.
            row = Connection.objects.filter(pk=connection.pk).first()
        if row is None:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return Response(self.get_serializer(row).data)

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        """Accept a connection request addressed to the current user."""
        return self._respond(request, accept=True)

    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        """Decline a connection request addressed to the current user."""
        return self._respond(request, accept=False)

    def destroy(self, request, *args, **kwargs):
        """
        Either participant may remove the connection.
        The queryset already limits rows to ones the user takes part in.
        """
        connection = self.get_object()
        tracker = self._tracker()
        tracker.remove(other_participant(connection, request.user.pk), connection_id=connection.pk)
        if Connection.objects.filter(pk=connection.pk).exists():
            return Response(
                {'error': 'Could not remove this connection.'},
                status=status.HTTP_409_CONFLICT
            )
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'])
    def requests(self, request):
        rows = pending_requests(request.user.pk)
        serializer = self.get_serializer(
            rows, many=True, fields=['id', 'requester', 'status', 'created_at']
        )
        return Response(serializer.data)

    @action(detail=False, methods=['get'], url_path='requests/count')
    def requests_count(self, request):
        return Response(CountSerializer({'count': pending_request_count(request.user.pk)}).data)

    @action(detail=False, methods=['get'])
    def recent(self, request):
        rows = recent_entanglements(request.user.pk)
        serializer = self.get_serializer(
            rows, many=True, fields=['id', 'other_user', 'status', 'sent_by_viewer', 'created_at']
        )
        return Response(serializer.data)


class EntanglementViewSet(viewsets.ViewSet):
    """
    Member-addressed entanglement actions.

    Endpoints:
    - GET  /api/v1/entanglements/                     - Members the user is entangled with.
    - GET  /api/v1/entanglements/{user_id}/           - Viewer-relative status with a member.
    - POST /api/v1/entanglements/{user_id}/entangle/  - Send or accept a request.
    - POST /api/v1/entanglements/{user_id}/decline/   - Decline an incoming request.
    """
    permission_classes = [permissions.IsAuthenticated]
    lookup_field = 'user_id'
    lookup_value_regex = '[0-9a-fA-F-]{32,36}'

    def _other(self, user_id):
        return get_object_or_404(User, pk=user_id, is_active=True)

    def list(self, request):
        ids = entangled_user_ids(request.user.pk)
        users = {u.pk: u for u in User.objects.filter(pk__in=ids)}
        ordered = [users[i] for i in ids if i in users]
        return Response(UserSerializer(ordered, many=True, context={'request': request}).data)

    def retrieve(self, request, user_id=None):
        other = self._other(user_id)
        tracker = EntanglementTracker.for_user(request.user)
        return Response(EntanglementStatusSerializer.from_tracker(tracker, other.pk).data)

    @action(detail=True, methods=['post'])
    def entangle(self, request, user_id=None):
        other = self._other(user_id)
        tracker = EntanglementTracker.for_user(request.user)
        tracker.entangle(other.pk)
        return Response(EntanglementStatusSerializer.from_tracker(tracker, other.pk).data)

    @action(detail=True, methods=['post'])
    def decline(self, request, user_id=None):
        other = self._other(user_id)
        tracker = EntanglementTracker.for_user(request.user)
        tracker.decline(other.pk)
        return Response(EntanglementStatusSerializer.from_tracker(tracker, other.pk).data)
