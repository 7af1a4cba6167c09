"""
Entanglement services.

Handles all business logic for:
- Loading the connections that touch the current viewer
- Projecting a viewer-relative status for any other member
- Sending, accepting, declining and removing entanglements
- Read helpers for the entangled list and incoming requests

EntanglementTracker keeps a per-viewer index of connections keyed by the
other member's id. The index is a cache: successful writes update it with
the row the store returned, failed writes invalidate the affected pair by
re-reading it from the store.
"""

import logging
import uuid

from django.conf import settings
from django.db.models import Q

from .models import Connection
from .status import ConnectionStatus, get_connection_status, index_connections, other_participant
from .store import ConnectionStore, ConnectionStoreError, StaleConnectionError

logger = logging.getLogger(__name__)


# ==================== Custom Exceptions ====================

class EntanglementError(Exception):
    """Base exception for entanglement operations."""
    pass


class AuthenticationRequired(EntanglementError):
    """The action needs a signed-in viewer."""
    pass


# ==================== Decline Policy ====================

class DeclinePolicy:
    RETAIN = "retain"
    FORGET = "forget"

    choices = (RETAIN, FORGET)

    @classmethod
    def from_settings(cls):
        policy = getattr(settings, "ENTANGLEMENT_DECLINE_POLICY", cls.RETAIN)
        if policy not in cls.choices:
            raise ValueError(f"Unknown ENTANGLEMENT_DECLINE_POLICY: {policy!r}")
        return policy


# ==================== Tracker ====================

class EntanglementTracker:
    """Connection state for one viewer (None for anonymous visitors)."""

    def __init__(self, viewer_id, store=None, decline_policy=None):
        self.viewer_id = viewer_id
        self.store = store or ConnectionStore()
        self.decline_policy = decline_policy or DeclinePolicy.from_settings()
        if self.decline_policy not in DeclinePolicy.choices:
            raise ValueError(f"Unknown decline policy: {self.decline_policy!r}")
        self.connections_by_other_id = {}
        self._in_flight = set()

    @classmethod
    def for_user(cls, user, **kwargs):
        """Build and load a tracker for a request user (anonymous allowed)."""
        viewer_id = user.pk if user is not None and user.is_authenticated else None
        tracker = cls(viewer_id, **kwargs)
        tracker.load()
        return tracker

    # ---- Helpers ----

    def get_status(self, other_id) -> ConnectionStatus:
        return get_connection_status(self.connections_by_other_id, self.viewer_id, other_id)

    def get_connection(self, other_id):
        return self.connections_by_other_id.get(str(other_id))

    def is_loading(self, other_id) -> bool:
        return str(other_id) in self._in_flight

    def _require_viewer(self):
        if self.viewer_id is None:
            raise AuthenticationRequired("Sign in to manage entanglements.")

    def _is_self(self, other_id) -> bool:
        try:
            return uuid.UUID(str(other_id)) == uuid.UUID(str(self.viewer_id))
        except ValueError:
            return str(other_id) == str(self.viewer_id)

    def _remember(self, other_id, connection):
        self.connections_by_other_id[str(other_id)] = connection

    def _forget(self, other_id):
        self.connections_by_other_id.pop(str(other_id), None)

    # ---- Load / sync ----

    def load(self):
        """Replace the index with every connection touching the viewer."""
        if self.viewer_id is None:
            self.connections_by_other_id = {}
            return self.connections_by_other_id

        try:
            rows = self.store.for_user(self.viewer_id)
        except ConnectionStoreError as e:
            logger.error(f"Error loading entanglement connections for {self.viewer_id}: {e}")
            self.connections_by_other_id = {}
            return self.connections_by_other_id

        self.connections_by_other_id = index_connections(rows, self.viewer_id)
        logger.debug(
            f"Loaded {len(self.connections_by_other_id)} connections for {self.viewer_id}"
        )
        return self.connections_by_other_id

    def invalidate(self, other_id):
        """Re-read the authoritative row for one pair; drop it if that fails."""
        if self.viewer_id is None:
            return
        try:
            row = self.store.between(self.viewer_id, other_id)
        except ConnectionStoreError as e:
            logger.error(f"Error refreshing connection {self.viewer_id}/{other_id}: {e}")
            self._forget(other_id)
            return
        if row is None:
            self._forget(other_id)
        else:
            self._remember(other_id, row)

    # ---- Actions ----

    def entangle(self, other_id) -> ConnectionStatus:
        """
        Send a request, or accept the one the other member sent.

        No-op for self, for a target already in flight, and when the pair is
        already accepted or waiting on the other member.
        """
        self._require_viewer()

        if self._is_self(other_id) or self.is_loading(other_id):
            return self.get_status(other_id)

        current_row = self.get_connection(other_id)
        current_status = self.get_status(other_id)

        if current_status in (ConnectionStatus.ACCEPTED, ConnectionStatus.PENDING_OUTGOING):
            return current_status

        self._in_flight.add(str(other_id))
        try:
            if current_status == ConnectionStatus.PENDING_INCOMING and current_row is not None:
                row = self.store.set_status(
                    current_row.pk,
                    Connection.Status.ACCEPTED,
                    expected=Connection.Status.PENDING,
                )
                logger.info(f"{self.viewer_id} accepted entanglement from {other_id}")
            else:
                row = self.store.create(self.viewer_id, other_id)
                logger.info(f"{self.viewer_id} requested entanglement with {other_id}")
            self._remember(other_id, row)
        except ConnectionStoreError as e:
            logger.error(f"Error creating/accepting entanglement with {other_id}: {e}")
            self.invalidate(other_id)
        finally:
            self._in_flight.discard(str(other_id))

        return self.get_status(other_id)

    def decline(self, other_id) -> ConnectionStatus:
        """Decline an incoming request; anything else is a no-op."""
        self._require_viewer()

        current_row = self.get_connection(other_id)
        if current_row is None or self.get_status(other_id) != ConnectionStatus.PENDING_INCOMING:
            return self.get_status(other_id)
        if self.is_loading(other_id):
            return self.get_status(other_id)

        self._in_flight.add(str(other_id))
        try:
            if self.decline_policy == DeclinePolicy.FORGET:
                self._decline_and_forget(other_id, current_row)
            else:
                self._decline_and_retain(other_id, current_row)
        finally:
            self._in_flight.discard(str(other_id))

        return self.get_status(other_id)

    def _decline_and_retain(self, other_id, row):
        try:
            declined = self.store.set_status(
                row.pk,
                Connection.Status.DECLINED,
                expected=Connection.Status.PENDING,
            )
        except ConnectionStoreError as e:
            logger.error(f"Error declining entanglement from {other_id}: {e}")
            self.invalidate(other_id)
            return
        logger.info(f"{self.viewer_id} declined entanglement from {other_id}")
        self._remember(other_id, declined)

    def _decline_and_forget(self, other_id, row):
        try:
            self.store.set_status(
                row.pk,
                Connection.Status.DECLINED,
                expected=Connection.Status.PENDING,
            )
        except StaleConnectionError as e:
            # The row already left pending; only remove() deletes it.
            logger.error(f"Error declining entanglement from {other_id}: {e}")
            self.invalidate(other_id)
            return
        except ConnectionStoreError as e:
            logger.error(f"Error declining entanglement, falling back to delete: {e}")
            try:
                self.store.delete(row.pk)
            except ConnectionStoreError as delete_error:
                logger.error(f"Error deleting entanglement on decline: {delete_error}")
                self.invalidate(other_id)
                return
        logger.info(f"{self.viewer_id} declined entanglement from {other_id}")
        self._forget(other_id)

    def remove(self, other_id, connection_id=None) -> ConnectionStatus:
        """
        Delete a connection with another member (either side may do this).

        Defaults to the row currently indexed for the pair. Afterwards the
        pair is re-read, so an older row for the same pair may surface.
        """
        self._require_viewer()

        if connection_id is None:
            row = self.get_connection(other_id)
            connection_id = row.pk if row is not None else None
        if connection_id is None or self._is_self(other_id) or self.is_loading(other_id):
            return self.get_status(other_id)

        self._in_flight.add(str(other_id))
        try:
            self.store.delete(connection_id)
            logger.info(f"{self.viewer_id} removed connection {connection_id} with {other_id}")
        except ConnectionStoreError as e:
            logger.error(f"Error removing connection with {other_id}: {e}")
        finally:
            self._in_flight.discard(str(other_id))

        self.invalidate(other_id)
        return self.get_status(other_id)


# ==================== Read Helpers ====================

def entangled_user_ids(user_id) -> list:
    """Distinct members with an accepted connection to the user."""
    rows = Connection.objects.filter(
        Q(requester_id=user_id) | Q(target_id=user_id),
        status=Connection.Status.ACCEPTED,
    ).order_by('-updated_at')
    seen = []
    for row in rows:
        other = other_participant(row, user_id)
        if other not in seen and str(other) != str(user_id):
            seen.append(other)
    return seen


def pending_requests(user_id):
    """Incoming pending requests, newest first."""
    return (
        Connection.objects.filter(target_id=user_id, status=Connection.Status.PENDING)
        .select_related('requester')
        .order_by('-created_at')
    )


def pending_request_count(user_id) -> int:
    return Connection.objects.filter(target_id=user_id, status=Connection.Status.PENDING).count()


def recent_entanglements(user_id, limit=30):
    """Settled (accepted or declined) connections on either side, newest first."""
    return (
        Connection.objects.filter(
            Q(requester_id=user_id) | Q(target_id=user_id),
            status__in=[Connection.Status.ACCEPTED, Connection.Status.DECLINED],
        )
        .select_related('requester', 'target')
        .order_by('-created_at')[:limit]
    )
