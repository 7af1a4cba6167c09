"""
Connection store: the only place that reads or writes Connection rows.

Every database failure leaves this module as a ConnectionStoreError so the
tracker has a single exception family to handle.
"""

import logging
from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .models import Connection

logger = logging.getLogger(__name__)


class ConnectionStoreError(Exception):
    """Base exception for connection store operations."""
    pass


class DuplicateConnectionError(ConnectionStoreError):
    """An open connection already exists for this pair."""
    pass


class StaleConnectionError(ConnectionStoreError):
    """The row was missing or no longer in the expected status."""
    pass


class ConnectionStore:
    """ORM-backed implementation of the connection record operations."""

    def for_user(self, user_id):
        """All connections where the user is requester or target, oldest first."""
        try:
            return list(
                Connection.objects.filter(Q(requester_id=user_id) | Q(target_id=user_id))
                .order_by('created_at')
            )
        except DatabaseError as e:
            raise ConnectionStoreError(f"Could not load connections for {user_id}: {e}") from e

    def between(self, user_a_id, user_b_id):
        """Newest connection for the unordered pair, or None."""
        low, high = Connection.ordered_pair(user_a_id, user_b_id)
        try:
            return (
                Connection.objects.filter(user_low_id=low, user_high_id=high)
                .order_by('-created_at')
                .first()
            )
        except DatabaseError as e:
            raise ConnectionStoreError(f"Could not load connection {low}/{high}: {e}") from e

    def create(self, requester_id, target_id):
        """Insert a pending connection."""
        try:
            with transaction.atomic():
                return Connection.objects.create(
                    requester_id=requester_id,
                    target_id=target_id,
                    status=Connection.Status.PENDING,
                )
        except IntegrityError as e:
            raise DuplicateConnectionError(
                f"Connection between {requester_id} and {target_id} already open"
            ) from e
        except DatabaseError as e:
            raise ConnectionStoreError(f"Could not create connection: {e}") from e

    def set_status(self, connection_id, status, expected=None):
        """
        Set the status of one row and return the refreshed row.

        With `expected`, the write only applies while the row is still in
        that status (compare-and-swap); otherwise StaleConnectionError.
        """
        try:
            with transaction.atomic():
                qs = Connection.objects.filter(pk=connection_id)
                if expected is not None:
                    qs = qs.filter(status=expected)
                updated = qs.update(status=status, updated_at=timezone.now())
                if not updated:
                    raise StaleConnectionError(
                        f"Connection {connection_id} not found with status {expected or 'any'}"
                    )
                return Connection.objects.get(pk=connection_id)
        except ConnectionStoreError:
            raise
        except DatabaseError as e:
            raise ConnectionStoreError(f"Could not update connection {connection_id}: {e}") from e

    def delete(self, connection_id):
        try:
            deleted, _ = Connection.objects.filter(pk=connection_id).delete()
        except DatabaseError as e:
            raise ConnectionStoreError(f"Could not delete connection {connection_id}: {e}") from e
        if not deleted:
            raise StaleConnectionError(f"Connection {connection_id} not found")
        logger.debug(f"Deleted connection {connection_id}")
