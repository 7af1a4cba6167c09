import uuid
from django.conf import settings
from django.db import models
from django.db.models import Q, F


class Connection(models.Model):
    """
    A directed entanglement request between two members.

    `requester`/`target` never change after creation. `user_low`/`user_high`
    hold the same two users ordered by id so the pair can be constrained
    regardless of direction.
    """
    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        ACCEPTED = 'accepted', 'Accepted'
        DECLINED = 'declined', 'Declined'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='sent_connections'
    )
    target = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='received_connections'
    )
    # To enforce uniqueness, user_low should always have a lower ID than user_high
    user_low = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='+', editable=False
    )
    user_high = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='+', editable=False
    )
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=~Q(requester=F('target')),
                name='no_self_connection'
            ),
            models.CheckConstraint(
                condition=Q(user_low_id__lt=F('user_high_id')),
                name='connection_user_low_lt_user_high'
            ),
            # Declined rows are history; only one open connection per pair.
            models.UniqueConstraint(
                fields=['user_low', 'user_high'],
                condition=~Q(status='declined'),
                name='unique_open_connection_pair'
            ),
        ]
        indexes = [
            models.Index(fields=['target', 'status'], name='connection_target_status_idx'),
        ]
        ordering = ['created_at']

    def __str__(self):
        return f"Connection from {self.requester_id} to {self.target_id} ({self.status})"

    @staticmethod
    def ordered_pair(user_a_id, user_b_id):
        """Return the two ids as (low, high)."""
        return tuple(sorted([user_a_id, user_b_id], key=lambda u: uuid.UUID(str(u)).int))

    def involves(self, user_id) -> bool:
        return str(user_id) in (str(self.requester_id), str(self.target_id))

    def save(self, *args, **kwargs):
        if self.requester_id is not None and self.target_id is not None:
            self.user_low_id, self.user_high_id = self.ordered_pair(self.requester_id, self.target_id)
        super().save(*args, **kwargs)
