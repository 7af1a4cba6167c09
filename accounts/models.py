import uuid
from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models.functions import Lower

from .utils import normalize_username, is_username_format_valid


class User(AbstractUser):
    """Community member: auth principal plus the public profile card."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)

    # --- Profile
    full_name = models.CharField(max_length=150, blank=True)
    bio = models.CharField(max_length=160, blank=True)
    avatar_url = models.URLField(blank=True)
    role = models.CharField(max_length=64, blank=True)
    current_title = models.CharField(max_length=120, blank=True)
    affiliation = models.CharField(max_length=160, blank=True)
    city = models.CharField(max_length=80, blank=True)
    country = models.CharField(max_length=80, blank=True)

    class Meta:
        # Case-insensitive uniqueness on username
        constraints = [
            models.UniqueConstraint(
                Lower("username"),
                name="uniq_username_case_insensitive",
            )
        ]
        ordering = ["username"]

    def __str__(self):
        return self.username

    @property
    def display_name(self):
        return self.full_name or self.get_full_name() or self.username

    def clean_username_policy(self, new_username: str):
        """
        Rules:
        - regex/length from settings (USERNAME_REGEX / MIN / MAX)
        - case-insensitive uniqueness
        """
        ok, reason = is_username_format_valid(new_username)
        if not ok:
            raise ValidationError(reason)

        normalized = normalize_username(new_username)
        qs = User.objects.filter(username__iexact=normalized)
        if self.pk and not self._state.adding:
            qs = qs.exclude(pk=self.pk)
        if qs.exists():
            raise ValidationError("taken")

    def save(self, *args, **kwargs):
        if self.username:
            self.username = normalize_username(self.username)
        if self._state.adding:
            self.clean_username_policy(self.username)
        super().save(*args, **kwargs)
