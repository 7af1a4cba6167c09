from django.core.exceptions import ValidationError
from django.contrib.auth import get_user_model
from django.db.models import Q

from .utils import split_search_terms

User = get_user_model()

SEARCH_FIELDS = ("username", "full_name", "current_title", "affiliation", "role")


def check_handle_availability(username: str) -> tuple[bool, str | None]:
    """
    Returns:
      (True, None)                 => available
      (False, <reason string>)     => invalid_format | too_short | too_long | taken
    """
    dummy = User(username=username)
    try:
        dummy.clean_username_policy(username)
        return True, None
    except ValidationError as e:
        reason = e.messages[0] if e.messages else "invalid"
        return False, reason


def community_members(viewer=None, query: str = ""):
    """
    Active members for the community directory, excluding the viewer.
    Every search term must match at least one profile field.
    """
    qs = User.objects.filter(is_active=True)
    if viewer is not None and viewer.is_authenticated:
        qs = qs.exclude(pk=viewer.pk)
    for term in split_search_terms(query):
        term_q = Q()
        for field in SEARCH_FIELDS:
            term_q |= Q(**{f"{field}__icontains": term})
        qs = qs.filter(term_q)
    return qs.order_by("full_name", "username")
