# accounts/throttling.py
from rest_framework.throttling import SimpleRateThrottle


class RegisterThrottle(SimpleRateThrottle):
    scope = "register"

    def get_cache_key(self, request, view):
        ident = self.get_ident(request)  # usually the client IP
        return f"throttle:register:{ident}"
