"""
Token authentication for ward terminals.

Terminals are shared between shifts, so legacy DRF tokens expire after
``AUTH_TOKEN_TTL_HOURS`` (0 disables expiry).  Kept apart from the
views so DRF can import it while initialising its authentication
classes without circular imports.
"""
from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from rest_framework import authentication, exceptions
from rest_framework.authtoken.models import Token


def _expired(token: Token) -> bool:
    ttl = getattr(settings, 'AUTH_TOKEN_TTL_HOURS', 0)
    return bool(ttl) and token.created < timezone.now() - timedelta(hours=ttl)


def issue_token(user) -> Token:
    """Return the user's token, replacing it when it has expired."""
    token, created = Token.objects.get_or_create(user=user)
    if not created and _expired(token):
        token.delete()
        token = Token.objects.create(user=user)
    return token


class TokenAuthentication(authentication.TokenAuthentication):
    keyword = 'Token'

    def authenticate_credentials(self, key):
        user, token = super().authenticate_credentials(key)
        if _expired(token):
            token.delete()
            raise exceptions.AuthenticationFailed('token expired, please log in again')
        return user, token
