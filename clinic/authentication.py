"""
Token authentication for the clinic API.

Login and token issuance live outside this service; clients send the
key they were given in ``Authorization: Token <key>``.  Keeping the
class here gives settings a stable import path.
"""
from __future__ import annotations

from rest_framework import authentication


class TokenAuthentication(authentication.TokenAuthentication):
    """DRF token authentication using the ``Token`` keyword."""

    keyword = 'Token'
