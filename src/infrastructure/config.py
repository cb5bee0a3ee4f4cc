"""
Runtime configuration, read from the environment.

Usage:
    LOYALTY_APP_ID=glowisme-v5-structured
    LOYALTY_DEFAULT_DISPLAY_NAME="Invitée Privilège"
    LOYALTY_INITIAL_AUTH_TOKEN=<pre-issued token, optional>
    LOYALTY_SESSION_IDLE_TTL=1800
    LOYALTY_MAX_SESSIONS=1000
"""
from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class LoyaltySettings:
    # Namespace segment every document key lives under
    app_id: str = "glowisme-v5-structured"
    default_display_name: str = "Invitée Privilège"
    # When set, sessions without an explicit token sign in with it instead of anonymously
    initial_auth_token: str | None = None
    # Seconds without a request before a hosted session is closed
    session_idle_ttl: float = 1800.0
    max_sessions: int = 1000


def get_settings() -> LoyaltySettings:
    """Load settings from environment variables. Re-read on every call."""
    return LoyaltySettings(
        app_id=os.getenv("LOYALTY_APP_ID", "glowisme-v5-structured"),
        default_display_name=os.getenv("LOYALTY_DEFAULT_DISPLAY_NAME", "Invitée Privilège"),
        initial_auth_token=os.getenv("LOYALTY_INITIAL_AUTH_TOKEN") or None,
        session_idle_ttl=float(os.getenv("LOYALTY_SESSION_IDLE_TTL", "1800")),
        max_sessions=int(os.getenv("LOYALTY_MAX_SESSIONS", "1000")),
    )
