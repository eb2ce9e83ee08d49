from __future__ import annotations

from .request_models import AppRequest, UserPreference


def evaluate_retention(app: AppRequest, preference: UserPreference) -> bool:
    """Requested retention must not exceed what the user tolerates (same unit, inclusive)."""

    return app.time_of_retention <= preference.time_of_retention
