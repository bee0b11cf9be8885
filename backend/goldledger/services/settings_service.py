# Overview: Business settings (single row) with lazy default creation.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import BusinessSettings
from ..models.prices import COMMODITIES
from ..models.settings import DEFAULT_UNITS, PRICE_API_SOURCES
from ..models.inventory import LOCATIONS
from ..validation import (
    ValidationError,
    require_choice,
    require_non_negative,
    require_positive,
    require_purity,
    require_text,
)
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event

UPDATABLE_FIELDS = {
    "business_name",
    "business_phone",
    "business_email",
    "business_address",
    "default_currency",
    "default_unit",
    "default_margin_percentage",
    "commodity_type",
    "price_api_source",
    "manual_spot_price",
    "price_refresh_interval_minutes",
    "purity_presets",
    "location_presets",
}


def get_settings() -> BusinessSettings:
    """
    Return the settings row, creating it with defaults on first access.

    Flushes but does not commit; the caller's unit of work decides.
    """
    settings = db.session.query(BusinessSettings).order_by(BusinessSettings.id.asc()).first()
    if settings is None:
        settings = BusinessSettings(
            default_currency=current_app.config.get("GOLD_DEFAULT_CURRENCY", "USD"),
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def ensure_settings() -> BusinessSettings:
    """Idempotent bootstrap used by `flask system init`."""
    def _op():
        settings = get_settings()
        db.session.commit()
        return settings

    return run_with_retry(_op)


def _validate_purity_presets(presets) -> list[dict]:
    if not isinstance(presets, list) or not presets:
        raise ValidationError("purity_presets must be a non-empty list")
    cleaned = []
    seen = set()
    for preset in presets:
        if not isinstance(preset, dict):
            raise ValidationError("each purity preset must be an object")
        name = require_text(preset.get("name"), "purity_presets.name")
        if name.lower() in seen:
            raise ValidationError(f"duplicate purity preset: {name}")
        seen.add(name.lower())
        cleaned.append({
            "name": name,
            "percentage": require_purity(preset.get("percentage"), "purity_presets.percentage"),
        })
    return cleaned


def _validate_location_presets(presets) -> list[str]:
    if not isinstance(presets, list) or not presets:
        raise ValidationError("location_presets must be a non-empty list")
    return [require_choice(p, LOCATIONS, "location_presets") for p in presets]


def update_settings(*, actor: str | None = None, **fields) -> BusinessSettings:
    unknown = sorted(set(fields) - UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}", details={"fields": unknown})

    def _op():
        settings = get_settings()

        for key, value in fields.items():
            if key == "business_name":
                value = require_text(value, key)
            elif key == "default_currency":
                value = require_text(value, key).upper()
            elif key == "default_unit":
                value = require_choice(value, DEFAULT_UNITS, key)
            elif key == "default_margin_percentage":
                value = require_non_negative(value, key)
            elif key == "commodity_type":
                value = require_choice(value, COMMODITIES, key)
            elif key == "price_api_source":
                value = require_choice(value, PRICE_API_SOURCES, key)
            elif key == "manual_spot_price" and value is not None:
                value = require_positive(value, key)
            elif key == "price_refresh_interval_minutes":
                value = int(require_positive(value, key))
            elif key == "purity_presets":
                value = _validate_purity_presets(value)
            elif key == "location_presets":
                value = _validate_location_presets(value)
            setattr(settings, key, value)

        settings.last_modified_by = actor
        append_ledger_event(
            event_type="settings.updated",
            event_category="settings",
            entity_type="business_settings",
            entity_id=settings.id,
            actor=actor,
            payload={"fields": sorted(fields)},
        )
        db.session.commit()
        return settings

    return run_with_retry(_op)


def resolve_purity(label: str | None) -> float | None:
    """Map a purity label (e.g. '24K', 'raw') to its preset fraction, case-insensitively."""
    if not label:
        return None
    wanted = label.strip().lower()
    for preset in get_settings().purity_presets or []:
        if str(preset.get("name", "")).strip().lower() == wanted:
            return float(preset["percentage"])
    return None
