# Overview: Spot price reference store (append-only time series).

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import PriceObservation
from ..models.prices import COMMODITIES, PRICE_SOURCES
from ..validation import (
    NotFoundError,
    ValidationError,
    require_choice,
    require_positive,
    require_text,
)
from .concurrency import run_with_retry
from .ledger_service import append_ledger_event
from .settings_service import get_settings
from goldledger.time_utils import coerce_datetime
"""
Price Reference Invariants

- Observations are append-only; nothing updates or deletes them.
- "latest" is the greatest (timestamp, id); "at(date)" is the greatest
  (timestamp, id) with timestamp <= date (inclusive).
- price_per_gram defaults to price_per_oz / 31.1035.
- Fetching prices from external feeds is out of scope; callers record
  what they obtained, tagged with its source.
"""

# Troy ounce in grams
GRAMS_PER_TROY_OUNCE = 31.1035


def per_gram(price_per_oz: float) -> float:
    return price_per_oz / GRAMS_PER_TROY_OUNCE


def _parse_timestamp(value) -> datetime:
    try:
        return coerce_datetime(value)
    except ValueError:
        raise ValidationError("timestamp must be an ISO-8601 datetime")


def _record_price_inner(
    *,
    commodity: str,
    price_per_oz: float,
    currency: str,
    source: str,
    price_per_gram: float | None,
    timestamp,
) -> PriceObservation:
    require_choice(commodity, COMMODITIES, "commodity")
    require_choice(source, PRICE_SOURCES, "source")
    price_per_oz = require_positive(price_per_oz, "price_per_oz")
    if price_per_gram is None:
        price_per_gram = per_gram(price_per_oz)
    else:
        price_per_gram = require_positive(price_per_gram, "price_per_gram")

    obs = PriceObservation(
        commodity=commodity,
        price_per_oz=price_per_oz,
        price_per_gram=price_per_gram,
        currency=require_text(currency, "currency").upper(),
        source=source,
        timestamp=_parse_timestamp(timestamp),
    )
    db.session.add(obs)
    db.session.flush()

    append_ledger_event(
        event_type="price.recorded",
        event_category="price",
        entity_type="price_observation",
        entity_id=obs.id,
        occurred_at=obs.timestamp,
        payload={"commodity": commodity, "price_per_oz": price_per_oz, "source": source},
    )
    return obs


def record_price(
    *,
    price_per_oz: float,
    commodity: str = "gold",
    currency: str = "USD",
    source: str = "manual",
    price_per_gram: float | None = None,
    timestamp=None,
) -> PriceObservation:
    """Append one observation stamped now (or at the supplied timestamp)."""
    def _op():
        obs = _record_price_inner(
            commodity=commodity,
            price_per_oz=price_per_oz,
            currency=currency,
            source=source,
            price_per_gram=price_per_gram,
            timestamp=timestamp,
        )
        db.session.commit()
        return obs

    return run_with_retry(_op)


def record_manual_price(
    *,
    price_per_oz: float,
    currency: str = "USD",
    actor: str | None = None,
) -> PriceObservation:
    """Manual price entry: records a 'manual' observation and remembers it in settings."""
    def _op():
        obs = _record_price_inner(
            commodity="gold",
            price_per_oz=price_per_oz,
            currency=currency,
            source="manual",
            price_per_gram=None,
            timestamp=None,
        )
        settings = get_settings()
        settings.manual_spot_price = obs.price_per_oz
        settings.last_price_update = obs.timestamp
        settings.last_modified_by = actor
        db.session.commit()
        return obs

    return run_with_retry(_op)


def _ordered(commodity: str):
    require_choice(commodity, COMMODITIES, "commodity")
    return (
        db.session.query(PriceObservation)
        .filter(PriceObservation.commodity == commodity)
        .order_by(PriceObservation.timestamp.desc(), PriceObservation.id.desc())
    )


def latest_price(commodity: str = "gold") -> PriceObservation:
    obs = _ordered(commodity).first()
    if obs is None:
        raise NotFoundError("No price observations recorded", details={"commodity": commodity})
    return obs


def price_at(commodity: str, when) -> PriceObservation:
    """Most recent observation with timestamp <= when (inclusive)."""
    as_of = _parse_timestamp(when)
    obs = _ordered(commodity).filter(PriceObservation.timestamp <= as_of).first()
    if obs is None:
        raise NotFoundError(
            "No price observation at or before the requested date",
            details={"commodity": commodity, "as_of": as_of.isoformat()},
        )
    return obs


def find_latest_price(commodity: str = "gold") -> PriceObservation | None:
    """Like latest_price but returns None instead of raising; for dashboards."""
    return _ordered(commodity).first()


def price_history(commodity: str = "gold", *, limit: int = 100, since=None) -> list[PriceObservation]:
    q = _ordered(commodity)
    if since is not None:
        q = q.filter(PriceObservation.timestamp >= _parse_timestamp(since))
    return q.limit(max(1, min(int(limit), 1000))).all()
