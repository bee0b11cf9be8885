# Overview: Read-only dashboard and period P&L reports over the gold ledger.

from __future__ import annotations

import calendar
from datetime import datetime, timedelta

from ..extensions import db
from ..models import Advance, GoldTransaction
from ..money_utils import round_money, round_weight
from ..validation import ValidationError
from .advance_service import outstanding_summary
from .inventory_service import summary_by_location
from .price_service import find_latest_price
from goldledger.time_utils import coerce_datetime, end_of_day, start_of_day, to_utc_z, utcnow

REPORT_PERIODS = ("today", "week", "month", "custom")


def _one_month_back(dt: datetime) -> datetime:
    year, month = (dt.year, dt.month - 1) if dt.month > 1 else (dt.year - 1, 12)
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def resolve_period(period: str, start=None, end=None, *, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Map a period label to an inclusive [start, end] range in UTC.

    today: start of today .. end of today
    week:  start of the day 7 days ago .. end of today
    month: start of the same day one month ago .. end of today
    custom: start/end dates (either defaults to today), widened to whole days
    """
    now = now or utcnow()
    if period == "today":
        return start_of_day(now), end_of_day(now)
    if period == "week":
        return start_of_day(now - timedelta(days=7)), end_of_day(now)
    if period == "month":
        return start_of_day(_one_month_back(now)), end_of_day(now)
    if period == "custom":
        try:
            start_at = coerce_datetime(start, default_now=False) or now
            end_at = coerce_datetime(end, default_now=False) or now
        except ValueError as exc:
            raise ValidationError(str(exc))
        if end_at < start_at:
            raise ValidationError("end must not be before start")
        return start_of_day(start_at), end_of_day(end_at)
    raise ValidationError(
        f"period must be one of: {', '.join(REPORT_PERIODS)}",
        details={"period": period},
    )


def _transactions_between(start_at: datetime, end_at: datetime) -> list[GoldTransaction]:
    return (
        db.session.query(GoldTransaction)
        .filter(GoldTransaction.occurred_at >= start_at, GoldTransaction.occurred_at <= end_at)
        .order_by(GoldTransaction.occurred_at.desc(), GoldTransaction.id.desc())
        .all()
    )


def _empty_side() -> dict:
    return {"count": 0, "total_weight": 0.0, "total_amount": 0.0}


def dashboard(*, now: datetime | None = None) -> dict:
    now = now or utcnow()

    today = {"bought": _empty_side(), "sold": _empty_side()}
    for tx in _transactions_between(start_of_day(now), end_of_day(now)):
        side = today["bought"] if tx.type == "buy" else today["sold"]
        side["count"] += 1
        side["total_weight"] += tx.weight_grams
        side["total_amount"] += tx.total_amount
    today["profit_loss"] = round_money(today["sold"]["total_amount"] - today["bought"]["total_amount"])
    for side in (today["bought"], today["sold"]):
        side["total_weight"] = round_weight(side["total_weight"])
        side["total_amount"] = round_money(side["total_amount"])

    recent = (
        db.session.query(GoldTransaction)
        .order_by(GoldTransaction.occurred_at.desc(), GoldTransaction.id.desc())
        .limit(10)
        .all()
    )
    latest = find_latest_price("gold")

    return {
        "price": latest.to_dict() if latest else None,
        "vault": summary_by_location(include_market_value=True),
        "advances": outstanding_summary(),
        "today": today,
        "recent_transactions": [tx.to_dict() for tx in recent],
    }


def period_report(
    period: str = "today",
    *,
    start=None,
    end=None,
    now: datetime | None = None,
) -> dict:
    """
    Buy/sell totals and P&L for a period.

    profit_loss is sell amount minus buy amount; net_weight is bought minus
    sold weight. Daily buckets are keyed by the UTC date of occurred_at,
    newest first.
    """
    start_at, end_at = resolve_period(period, start, end, now=now)
    transactions = _transactions_between(start_at, end_at)

    summary = {"buy": _empty_side(), "sell": _empty_side()}
    daily: dict[str, dict] = {}
    suppliers: dict[int, dict] = {}
    purities: dict[str, dict] = {}

    for tx in transactions:
        side = summary[tx.type]
        side["count"] += 1
        side["total_weight"] += tx.weight_grams
        side["total_amount"] += tx.total_amount

        day_key = tx.occurred_at.date().isoformat()
        day = daily.setdefault(day_key, {
            "date": day_key,
            "buy": {"count": 0, "weight": 0.0, "amount": 0.0},
            "sell": {"count": 0, "weight": 0.0, "amount": 0.0},
        })
        day[tx.type]["count"] += 1
        day[tx.type]["weight"] += tx.weight_grams
        day[tx.type]["amount"] += tx.total_amount

        sup = suppliers.setdefault(tx.supplier_id, {
            "supplier_id": tx.supplier_id,
            "supplier_name": tx.supplier_name,
            "count": 0,
            "total_weight": 0.0,
            "total_amount": 0.0,
        })
        sup["count"] += 1
        sup["total_weight"] += tx.weight_grams
        sup["total_amount"] += tx.total_amount

        if tx.type == "buy":
            pur = purities.setdefault(tx.purity, {"purity": tx.purity, "count": 0, "total_weight": 0.0})
            pur["count"] += 1
            pur["total_weight"] += tx.weight_grams

    for side in summary.values():
        side["avg_price_per_gram"] = (
            round_money(side["total_amount"] / side["total_weight"]) if side["total_weight"] > 0 else 0.0
        )
    profit_loss = summary["sell"]["total_amount"] - summary["buy"]["total_amount"]
    net_weight = summary["buy"]["total_weight"] - summary["sell"]["total_weight"]
    for side in summary.values():
        side["total_weight"] = round_weight(side["total_weight"])
        side["total_amount"] = round_money(side["total_amount"])

    daily_rows = []
    for key in sorted(daily, reverse=True):
        day = daily[key]
        day["pnl"] = round_money(day["sell"]["amount"] - day["buy"]["amount"])
        for side in (day["buy"], day["sell"]):
            side["weight"] = round_weight(side["weight"])
            side["amount"] = round_money(side["amount"])
        daily_rows.append(day)

    top_suppliers = sorted(suppliers.values(), key=lambda s: (-s["total_weight"], s["supplier_id"]))[:5]
    for sup in top_suppliers:
        sup["total_weight"] = round_weight(sup["total_weight"])
        sup["total_amount"] = round_money(sup["total_amount"])

    purity_rows = sorted(purities.values(), key=lambda p: -p["total_weight"])
    for pur in purity_rows:
        pur["total_weight"] = round_weight(pur["total_weight"])

    given_total, given_count = (
        db.session.query(
            db.func.coalesce(db.func.sum(Advance.amount), 0.0),
            db.func.count(Advance.id),
        )
        .filter(Advance.given_date >= start_at, Advance.given_date <= end_at)
        .one()
    )

    return {
        "period": {"label": period, "start": to_utc_z(start_at), "end": to_utc_z(end_at)},
        "summary": {
            "buy": summary["buy"],
            "sell": summary["sell"],
            "profit_loss": round_money(profit_loss),
            "net_weight": round_weight(net_weight),
            "total_transactions": summary["buy"]["count"] + summary["sell"]["count"],
        },
        "daily_breakdown": daily_rows,
        "advances": {"total_given": round_money(float(given_total)), "count": int(given_count)},
        "top_suppliers": top_suppliers,
        "purity_breakdown": purity_rows,
        "transactions": [tx.to_dict() for tx in transactions[:50]],
    }
