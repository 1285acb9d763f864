# backend/accu/services/market_service.py
"""
Market Price Ledger

Append-only: observations are recorded and read, never updated or deleted.
Date filters are inclusive on both ends.
"""
from __future__ import annotations

from datetime import date

from flask import current_app

from ..extensions import db
from ..models import MarketPrice, Entity
from ..validation import ValidationError
from .ledger_service import append_ledger_event
from .query_utils import get_or_404, paginated_result


def record_price(*, patch: dict) -> MarketPrice:
    """
    Record a validated price observation.

    commodity_type defaults to the configured DEFAULT_COMMODITY_TYPE.
    """
    if patch.get("entity_id") is not None:
        get_or_404(Entity, patch["entity_id"], "Entity")

    price = MarketPrice(
        price=patch["price"],
        date=patch["date"],
        commodity_type=patch.get("commodity_type") or current_app.config["DEFAULT_COMMODITY_TYPE"],
        source=patch["source"],
        entity_id=patch.get("entity_id"),
    )
    db.session.add(price)
    db.session.flush()

    append_ledger_event(
        event_type="market_price.recorded",
        subject_type="market_price",
        subject_id=price.id,
        entity_id=price.entity_id,
        note=f"{price.commodity_type} {price.price} on {price.date.isoformat()} ({price.source})",
    )
    return price


def get_price(price_id: int) -> MarketPrice:
    return get_or_404(MarketPrice, price_id, "Market price")


def _filtered_query(
    *,
    entity_id: int | None = None,
    commodity_type: str | None = None,
    source: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
):
    if start_date is not None and end_date is not None and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    query = db.session.query(MarketPrice)
    if entity_id is not None:
        query = query.filter(MarketPrice.entity_id == entity_id)
    if commodity_type is not None:
        query = query.filter(MarketPrice.commodity_type == commodity_type)
    if source is not None:
        query = query.filter(MarketPrice.source == source)
    if start_date is not None:
        query = query.filter(MarketPrice.date >= start_date)
    if end_date is not None:
        query = query.filter(MarketPrice.date <= end_date)
    return query


def list_prices(
    *,
    entity_id: int | None = None,
    commodity_type: str | None = None,
    source: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Newest observation first."""
    query = _filtered_query(
        entity_id=entity_id,
        commodity_type=commodity_type,
        source=source,
        start_date=start_date,
        end_date=end_date,
    ).order_by(MarketPrice.date.desc(), MarketPrice.id.desc())
    return paginated_result(query, page=page, per_page=per_page)


def latest_price(
    *,
    commodity_type: str | None = None,
    entity_id: int | None = None,
    source: str | None = None,
) -> MarketPrice | None:
    """Most recent observation by date, ties broken by insertion order."""
    commodity_type = commodity_type or current_app.config["DEFAULT_COMMODITY_TYPE"]
    return (
        _filtered_query(entity_id=entity_id, commodity_type=commodity_type, source=source)
        .order_by(MarketPrice.date.desc(), MarketPrice.id.desc())
        .first()
    )
