# Overview: Flask API routes for the market price ledger (append-only).

# backend/accu/routes/marketdata.py
"""
Market price routes.

No PUT or DELETE: the ledger is a historical record.
"""
from flask import Blueprint, request

from ..decorators import transactional
from ..models import MarketPrice
from ..services import market_service
from accu.time_utils import parse_iso_date
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_market_price,
    ValidationError,
    NotFoundError,
)

MARKET_PRICE_POLICY = ModelValidationPolicy(
    writable_fields={"price", "date", "commodity_type", "source", "entity_id"},
    required_on_create={"price", "date", "source"},
)

marketdata_bp = Blueprint("marketdata", __name__, url_prefix="/api/marketdata")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


@marketdata_bp.get("")
@transactional("list market prices")
def list_prices():
    """
    List observations, newest first.

    Query params:
    - entity_id: int, commodity_type, source (optional)
    - start_date, end_date: YYYY-MM-DD, inclusive (optional)
    - page, per_page: int (optional)
    """
    return market_service.list_prices(
        entity_id=request.args.get("entity_id", type=int),
        commodity_type=request.args.get("commodity_type"),
        source=request.args.get("source"),
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@marketdata_bp.get("/latest")
@transactional("load latest market price")
def latest_price():
    """Most recent observation for commodity_type (default ACCU)."""
    price = market_service.latest_price(
        commodity_type=request.args.get("commodity_type"),
        entity_id=request.args.get("entity_id", type=int),
        source=request.args.get("source"),
    )
    if price is None:
        raise NotFoundError("No market price recorded")
    return price.to_dict()


@marketdata_bp.get("/<int:price_id>")
@transactional("load market price")
def get_price(price_id: int):
    return market_service.get_price(price_id).to_dict()


@marketdata_bp.post("")
@transactional("record market price")
def record_price():
    """
    Record an observation.

    Returns:
        201: recorded
        400: price <= 0, missing/invalid/future date, missing source
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=MarketPrice, payload=payload, policy=MARKET_PRICE_POLICY, partial=False)
    enforce_rules_market_price(patch)

    price = market_service.record_price(patch=patch)
    return price.to_dict(), 201
