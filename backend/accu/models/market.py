from __future__ import annotations

from ..extensions import db
from accu.time_utils import to_utc_z, to_iso_date
from accu.numeric_utils import to_decimal_str


class MarketPrice(db.Model):
    """
    Append-only price observation for a commodity.

    Rows are never updated or deleted; corrections are recorded as a newer
    observation for the same date and source.
    """
    __tablename__ = "market_prices"
    __table_args__ = (
        db.CheckConstraint("price > 0", name="ck_market_prices_price_positive"),
        db.Index("ix_market_prices_commodity_date", "commodity_type", "date"),
        db.Index("ix_market_prices_entity_date", "entity_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    price = db.Column(db.Numeric(14, 2), nullable=False)
    date = db.Column(db.Date, nullable=False)
    commodity_type = db.Column(db.String(32), nullable=False, default="ACCU")
    source = db.Column(db.String(128), nullable=False)
    entity_id = db.Column(db.Integer, db.ForeignKey("entities.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    entity = db.relationship("Entity", backref=db.backref("market_prices", lazy=True))

    def __repr__(self) -> str:
        return f"<MarketPrice id={self.id} {self.commodity_type} {self.price} on {self.date} ({self.source})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "price": to_decimal_str(self.price),
            "date": to_iso_date(self.date),
            "commodity_type": self.commodity_type,
            "source": self.source,
            "entity_id": self.entity_id,
            "created_at": to_utc_z(self.created_at),
        }
