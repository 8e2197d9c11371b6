from __future__ import annotations

from ..extensions import db
from paneteria.time_utils import to_utc_z, utcnow


class Customer(db.Model):
    """
    Customer master data, keyed by WhatsApp contact.

    The order counters and spend totals are denormalized aggregates
    rewritten by the dashboard store after each order mutation.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_whatsapp", "whatsapp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    whatsapp = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    observations = db.Column(db.Text, nullable=True)
    delivery_preferences = db.Column(db.Text, nullable=True)
    is_gift_eligible = db.Column(db.Boolean, nullable=False, default=False)

    # Denormalized aggregates (recomputed from orders)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    completed_orders = db.Column(db.Integer, nullable=False, default=0)
    cancelled_orders = db.Column(db.Integer, nullable=False, default=0)
    pending_orders = db.Column(db.Integer, nullable=False, default=0)
    paid_spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    pending_spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "whatsapp": self.whatsapp,
            "email": self.email,
            "address": self.address,
            "observations": self.observations,
            "delivery_preferences": self.delivery_preferences,
            "is_gift_eligible": self.is_gift_eligible,
            "total_orders": self.total_orders,
            "total_spent": self.total_spent,
            "completed_orders": self.completed_orders,
            "cancelled_orders": self.cancelled_orders,
            "pending_orders": self.pending_orders,
            "paid_spent": self.paid_spent,
            "pending_spent": self.pending_spent,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
