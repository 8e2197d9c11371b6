from __future__ import annotations

from ..extensions import db
from paneteria.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Customer order with its line items.

    Money columns are stored alongside their components; total is always
    recomputed from items, discounts and delivery fee before a write.
    Status values: pending, confirmed, preparing, ready, delivered, cancelled.
    Payment status values: pending, paid, cancelled.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_orders_number"),
        db.Index("ix_orders_customer_status", "customer_id", "status"),
        db.Index("ix_orders_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Human-facing sequential number ("Pedido #12")
    number = db.Column(db.Integer, nullable=False)
    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    delivery_method = db.Column(db.String(16), nullable=False, default="pickup")
    sales_channel = db.Column(db.String(16), nullable=False, default="direct")

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    delivery_fee = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    order_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True, passive_deletes="all"))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "customer_id": self.customer_id,
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "delivery_method": self.delivery_method,
            "sales_channel": self.sales_channel,
            "subtotal": self.subtotal,
            "delivery_fee": self.delivery_fee,
            "order_discount": self.order_discount,
            "total": self.total,
            "notes": self.notes,
            "order_date": to_utc_z(self.order_date),
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "completed_at": to_utc_z(self.completed_at),
            "payment_date": to_utc_z(self.payment_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    One product line within an order.

    unit_price is the product price at order time and is never rewritten
    when the product changes. product_id is nulled if the product is deleted;
    the line keeps its own prices.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    item_discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    final_unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product", backref=db.backref("order_items", lazy=True, passive_deletes=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "item_discount": self.item_discount,
            "final_unit_price": self.final_unit_price,
            "total": self.total,
            "created_at": to_utc_z(self.created_at),
        }
