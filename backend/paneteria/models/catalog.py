from __future__ import annotations

from ..extensions import db
from paneteria.time_utils import to_utc_z, utcnow


class ProductCategory(db.Model):
    """
    Menu grouping for products (breads, panettones, sweets...).

    Deleting a category that still has products is refused by the
    dashboard store and, authoritatively, by the RESTRICT foreign key.
    """
    __tablename__ = "product_categories"
    __table_args__ = (
        db.Index("ix_product_categories_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Sellable item on the menu.

    total_sold is a denormalized aggregate maintained by the dashboard
    store from non-cancelled order lines; it is never user input.
    price_history is an ordered list of {"date", "price"} entries.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(
        db.Integer,
        db.ForeignKey("product_categories.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    price_history = db.Column(db.JSON, nullable=False, default=list)
    image_url = db.Column(db.String(1024), nullable=True)
    weight = db.Column(db.Numeric(10, 2), nullable=True)  # grams
    custom_packaging = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    total_sold = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True, passive_deletes="all"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "description": self.description,
            "price": self.price,
            "price_history": list(self.price_history or []),
            "image_url": self.image_url,
            "weight": self.weight,
            "custom_packaging": self.custom_packaging,
            "is_active": self.is_active,
            "total_sold": self.total_sold,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
