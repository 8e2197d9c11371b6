# Overview: Data gateway over the five order-management collections; CRUD, joined order reads, change feed.

"""
Data gateway.

The dashboard store never touches the ORM directly. It talks to the backing
store through this small contract:

- select(collection, filters, order_by, descending, embed) -> list of rows
- insert(collection, fields) -> row
- update(collection, row_id, fields) -> row
- delete(collection, row_id) -> None
- subscribe(collection, events, callback) -> Subscription

Rows are plain dicts in storage shape (snake_case keys, Decimal money,
ISO-8601 "Z" timestamps). Every successful write publishes a ChangeEvent
on the realtime feed after commit.

ERRORS: anything the store rejects (unknown collection/field, missing row,
constraint violation, connection problem) is raised as GatewayError after
the session has been rolled back.
"""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import DateTime, Numeric, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import ProductCategory, Product, Customer, Order, OrderItem
from ..time_utils import parse_iso_datetime
from .realtime import (
    ChangeEvent,
    ChangeFeed,
    Subscription,
    EVENT_INSERT,
    EVENT_UPDATE,
    EVENT_DELETE,
)


CATEGORIES = "product_categories"
PRODUCTS = "products"
CUSTOMERS = "customers"
ORDERS = "orders"
ORDER_ITEMS = "order_items"

COLLECTION_MODELS = {
    CATEGORIES: ProductCategory,
    PRODUCTS: Product,
    CUSTOMERS: Customer,
    ORDERS: Order,
    ORDER_ITEMS: OrderItem,
}

# Keys embedded in joined order rows
EMBED_CUSTOMER = "customers"
EMBED_ITEMS = "order_items"
EMBED_PRODUCT = "products"

_READ_ONLY_COLUMNS = {"id"}


class GatewayError(Exception):
    """Raised when the backing store rejects or fails an operation."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _columns(model) -> dict:
    return {c.key: c for c in model.__mapper__.columns}


def _coerce(col, value):
    if value is None:
        return None
    if isinstance(col.type, DateTime) and isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise GatewayError(f"{col.key} must be an ISO-8601 datetime")
    if isinstance(col.type, Numeric) and not isinstance(value, Decimal):
        if isinstance(value, bool):
            raise GatewayError(f"{col.key} must be numeric")
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise GatewayError(f"{col.key} must be numeric")
    return value


class SqlGateway:
    """
    Gateway backed by the Flask-SQLAlchemy session.

    Must be used inside an application context.
    """

    def __init__(self, feed: ChangeFeed | None = None, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self.feed = feed or ChangeFeed(logger=self.logger)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _model(self, collection: str):
        model = COLLECTION_MODELS.get(collection)
        if model is None:
            raise GatewayError(f"Unknown collection: {collection}", details={"collection": collection})
        return model

    def _apply(self, obj, fields: dict, *, collection: str) -> None:
        cols = _columns(type(obj))
        for key, value in fields.items():
            if key in _READ_ONLY_COLUMNS:
                continue
            col = cols.get(key)
            if col is None:
                raise GatewayError(
                    f"Unknown field for {collection}: {key}",
                    details={"collection": collection, "field": key},
                )
            setattr(obj, key, _coerce(col, value))

    def _build_items(self, items) -> list[OrderItem]:
        if not isinstance(items, (list, tuple)):
            raise GatewayError("order_items must be a list", details={"collection": ORDERS})
        built = []
        for item in items:
            line = OrderItem()
            self._apply(line, {k: v for k, v in item.items() if k != "order_id"}, collection=ORDER_ITEMS)
            built.append(line)
        return built

    def _row(self, collection: str, obj, *, embed: bool = False) -> dict:
        row = obj.to_dict()
        if embed and collection == ORDERS:
            row[EMBED_CUSTOMER] = obj.customer.to_dict() if obj.customer else None
            row[EMBED_ITEMS] = [
                {
                    **item.to_dict(),
                    EMBED_PRODUCT: item.product.to_dict() if item.product else None,
                }
                for item in obj.items
            ]
        return row

    def _fail(self, exc: SQLAlchemyError, *, collection: str, operation: str) -> GatewayError:
        db.session.rollback()
        if isinstance(exc, IntegrityError):
            message = f"Integrity constraint violated on {collection}"
        else:
            message = f"Database error during {operation} on {collection}"
        self.logger.warning("%s: %s", message, exc)
        return GatewayError(message, details={"collection": collection, "operation": operation})

    def _publish(self, collection: str, event_type: str, *, new: dict | None = None, old: dict | None = None) -> None:
        self.feed.publish(ChangeEvent(collection=collection, event_type=event_type, new=new, old=old))

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def select(
        self,
        collection: str,
        filters: dict | None = None,
        order_by: str | list[str] | None = None,
        descending: bool = False,
        embed: bool = False,
    ) -> list[dict]:
        """
        Read rows from a collection.

        filters: {column: value}; list/tuple/set values match with IN.
        order_by: one column name or a list of names (all share the direction).
        embed: orders only; attaches the owning customer and the line items
        (each with its product) in one call.
        """
        model = self._model(collection)
        cols = _columns(model)

        if embed and collection != ORDERS:
            raise GatewayError(f"Joined reads are not supported for {collection}")

        try:
            query = db.session.query(model)
            for key, value in (filters or {}).items():
                if key not in cols:
                    raise GatewayError(f"Unknown filter field for {collection}: {key}")
                column = getattr(model, key)
                if isinstance(value, (list, tuple, set, frozenset)):
                    query = query.filter(column.in_(list(value)))
                else:
                    query = query.filter(column == value)

            keys = [order_by] if isinstance(order_by, str) else list(order_by or [])
            for key in keys:
                if key not in cols:
                    raise GatewayError(f"Unknown order field for {collection}: {key}")
                column = getattr(model, key)
                query = query.order_by(column.desc() if descending else column.asc())
            query = query.order_by(model.id.desc() if descending else model.id.asc())

            if embed:
                query = query.options(
                    selectinload(Order.customer),
                    selectinload(Order.items).selectinload(OrderItem.product),
                )

            return [self._row(collection, obj, embed=embed) for obj in query.all()]
        except SQLAlchemyError as exc:
            raise self._fail(exc, collection=collection, operation="select")

    def get(self, collection: str, row_id: int) -> dict | None:
        model = self._model(collection)
        try:
            obj = db.session.get(model, row_id)
        except SQLAlchemyError as exc:
            raise self._fail(exc, collection=collection, operation="get")
        return self._row(collection, obj, embed=collection == ORDERS) if obj else None

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def insert(self, collection: str, fields: dict) -> dict:
        model = self._model(collection)
        fields = dict(fields)
        items = fields.pop(EMBED_ITEMS, None) if collection == ORDERS else None

        obj = model()
        self._apply(obj, fields, collection=collection)
        if items is not None:
            obj.items = self._build_items(items)

        try:
            if collection == ORDERS:
                if obj.number is None:
                    current = db.session.query(func.max(Order.number)).scalar()
                    obj.number = (current or 0) + 1

            db.session.add(obj)
            db.session.commit()
            row = self._row(collection, obj, embed=collection == ORDERS)
        except SQLAlchemyError as exc:
            raise self._fail(exc, collection=collection, operation="insert")

        self._publish(collection, EVENT_INSERT, new=row)
        return row

    def update(self, collection: str, row_id: int, fields: dict) -> dict:
        model = self._model(collection)
        fields = dict(fields)
        items = fields.pop(EMBED_ITEMS, None) if collection == ORDERS else None

        try:
            obj = db.session.get(model, row_id)
        except SQLAlchemyError as exc:
            raise self._fail(exc, collection=collection, operation="update")
        if obj is None:
            raise GatewayError(
                f"{collection} row not found: {row_id}",
                details={"collection": collection, "id": row_id},
            )

        embed = collection == ORDERS
        old = self._row(collection, obj, embed=embed)

        try:
            self._apply(obj, fields, collection=collection)
            if items is not None:
                obj.items = self._build_items(items)
            db.session.commit()
            new = self._row(collection, obj, embed=embed)
        except GatewayError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            raise self._fail(exc, collection=collection, operation="update")

        self._publish(collection, EVENT_UPDATE, new=new, old=old)
        return new

    def delete(self, collection: str, row_id: int) -> None:
        model = self._model(collection)
        try:
            obj = db.session.get(model, row_id)
        except SQLAlchemyError as exc:
            raise self._fail(exc, collection=collection, operation="delete")
        if obj is None:
            raise GatewayError(
                f"{collection} row not found: {row_id}",
                details={"collection": collection, "id": row_id},
            )

        old = self._row(collection, obj)
        try:
            db.session.delete(obj)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise self._fail(exc, collection=collection, operation="delete")

        self._publish(collection, EVENT_DELETE, old=old)

    # ------------------------------------------------------------------
    # realtime
    # ------------------------------------------------------------------

    def subscribe(self, collection: str, events, callback) -> Subscription:
        self._model(collection)
        return self.feed.subscribe(collection, events, callback)
