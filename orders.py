"""
Order workflow: placement with product snapshots, listing, and status changes.

Line items carry a {name, price} snapshot taken when the order is placed, so
historical orders render the same even after the catalog changes. A product
that cannot be resolved at placement time is recorded as "Unknown" at price 0
rather than failing the order.
"""

import logging
from typing import Dict, Iterable, List, Optional, Union

import pydantic
from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from database import create_document, serialize_doc, to_object_id, utcnow
from errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from schemas import (
    BillingInfo,
    LineItem,
    Order,
    OrderStatus,
    PaymentAddresses,
    PaymentChoice,
    Snapshot,
)

logger = logging.getLogger(__name__)

UNKNOWN_PRODUCT = {"name": "Unknown", "price": 0}
DELETED_PRODUCT = {"name": "Unknown (deleted)", "price": 0}

# Same-status writes are accepted as no-ops and are not listed here.
TRANSITIONS: Dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.FULFILLED, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.FULFILLED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}),
    OrderStatus.FULFILLED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}


# Request models
class OrderLineRequest(BaseModel):
    product: str
    quantity: int = Field(1, ge=1)


class BillingInfoRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    firstname: Optional[str] = None
    lastname: Optional[str] = None
    email: EmailStr
    phone: Optional[str] = None
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class PlaceOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: Optional[str] = None
    products: List[OrderLineRequest] = Field(..., min_length=1)
    total: float = Field(..., ge=0)
    billing_info: BillingInfoRequest = Field(..., alias="billingInfo")
    payment_addresses: Optional[PaymentAddresses] = Field(None, alias="paymentAddresses")
    payment_method: PaymentChoice = Field(PaymentChoice.CRYPTO, alias="paymentMethod")


def can_transition(current: str, target: OrderStatus) -> bool:
    if current == target.value:
        return True
    try:
        return target in TRANSITIONS[OrderStatus(current)]
    except ValueError:
        # free-text status from older data: only deletion applies
        return False


def billing_name(billing: BillingInfoRequest) -> Optional[str]:
    if billing.name:
        return billing.name
    if billing.firstname and billing.lastname:
        return f"{billing.firstname} {billing.lastname}"
    return None


class OrderWorkflow:
    def __init__(self, db: Database):
        self.db = db

    @property
    def orders(self):
        return self.db["order"]

    def place_order(self, payload: Union[PlaceOrderRequest, dict]) -> dict:
        if isinstance(payload, dict):
            try:
                payload = PlaceOrderRequest.model_validate(payload)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid order: {e.errors()[0]['msg']}") from e

        billing = payload.billing_info
        name = billing_name(billing)
        if not name:
            raise ValidationError("Billing name (or firstname and lastname) is required")

        user_id = None
        if payload.user:
            user_id = to_object_id(payload.user)
            if user_id is None:
                raise ValidationError("Invalid user reference")

        snapshots = self._snapshot_products(line.product for line in payload.products)
        items = []
        for line in payload.products:
            product_id = to_object_id(line.product)
            snapshot = snapshots.get(product_id, UNKNOWN_PRODUCT)
            if product_id not in snapshots:
                logger.warning("Order references unknown product %s; recording placeholder", line.product)
            items.append(LineItem(product=product_id, quantity=line.quantity, snapshot=Snapshot(**snapshot)))

        order = Order(
            user=user_id,
            products=items,
            total=payload.total,
            billing_info=BillingInfo(
                name=name,
                email=billing.email,
                phone=billing.phone,
                address=billing.address,
                city=billing.city,
                country=billing.country,
            ),
            payment_addresses=payload.payment_addresses,
            payment_method=payload.payment_method,
            status=OrderStatus.PENDING,
        )
        order_id = create_document(self.db, "order", order)
        logger.info("Placed order %s with %d line item(s)", order_id, len(items))
        return self.get_order(order_id)

    def _snapshot_products(self, product_refs: Iterable[str]) -> Dict[ObjectId, dict]:
        ids = {oid for oid in (to_object_id(ref) for ref in product_refs) if oid is not None}
        if not ids:
            return {}
        cursor = self.db["product"].find({"_id": {"$in": list(ids)}}, {"name": 1, "price": 1})
        return {
            d["_id"]: {"name": d.get("name") or "Unknown", "price": float(d.get("price") or 0)}
            for d in cursor
        }

    def list_orders(self) -> List[dict]:
        return self._render(list(self.orders.find().sort("created_at", DESCENDING)))

    def get_order(self, order_id: str) -> dict:
        return self._render([self._find(order_id)])[0]

    def cancel_order(self, order_id: str) -> dict:
        return self.set_status(order_id, OrderStatus.CANCELLED)

    def set_status(self, order_id: str, target: Union[OrderStatus, str]) -> dict:
        try:
            target = OrderStatus(target)
        except ValueError:
            raise ValidationError(f"Unknown order status '{target}'") from None

        doc = self._find(order_id)
        current = doc.get("status", OrderStatus.PENDING.value)
        if current == target.value:
            return self._render([doc])[0]
        if not can_transition(current, target):
            raise InvalidTransitionError(current, target.value)

        # Conditional on the status we read, so two racing writers cannot both win.
        condition = {"_id": doc["_id"]}
        condition["status"] = doc["status"] if "status" in doc else {"$exists": False}
        updated = self.orders.find_one_and_update(
            condition,
            {"$set": {"status": target.value, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise ConflictError("Order was modified concurrently, please retry")
        logger.info("Order %s: %s -> %s", order_id, current, target.value)
        return self._render([updated])[0]

    def delete_order(self, order_id: str) -> None:
        oid = to_object_id(order_id)
        res = self.orders.delete_one({"_id": oid}) if oid else None
        if res is None or res.deleted_count == 0:
            raise NotFoundError("Order not found")
        logger.info("Deleted order %s", order_id)

    def _find(self, order_id: str) -> dict:
        oid = to_object_id(order_id)
        doc = self.orders.find_one({"_id": oid}) if oid else None
        if not doc:
            raise NotFoundError("Order not found")
        return doc

    def _render(self, docs: List[dict]) -> List[dict]:
        """Fill in line items and the user summary for API output."""
        # Live lookups only for items stored before snapshots existed.
        missing = {
            item["product"]
            for d in docs
            for item in d.get("products", [])
            if not item.get("snapshot") and isinstance(item.get("product"), ObjectId)
        }
        live = {}
        if missing:
            for p in self.db["product"].find({"_id": {"$in": list(missing)}}, {"name": 1, "price": 1}):
                live[p["_id"]] = {"name": p.get("name"), "price": p.get("price", 0)}

        user_ids = {d["user"] for d in docs if isinstance(d.get("user"), ObjectId)}
        users = {}
        if user_ids:
            for u in self.db["user"].find({"_id": {"$in": list(user_ids)}}, {"username": 1, "email": 1}):
                users[u["_id"]] = {"id": str(u["_id"]), "username": u.get("username"), "email": u.get("email")}

        rendered = []
        for d in docs:
            out = serialize_doc(d)
            out["user"] = users.get(d.get("user"))
            out["products"] = [self._render_item(item, live) for item in d.get("products", [])]
            rendered.append(out)
        return rendered

    @staticmethod
    def _render_item(item: dict, live: Dict[ObjectId, dict]) -> dict:
        product = item.get("product")
        snapshot = item.get("snapshot") or live.get(product) or DELETED_PRODUCT
        return {
            "product": str(product) if product is not None else None,
            "quantity": item.get("quantity", 1),
            "snapshot": dict(snapshot),
        }
