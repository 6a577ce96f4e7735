"""
Checkout: turns a submitted cart into a persisted, cash-on-delivery order.

Totals are always computed here from the submitted items; any totals a
client sends are ignored. The order number is assigned before the insert,
so no order is ever stored without one.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import BackgroundTasks
from pydantic import ValidationError as PydanticValidationError
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents, serialize_doc, to_object_id, utcnow
from errors import NotFound, ValidationError, validation_error_from
from notifications import NotificationSender, send_quietly
from order_numbers import OrderNumberGenerator
from schemas import Order, OrderDraft, OrderItem, User

logger = logging.getLogger(__name__)

COLLECTION = "order"

# A unique-index rejection of the order number gets one more try.
INSERT_ATTEMPTS = 2


def compute_subtotal(items: List[OrderItem]) -> float:
    return sum(item.price * item.quantity for item in items)


class OrderService:
    def __init__(self, db: Database, notifier: NotificationSender,
                 operator_email: Optional[str] = None, shipping_cost: float = 0,
                 number_prefix: str = "RD", clock: Callable[[], datetime] = utcnow,
                 numbers: Optional[OrderNumberGenerator] = None):
        self.db = db
        self.collection = db[COLLECTION]
        self.notifier = notifier
        self.operator_email = operator_email
        self.flat_shipping_cost = shipping_cost
        self.clock = clock
        self.numbers = numbers or OrderNumberGenerator(self.order_number_taken, prefix=number_prefix)

    def order_number_taken(self, candidate: str) -> bool:
        return self.collection.find_one({"order_number": candidate}, {"_id": 1}) is not None

    def shipping_cost(self, subtotal: float) -> float:
        # Free shipping for now; every order pays the configured flat rate.
        return self.flat_shipping_cost

    def create_order(self, account: User, items: Any, shipping_address: Any,
                     notes: Optional[str] = None,
                     tasks: Optional[BackgroundTasks] = None) -> Dict[str, Any]:
        if not items or not isinstance(items, list):
            raise ValidationError("Order items are required")
        if not shipping_address:
            raise ValidationError("Shipping address is required")
        try:
            draft = OrderDraft.model_validate(
                {"items": items, "shippingAddress": shipping_address, "notes": notes}
            )
        except PydanticValidationError as exc:
            raise validation_error_from(exc)

        subtotal = compute_subtotal(draft.items)
        shipping_cost = self.shipping_cost(subtotal)
        now = self.clock()

        order = None
        for attempt in range(1, INSERT_ATTEMPTS + 1):
            order = Order(
                user_id=account.id,
                order_number=self.numbers.assign(now),
                items=draft.items,
                shipping_address=draft.shipping_address,
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                total=subtotal + shipping_cost,
                notes=(draft.notes or "").strip(),
                created_at=now,
                updated_at=now,
            )
            try:
                order.id = create_document(self.db, COLLECTION, order, now=now)
                break
            except DuplicateKeyError:
                if attempt == INSERT_ATTEMPTS:
                    raise
                logger.warning("Order number %s was taken at insert time, retrying", order.order_number)

        logger.info("Order %s placed by account %s, total %.2f",
                    order.order_number, account.id, order.total)
        self._dispatch_order_emails(order, account, tasks)
        return order.summary()

    def list_orders(self, account_id: str) -> List[Order]:
        docs = get_documents(self.db, COLLECTION, {"user_id": account_id},
                             sort=[("created_at", DESCENDING), ("_id", DESCENDING)])
        return [Order(**doc) for doc in docs]

    def get_order(self, account_id: str, order_id: str) -> Order:
        oid = to_object_id(order_id)
        doc = None
        if oid is not None:
            # Someone else's order is reported exactly like a missing one.
            doc = self.collection.find_one({"_id": oid, "user_id": account_id})
        if not doc:
            raise NotFound("Order not found")
        return Order(**serialize_doc(doc))

    def _dispatch_order_emails(self, order: Order, account: User,
                               tasks: Optional[BackgroundTasks]) -> None:
        data = {"order": order.wire(), "user": account.public()}
        dispatches = [
            (self.notifier, account.email, f"Order Confirmation - {order.order_number}",
             "order_confirmation", data),
            (self.notifier, self.operator_email, f"New Order Received - {order.order_number}",
             "order_alert", data),
        ]
        for args in dispatches:
            if tasks is not None:
                tasks.add_task(send_quietly, *args)
            else:
                send_quietly(*args)
