"""
Workflow simulator: a plausible stream of e-commerce events with no outside input.

Three primary steps (customer registration, inventory change, order
creation) are chosen at random on a fixed cadence. An order schedules a
delayed settlement that either authorizes the payment and marks the order
paid, or fails the payment and cancels the order. The order and its
follow-ups share one correlation id, the order id.
"""

import asyncio
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, TypeVar, Union

from ecomevents.catalog import Catalog, Customer, Product
from ecomevents.config import Settings
from ecomevents.envelope import Envelope, iso_ms, utc_now
from ecomevents.errors import SimulationError
from ecomevents.events import (
    CustomerRegistered,
    DomainEvent,
    InventoryUpdated,
    LowStock,
    OrderCancelled,
    OrderCreated,
    OrderItem,
    OrderUpdated,
    OutOfStock,
    PaymentAuthorized,
    PaymentFailed,
)
from ecomevents.observability import get_logger
from ecomevents.publisher import EventPublisher

T = TypeVar("T")

STATUS_CREATED = "created"
STATUS_PAID = "paid"
REASON_PAYMENT_RECEIVED = "payment_received"
REASON_INSUFFICIENT_FUNDS = "insufficient_funds"
REASON_PAYMENT_FAILED = "payment_failed"

NEW_CUSTOMER_ID_RANGE = (200, 999)
ORDER_LINES_RANGE = (1, 3)
QUANTITY_RANGE = (1, 3)
ORDER_SUFFIX_RANGE = (1000, 9999)


@dataclass
class PlacedOrder:
    """An order awaiting (or past) settlement."""
    order_id: str
    customer: Customer
    items: List[OrderItem]
    total_amount: float
    envelopes: List[Envelope] = field(default_factory=list)


def _millis() -> int:
    return time.time_ns() // 1_000_000


class WorkflowSimulator:
    """Generates primary events and their correlated follow-ups through a publisher."""

    def __init__(
        self,
        publisher: EventPublisher,
        catalog: Optional[Catalog] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._publisher = publisher
        self._catalog = catalog if catalog is not None else Catalog()
        self._settings = settings or Settings()
        self._rng = rng or random.Random()
        self._loop = loop
        if not self._catalog.products:
            raise SimulationError("catalog has no products")
        if not self._catalog.customers:
            raise SimulationError("catalog has no customers")
        self._pending: Dict[str, asyncio.TimerHandle] = {}
        self._order_ids: Set[str] = set()
        self._order_ms: Optional[int] = None
        self._task: Optional[asyncio.Task] = None
        self._logger = get_logger("ecomevents.simulator")

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _pick(self, items: Sequence[T], what: str) -> T:
        if not items:
            raise SimulationError(f"nothing to pick from: {what}")
        return self._rng.choice(items)

    def _emit(self, event: DomainEvent, correlation_id: Optional[str] = None) -> Optional[Envelope]:
        return self._publisher.publish(event, correlation_id=correlation_id)

    @staticmethod
    def _collect(*envelopes: Optional[Envelope]) -> List[Envelope]:
        return [e for e in envelopes if e is not None]

    # ---- Customers ----

    def simulate_registration(self) -> List[Envelope]:
        """Register a customer whose id is not one of the seeded ones."""
        seeded = set(self._catalog.customer_ids())
        customer_id = f"c{self._rng.randint(*NEW_CUSTOMER_ID_RANGE)}"
        while customer_id in seeded:
            customer_id = f"c{self._rng.randint(*NEW_CUSTOMER_ID_RANGE)}"
        event = CustomerRegistered(
            customer_id=customer_id,
            name=f"New Customer {customer_id}",
            email=f"customer{customer_id}@example.com",
            registration_date=iso_ms(utc_now()),
        )
        self._logger.info("customer_registered", extra={"customer_id": customer_id})
        return self._collect(self._emit(event))

    # ---- Inventory ----

    def simulate_inventory_change(self) -> List[Envelope]:
        product = self._pick(self._catalog.products, "products")
        delta = self._rng.randint(self._settings.stock_delta_min, self._settings.stock_delta_max)
        return self.apply_inventory_change(product, delta)

    def apply_inventory_change(self, product: Product, delta: int) -> List[Envelope]:
        """
        Apply delta to product.stock (floored at zero), then emit
        InventoryUpdated and, depending on the new level, LowStock or OutOfStock.
        """
        threshold = self._settings.low_stock_threshold
        previous = product.stock
        current = max(0, previous + delta)
        product.stock = current

        envelopes = self._collect(self._emit(InventoryUpdated(
            product_id=product.id,
            product_name=product.name,
            previous_stock=previous,
            current_stock=current,
            change=delta,
        )))
        if 0 < current <= threshold:
            self._logger.warning(
                "low_stock",
                extra={"product_id": product.id, "stock": current, "threshold": threshold},
            )
            envelopes += self._collect(self._emit(LowStock(
                product_id=product.id,
                product_name=product.name,
                current_stock=current,
                threshold=threshold,
            )))
        elif current == 0:
            self._logger.warning("out_of_stock", extra={"product_id": product.id})
            envelopes += self._collect(self._emit(OutOfStock(
                product_id=product.id,
                product_name=product.name,
                last_sold=iso_ms(utc_now()),
            )))
        return envelopes

    # ---- Orders and payments ----

    def new_order_id(self) -> str:
        """ord-<epoch ms>-<random>, never repeated within this simulator.

        Only ids from the current millisecond can collide, so older ones are forgotten.
        """
        now = _millis()
        if now != self._order_ms:
            self._order_ids.clear()
            self._order_ms = now
        order_id = f"ord-{now}-{self._rng.randint(*ORDER_SUFFIX_RANGE)}"
        while order_id in self._order_ids:
            order_id = f"ord-{now}-{self._rng.randint(*ORDER_SUFFIX_RANGE)}"
        self._order_ids.add(order_id)
        return order_id

    def simulate_order(self) -> PlacedOrder:
        """Emit OrderCreated and schedule its settlement payment_delay_sec later."""
        customer = self._pick(self._catalog.customers, "customers")
        order_id = self.new_order_id()
        items = []
        for _ in range(self._rng.randint(*ORDER_LINES_RANGE)):
            product = self._pick(self._catalog.products, "products")
            quantity = self._rng.randint(*QUANTITY_RANGE)
            items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=product.price,
                subtotal=round(product.price * quantity, 2),
            ))
        total = round(sum(item.subtotal for item in items), 2)
        order = PlacedOrder(order_id=order_id, customer=customer, items=items, total_amount=total)

        created = self._emit(OrderCreated(
            order_id=order_id,
            customer_id=customer.id,
            customer_name=customer.name,
            order_date=iso_ms(utc_now()),
            items=items,
            total_amount=total,
            status=STATUS_CREATED,
        ), correlation_id=order_id)
        order.envelopes.extend(self._collect(created))
        self._logger.info(
            "order_created",
            extra={"order_id": order_id, "customer_id": customer.id, "total": total, "lines": len(items)},
        )
        self._schedule_settlement(order)
        return order

    def _schedule_settlement(self, order: PlacedOrder) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._pending[order.order_id] = loop.call_later(
            self._settings.payment_delay_sec, self._settle_pending, order,
        )

    def _settle_pending(self, order: PlacedOrder) -> None:
        self._pending.pop(order.order_id, None)
        self.settle_payment(order)

    def settle_payment(self, order: PlacedOrder) -> List[Envelope]:
        """
        Authorize (probability payment_success_rate) and mark paid, or fail
        and cancel. Both events carry the order id as correlation id.
        """
        order_id = order.order_id
        if self._rng.random() < self._settings.payment_success_rate:
            envelopes = self._collect(
                self._emit(PaymentAuthorized(
                    order_id=order_id,
                    customer_id=order.customer.id,
                    amount=order.total_amount,
                    transaction_id=f"tx-{_millis()}-{uuid.uuid4().hex[:6]}",
                ), correlation_id=order_id),
                self._emit(OrderUpdated(
                    order_id=order_id,
                    previous_status=STATUS_CREATED,
                    current_status=STATUS_PAID,
                    update_reason=REASON_PAYMENT_RECEIVED,
                ), correlation_id=order_id),
            )
            self._logger.info("payment_authorized", extra={"order_id": order_id})
        else:
            envelopes = self._collect(
                self._emit(PaymentFailed(
                    order_id=order_id,
                    customer_id=order.customer.id,
                    amount=order.total_amount,
                    failure_reason=REASON_INSUFFICIENT_FUNDS,
                ), correlation_id=order_id),
                self._emit(OrderCancelled(
                    order_id=order_id,
                    previous_status=STATUS_CREATED,
                    cancellation_reason=REASON_PAYMENT_FAILED,
                ), correlation_id=order_id),
            )
            self._logger.warning("payment_failed", extra={"order_id": order_id})
        order.envelopes.extend(envelopes)
        return envelopes

    def pending_orders(self) -> List[str]:
        """Correlation ids of orders whose settlement has not fired yet."""
        return list(self._pending)

    def cancel_pending(self) -> int:
        """Cancel every scheduled settlement; returns how many were cancelled."""
        count = len(self._pending)
        for handle in self._pending.values():
            handle.cancel()
        self._pending.clear()
        return count

    # ---- Loop ----

    def step(self) -> None:
        """Run one uniformly chosen primary step."""
        action = self._pick(
            (self.simulate_registration, self.simulate_inventory_change, self.simulate_order),
            "steps",
        )
        action()

    async def run_forever(self, interval: Union[float, Callable[[], float], None] = None) -> None:
        """Every interval seconds (a number, or a callable returning one) run step()."""
        if interval is None:
            interval = self._settings.publish_interval_sec
        self._logger.info("simulation_started")
        try:
            while True:
                delay = interval() if callable(interval) else interval
                await asyncio.sleep(delay)
                self.step()
        finally:
            self._logger.info("simulation_stopped")

    def start(self, interval: Union[float, Callable[[], float], None] = None) -> asyncio.Task:
        """Start run_forever as a task on the running loop (idempotent)."""
        if self.running:
            return self._task
        loop = self._loop or asyncio.get_running_loop()
        self._task = loop.create_task(self.run_forever(interval))
        return self._task

    def stop(self) -> None:
        """Stop the periodic loop and cancel pending settlements."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        cancelled = self.cancel_pending()
        if cancelled:
            self._logger.info("settlements_cancelled", extra={"count": cancelled})
