# Overview: Staff approval workflow; polling diff, pending alarm, auto-reject, accept-all.

"""
Staff Console Workflow

================================================================================
PURPOSE: Keep the kitchen aware of new paid orders and drive approvals
================================================================================

POLLING:
The console fetches every order about every 10 seconds. fold_snapshot()
compares each snapshot with the ids seen on the previous one and yields the
orders that are new AND pending. The first snapshot only primes the seen
set, so opening the console does not raise an alert per existing order.

ALARM:
While at least one order is pending, PendingAlarm rings immediately and
then every 1.5 seconds; it stops as soon as none remain.

NOT ACCEPTING ORDERS:
With the accepting toggle off, every pending order is rejected through the
API. AutoRejector remembers ids it has rejected so a later tick never
rejects the same order again.

ACCEPT ALL:
Accepts every pending order concurrently. Local copies are marked received
up front; each failed call rolls back only its own order, and the console
re-fetches afterwards to show the authoritative state.
================================================================================
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .client import ApiError, OrdersApiClient


logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 10.0
ALARM_INTERVAL_SECONDS = 1.5
AUTO_REJECT_NOTE = "Auto-rejected: not accepting orders"

# Choices offered to staff; the API accepts any positive number of minutes
PREP_TIME_OPTIONS = (5, 10, 15, 20, 25, 30, 45, 60)

PENDING = "pending"
RECEIVED = "received"


# =============================================================================
# SNAPSHOT DIFF
# =============================================================================

@dataclass(frozen=True)
class PollState:
    seen_ids: FrozenSet[str] = frozenset()
    initial_load: bool = True


def pending_orders(orders: Iterable[dict]) -> List[dict]:
    return [order for order in orders if order.get("status") == PENDING]


def fold_snapshot(state: PollState, orders: List[dict]) -> Tuple[PollState, List[dict]]:
    """
    Returns (next_state, newly_pending).

    newly_pending holds orders absent from the previous snapshot whose status
    is pending. It is always empty for the initial load.
    """
    current_ids = frozenset(order["id"] for order in orders)
    next_state = PollState(seen_ids=current_ids, initial_load=False)
    if state.initial_load:
        return next_state, []
    newly_pending = [
        order for order in pending_orders(orders)
        if order["id"] not in state.seen_ids
    ]
    return next_state, newly_pending


def format_toast(order: dict) -> str:
    items = ", ".join(f"{item.get('qty', 1)}x {item.get('name')}" for item in order.get("items") or [])
    total = float(order.get("total_amount") or 0)
    return f"New order needs approval! {order.get('customer_name') or 'Guest'}: {items} - ${total:.2f}"


# =============================================================================
# ALARM
# =============================================================================

class PendingAlarm:
    """Calls ring() now and every interval seconds until stop()."""

    def __init__(self, ring: Callable[[], None], interval: float = ALARM_INTERVAL_SECONDS):
        self._ring = ring
        self._interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def update(self, pending_count: int) -> None:
        if pending_count > 0:
            self.start()
        else:
            self.stop()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop = threading.Event()
            self._thread = threading.Thread(target=self._loop, args=(self._stop,), daemon=True)
            self._thread.start()

    def stop(self) -> None:
        with self._lock:
            self._stop.set()
            thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._interval + 1.0)

    def _loop(self, stop: threading.Event) -> None:
        while not stop.is_set():
            self._ring()
            stop.wait(self._interval)


# =============================================================================
# AUTO-REJECT
# =============================================================================

class AutoRejector:
    """Rejects each pending order once while the kitchen is not accepting."""

    def __init__(self, reject: Callable[[str], dict]):
        self._reject = reject
        self.rejected_ids: set = set()

    def sweep(self, orders: Iterable[dict]) -> List[str]:
        """Reject pending orders not handled before; returns ids rejected now."""
        rejected_now = []
        for order in pending_orders(orders):
            order_id = order["id"]
            if order_id in self.rejected_ids:
                continue
            self.rejected_ids.add(order_id)
            try:
                self._reject(order_id)
            except ApiError as exc:
                if exc.status_code == 409:
                    # Someone else moved it first
                    continue
                # Retry on the next tick
                self.rejected_ids.discard(order_id)
                logger.warning("auto_reject_failed", extra={"order_id": order_id, "reason": str(exc)})
                continue
            logger.info("order_auto_rejected", extra={"order_id": order_id})
            rejected_now.append(order_id)
        return rejected_now


# =============================================================================
# ACCEPT ALL
# =============================================================================

@dataclass
class BulkResult:
    succeeded: List[dict] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    def summary(self) -> str:
        text = f"Accepted {len(self.succeeded)} order(s)"
        if self.failed:
            text += f"; {len(self.failed)} failed: {', '.join(sorted(self.failed))}"
        return text


def accept_all(
    accept: Callable[[str], dict],
    order_ids: List[str],
    *,
    max_workers: int = 8,
) -> BulkResult:
    """Run accept(order_id) for every id concurrently; one failure never stops the rest."""
    result = BulkResult()
    if not order_ids:
        return result

    with ThreadPoolExecutor(max_workers=min(max_workers, len(order_ids))) as pool:
        futures = {order_id: pool.submit(accept, order_id) for order_id in order_ids}
        for order_id, future in futures.items():
            try:
                result.succeeded.append(future.result())
            except ApiError as exc:
                result.failed[order_id] = str(exc)
    return result


# =============================================================================
# MONITOR
# =============================================================================

class StaffMonitor:
    """
    One staff console session.

    notify(order) is called for every newly pending order; the CLI rings the
    terminal bell and prints a coloured toast.
    """

    def __init__(
        self,
        client: OrdersApiClient,
        *,
        notify: Callable[[dict], None],
        alarm: PendingAlarm,
        accepting: bool = True,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ):
        self.client = client
        self.notify = notify
        self.alarm = alarm
        self.accepting = accepting
        self.poll_interval = poll_interval
        self.state = PollState()
        self.orders: List[dict] = []
        self.auto_rejector = AutoRejector(lambda order_id: client.reject(order_id, AUTO_REJECT_NOTE))
        # The poller thread and the key handler both tick
        self._lock = threading.Lock()

    def set_accepting(self, accepting: bool) -> None:
        self.accepting = accepting
        logger.info("accepting_orders_changed", extra={"accepting": accepting})

    def tick(self) -> List[dict]:
        """Fetch, diff, alert, and auto-reject once; returns newly pending orders."""
        with self._lock:
            return self._tick()

    def _tick(self) -> List[dict]:
        self.orders = self.client.list_all()
        self.state, newly_pending = fold_snapshot(self.state, self.orders)

        for order in newly_pending:
            self.notify(order)

        still_pending = pending_orders(self.orders)
        if not self.accepting:
            rejected = set(self.auto_rejector.sweep(self.orders))
            still_pending = [order for order in still_pending if order["id"] not in rejected]

        self.alarm.update(len(still_pending))
        return newly_pending

    def accept_all(self, prep_time_minutes: Optional[int] = None) -> BulkResult:
        """Accept every pending order; does nothing while not accepting orders."""
        if not self.accepting:
            logger.info("accept_all_skipped", extra={"reason": "not accepting orders"})
            return BulkResult()
        with self._lock:
            return self._accept_all(prep_time_minutes)

    def _accept_all(self, prep_time_minutes: Optional[int]) -> BulkResult:
        pending = pending_orders(self.orders)

        # Optimistic local update
        for order in pending:
            order["status"] = RECEIVED

        result = accept_all(
            lambda order_id: self.client.accept(order_id, prep_time_minutes),
            [order["id"] for order in pending],
        )

        for order in pending:
            if order["id"] in result.failed:
                order["status"] = PENDING

        logger.info(
            "accept_all_finished",
            extra={"succeeded": len(result.succeeded), "failed": len(result.failed)},
        )
        return result

    def run(self, stop: threading.Event) -> None:
        """Poll until stop is set."""
        try:
            while not stop.is_set():
                try:
                    self.tick()
                except ApiError as exc:
                    logger.warning("poll_failed", extra={"reason": str(exc), "status_code": exc.status_code})
                stop.wait(self.poll_interval)
        finally:
            self.alarm.stop()
