# Overview: In-process change feed for the orders table, delivered as server-sent events.

"""
Realtime order changes.

SQLAlchemy session hooks collect INSERT/UPDATE/DELETE events for Order rows
during flush and publish them to the broker only once the transaction
commits; a rollback discards them. Each subscriber has its own queue and
only receives events for orders its actor may read.

Events carry just enough for a client to decide to reload:

    {"table": "orders", "type": "UPDATE", "id": 12, "created_by": 3}

Delivery order relative to the writer's HTTP response is not guaranteed.
"""

from __future__ import annotations

import json
import queue
import threading

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session

from ..models import Order
from .. import policies
from ..policies import Actor

EXTENSION_KEY = "field_orders_realtime"
PENDING_KEY = "field_orders_pending_events"
QUEUE_SIZE = 1000

_listeners_installed = False
_install_lock = threading.Lock()


class Subscription:
    def __init__(self, broker: "Broker", actor: Actor):
        self.broker = broker
        self.actor = actor
        self.queue: queue.Queue = queue.Queue(maxsize=QUEUE_SIZE)

    def offer(self, change: dict) -> None:
        if not policies.can_read_order(self.actor, change):
            return
        try:
            self.queue.put_nowait(change)
        except queue.Full:
            # Slow consumer: drop the oldest event to make room
            try:
                self.queue.get_nowait()
            except queue.Empty:
                pass
            self.queue.put_nowait(change)

    def get(self, timeout: float | None = None) -> dict:
        return self.queue.get(timeout=timeout)

    def close(self) -> None:
        self.broker.unsubscribe(self)


class Broker:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: set[Subscription] = set()

    def subscribe(self, actor: Actor) -> Subscription:
        sub = Subscription(self, actor)
        with self._lock:
            self._subscribers.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, change: dict) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub.offer(change)


def get_broker(app=None) -> Broker:
    app = app or current_app
    return app.extensions[EXTENSION_KEY]


def order_event(kind: str, order: Order) -> dict:
    return {"table": "orders", "type": kind, "id": order.id, "created_by": order.created_by}


# ---- session hooks ----

def _collect(session, flush_context) -> None:
    pending = session.info.setdefault(PENDING_KEY, [])
    for obj in session.new:
        if isinstance(obj, Order):
            pending.append(order_event("INSERT", obj))
    for obj in session.dirty:
        if isinstance(obj, Order) and session.is_modified(obj, include_collections=False):
            pending.append(order_event("UPDATE", obj))
    for obj in session.deleted:
        if isinstance(obj, Order):
            pending.append(order_event("DELETE", obj))


def _publish(session) -> None:
    pending = session.info.pop(PENDING_KEY, None)
    if not pending:
        return
    if not has_app_context() or EXTENSION_KEY not in current_app.extensions:
        return
    broker = current_app.extensions[EXTENSION_KEY]
    for change in pending:
        broker.publish(change)


def _discard(session, *args) -> None:
    session.info.pop(PENDING_KEY, None)


def install_listeners() -> None:
    global _listeners_installed
    with _install_lock:
        if _listeners_installed:
            return
        event.listen(Session, "after_flush", _collect)
        event.listen(Session, "after_commit", _publish)
        event.listen(Session, "after_rollback", _discard)
        _listeners_installed = True


def init_app(app) -> Broker:
    broker = Broker()
    app.extensions[EXTENSION_KEY] = broker
    install_listeners()
    return broker


# ---- server-sent events ----

def format_sse(change: dict) -> str:
    return f"event: {change['type']}\ndata: {json.dumps(change)}\n\n"


def iter_sse(sub: Subscription, heartbeat: float = 15.0, limit: int | None = None):
    """
    Yield SSE frames for a subscription: a greeting comment, then one frame
    per event, with a keep-alive comment whenever `heartbeat` seconds pass
    quietly. Stops after `limit` events when given. Unsubscribes on close.
    """
    sent = 0
    try:
        yield ": connected\n\n"
        while limit is None or sent < limit:
            try:
                change = sub.get(timeout=heartbeat)
            except queue.Empty:
                yield ": keep-alive\n\n"
                continue
            yield format_sse(change)
            sent += 1
    finally:
        sub.close()
