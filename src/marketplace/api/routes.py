"""FastAPI routes for checkout sessions and orders."""

import json

from fastapi import APIRouter, Header, HTTPException
from protean.utils.globals import current_domain

from marketplace.api.schemas import (
    CreateSessionRequest,
    ExpireSessionsRequest,
    ExpireSessionsResponse,
    PaymentIntentResponse,
    PlaceOrdersResponse,
    SessionIdResponse,
    StatusResponse,
    UpdateOrderStatusRequest,
    UpdateSessionRequest,
)
from marketplace.checkout.session.cancellation import CancelCheckoutSession
from marketplace.checkout.session.creation import CreateCheckoutSession
from marketplace.checkout.session.expiry import ExpireStaleCheckoutSessions
from marketplace.checkout.session.modification import UpdateCheckoutSession
from marketplace.checkout.session.orchestrator import load_session, serialize_session
from marketplace.checkout.session.payment import CreatePaymentIntent
from marketplace.identity.directory import get_directory
from marketplace.ordering.order.order import Order
from marketplace.ordering.order.placement import ConfirmCheckoutPayment, PlaceOrders
from marketplace.ordering.order.status import UpdateOrderStatus
from marketplace.payments.gateway import get_gateway

# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/sessions", status_code=201, response_model=SessionIdResponse)
async def create_session(body: CreateSessionRequest) -> SessionIdResponse:
    command = CreateCheckoutSession(
        user_id=body.user_id,
        session_type=body.session_type,
        items=json.dumps([item.model_dump() for item in body.items]),
        delivery_method=body.delivery_method,
        payment_method=body.payment_method,
    )
    result = current_domain.process(command, asynchronous=False)
    return SessionIdResponse(session_id=result)


@checkout_router.get("/sessions/{session_id}")
async def get_session(session_id: str) -> dict:
    """Read a session. A session past its deadline is reported (and recorded) as expired."""
    return serialize_session(load_session(session_id))


@checkout_router.put("/sessions/{session_id}", response_model=SessionIdResponse)
async def update_session(session_id: str, body: UpdateSessionRequest) -> SessionIdResponse:
    command = UpdateCheckoutSession(
        session_id=session_id,
        delivery_method=body.delivery_method,
        delivery_address=(
            json.dumps(body.delivery_address.model_dump(exclude_none=True)) if body.delivery_address else None
        ),
        payment_method=body.payment_method,
        item_quantities=json.dumps(body.item_quantities) if body.item_quantities else None,
    )
    result = current_domain.process(command, asynchronous=False)
    return SessionIdResponse(session_id=result)


@checkout_router.delete("/sessions/{session_id}", response_model=StatusResponse)
async def cancel_session(session_id: str, reason: str = "cancelled_by_user") -> StatusResponse:
    command = CancelCheckoutSession(session_id=session_id, reason=reason)
    result = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=result)


@checkout_router.post("/sessions/{session_id}/payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(session_id: str) -> PaymentIntentResponse:
    result = current_domain.process(CreatePaymentIntent(session_id=session_id), asynchronous=False)
    return PaymentIntentResponse(**result)


@checkout_router.post("/sessions/{session_id}/orders", status_code=201, response_model=PlaceOrdersResponse)
async def place_orders(session_id: str) -> PlaceOrdersResponse:
    result = current_domain.process(PlaceOrders(session_id=session_id), asynchronous=False)
    return PlaceOrdersResponse(**result)


@checkout_router.post(
    "/payments/{payment_intent_ref}/confirm",
    status_code=201,
    response_model=PlaceOrdersResponse,
)
async def confirm_payment(
    payment_intent_ref: str,
    x_payment_signature: str = Header(default=""),
) -> PlaceOrdersResponse:
    """Payment gateway callback for a succeeded intent."""
    if not get_gateway().verify_webhook_signature(payment_intent_ref, x_payment_signature):
        raise HTTPException(status_code=401, detail="Invalid payment webhook signature")

    command = ConfirmCheckoutPayment(payment_intent_ref=payment_intent_ref)
    result = current_domain.process(command, asynchronous=False)
    return PlaceOrdersResponse(**result)


@checkout_router.post("/maintenance/expire-sessions", response_model=ExpireSessionsResponse)
async def expire_sessions(body: ExpireSessionsRequest | None = None) -> ExpireSessionsResponse:
    """Sweep stale sessions. Meant for a scheduler, not for buyers."""
    command = ExpireStaleCheckoutSessions(as_of=body.as_of if body else None)
    result = current_domain.process(command, asynchronous=False)
    return ExpireSessionsResponse(**result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("/{order_id}")
async def get_order(order_id: str, user_id: str) -> dict:
    """``user_id`` is the caller as authenticated upstream; its role comes from the directory."""
    order = current_domain.repository_for(Order).get(order_id)
    if not get_directory().can_user_view(order, user_id):
        raise HTTPException(status_code=403, detail="Not allowed to view this order")

    data = order.to_dict()
    data["id"] = str(order.id)
    data["can_cancel"] = order.can_cancel
    return data


@order_router.put("/{order_id}/status", response_model=StatusResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> StatusResponse:
    command = UpdateOrderStatus(
        order_id=order_id,
        new_status=body.new_status,
        note=body.note,
        actor_id=body.actor_id,
    )
    result = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=result)
