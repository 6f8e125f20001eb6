"""Pydantic request/response schemas for the marketplace API.

These are external contracts, kept separate from the Protean commands they
are translated into.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class ItemLineSchema(BaseModel):
    listing_id: str
    quantity: int = Field(ge=1, default=1)


class DeliveryAddressSchema(BaseModel):
    address_type: str
    recipient_name: str | None = None
    phone: str | None = None
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postcode: str | None = None
    campus: str | None = None
    building: str | None = None
    room: str | None = None
    pickup_location: str | None = None
    notes: str | None = None


# ---------------------------------------------------------------------------
# Checkout Request Schemas
# ---------------------------------------------------------------------------
class CreateSessionRequest(BaseModel):
    user_id: str
    session_type: str = "cart"
    items: list[ItemLineSchema] = Field(min_length=1)
    delivery_method: str | None = None
    payment_method: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "buyer-001",
                    "session_type": "cart",
                    "items": [
                        {"listing_id": "listing-001", "quantity": 2},
                        {"listing_id": "listing-002", "quantity": 1},
                    ],
                    "delivery_method": "campus_delivery",
                    "payment_method": "credit_card",
                }
            ]
        }
    }


class UpdateSessionRequest(BaseModel):
    delivery_method: str | None = None
    delivery_address: DeliveryAddressSchema | None = None
    payment_method: str | None = None
    item_quantities: dict[str, int] | None = None


class ExpireSessionsRequest(BaseModel):
    as_of: datetime | None = None


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class UpdateOrderStatusRequest(BaseModel):
    new_status: str
    actor_id: str
    note: str | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class SessionIdResponse(BaseModel):
    session_id: str


class PaymentIntentResponse(BaseModel):
    intent_id: str
    client_secret: str | None = None


class PlaceOrdersResponse(BaseModel):
    session_id: str
    order_ids: list[str]
    order_numbers: list[str]


class ExpireSessionsResponse(BaseModel):
    expired: int
    purged: int


class StatusResponse(BaseModel):
    status: str = "ok"
