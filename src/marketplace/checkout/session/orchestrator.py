"""Checkout orchestration shared by the session command handlers.

Snapshotting listings, grouping by seller, pricing, holding stock and
claiming the buyer's single active-session slot all live here, so creation,
modification, payment and the expiry sweep apply the same rules.
"""

import json
from collections import OrderedDict

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.catalogue.listings import get_catalogue
from marketplace.checkout.active_sessions import get_registry
from marketplace.checkout.pricing.engine import compute_aggregate, compute_seller_group, round_money
from marketplace.checkout.pricing.policy import get_policy
from marketplace.checkout.session.session import (
    CheckoutItem,
    CheckoutSession,
    SellerGroup,
    can_modify,
    is_expired,
    minutes_remaining,
)
from marketplace.errors import InsufficientStockError, ItemUnavailableError, SessionNotModifiableError
from marketplace.identity.directory import get_directory
from marketplace.inventory.ledger import get_ledger
from marketplace.inventory.reservation.manager import StockReservationManager

logger = structlog.get_logger(__name__)

CLAIM_ATTEMPTS = 3


def session_repo():
    return current_domain.repository_for(CheckoutSession)


# ---------------------------------------------------------------------------
# Snapshot and pricing
# ---------------------------------------------------------------------------
def parse_item_lines(raw_items) -> list[tuple[str, int]]:
    """Normalise ``[{listing_id, quantity}]`` (list or JSON), merging repeated listings."""
    if isinstance(raw_items, str):
        raw_items = json.loads(raw_items)
    if not raw_items:
        raise ValidationError({"items": ["At least one item is required to check out"]})

    merged: OrderedDict[str, int] = OrderedDict()
    for raw in raw_items:
        listing_id = raw.get("listing_id")
        quantity = raw.get("quantity", 1)
        if not listing_id:
            raise ValidationError({"items": ["Every item needs a listing_id"]})
        if not isinstance(quantity, int) or quantity < 1:
            raise ValidationError({"quantity": [f"Quantity for {listing_id} must be at least 1"]})
        merged[str(listing_id)] = merged.get(str(listing_id), 0) + quantity
    return list(merged.items())


def snapshot_items(lines) -> list[CheckoutItem]:
    """Copy each listing's live price and seller into checkout items.

    Stock is not consulted here; see ``confirm_availability``.
    """
    listings = get_catalogue().get_listings([listing_id for listing_id, _ in lines])

    items = []
    for listing_id, quantity in lines:
        listing = listings.get(listing_id)
        if listing is None:
            raise ItemUnavailableError(listing_id, "Listing not found")
        if not listing.is_active:
            raise ItemUnavailableError(listing_id)

        items.append(
            CheckoutItem(
                listing_id=listing_id,
                listing_name=listing.name,
                listing_type=listing.listing_type,
                seller_id=listing.seller_id,
                seller_name=listing.seller_name,
                unit_price=round_money(listing.price),
                discount=round_money((listing.discount or 0.0) * quantity),
                quantity=quantity,
            )
        )
    return items


def confirm_availability(items, held=None) -> None:
    """Record ledger stock on each product item, failing if any line exceeds it.

    ``held`` maps listing ids to units the buyer's previous session holds;
    they count as available because that session is retired next.
    """
    ledger = get_ledger()
    held = held or {}
    for item in items:
        if item.listing_type != "product":
            continue
        available = ledger.get_availability(str(item.listing_id)) + held.get(str(item.listing_id), 0)
        if item.quantity > available:
            raise InsufficientStockError(str(item.listing_id), requested=item.quantity, available=available)
        item.available_stock = available


def items_by_seller(items) -> OrderedDict:
    grouped: OrderedDict[str, list] = OrderedDict()
    for item in items:
        grouped.setdefault(str(item.seller_id), []).append(item)
    return grouped


def price_items(items, delivery_method, payment_method):
    """Price every seller's share. Returns ``({seller_id: SellerGroupPricing}, AggregatePricing)``."""
    policy = get_policy()
    directory = get_directory()

    group_pricing = OrderedDict()
    for seller_id, seller_items in items_by_seller(items).items():
        group_pricing[seller_id] = compute_seller_group(
            seller_items,
            delivery_method,
            seller_delivery_settings=directory.get_delivery_settings(seller_id),
            payment_method=payment_method,
            policy=policy,
        )
    return group_pricing, compute_aggregate(group_pricing.values(), currency=policy.currency)


def build_seller_groups(items, group_pricing) -> list[SellerGroup]:
    groups = []
    for seller_id, seller_items in items_by_seller(items).items():
        priced = group_pricing[seller_id]
        groups.append(
            SellerGroup(
                seller_id=seller_id,
                seller_name=seller_items[0].seller_name,
                listing_ids=json.dumps([str(item.listing_id) for item in seller_items]),
                subtotal=priced.subtotal,
                delivery_fee=priced.delivery_fee,
                platform_fee=priced.platform_fee,
                gateway_fee=priced.gateway_fee,
                total_amount=priced.total_amount,
                seller_receives=priced.seller_receives,
                online_payment_allowed=priced.online_payment_allowed,
            )
        )
    return groups


def reprice_session(session, changed_fields=None, now=None) -> None:
    group_pricing, aggregate = price_items(session.items, session.delivery_method, session.payment_method)
    session.apply_pricing(group_pricing, aggregate, changed_fields=changed_fields, now=now)


# ---------------------------------------------------------------------------
# Holds
# ---------------------------------------------------------------------------
def release_session_holds(session, reason) -> int:
    """Return every hold the session still references to the ledger."""
    manager = StockReservationManager()
    restored = 0
    for reference in session.stock_reservations:
        try:
            if manager.release(str(reference.reservation_id), reason=reason):
                restored += 1
        except ObjectNotFoundError:
            logger.warning(
                "Session references an unknown reservation",
                session_id=str(session.id),
                reservation_id=str(reference.reservation_id),
            )
    return restored


# ---------------------------------------------------------------------------
# Loading and passive expiry
# ---------------------------------------------------------------------------
def expire_if_due(session, now=None) -> bool:
    """Mark an active session past its deadline as expired and free its stock."""
    if not session.is_active or not is_expired(session, now):
        return False

    released = release_session_holds(session, reason="expired")
    session.expire(now=now)
    session_repo().add(session)
    get_registry().release(str(session.user_id), str(session.id))

    logger.info(
        "Checkout session expired",
        session_id=str(session.id),
        user_id=str(session.user_id),
        released_reservations=released,
    )
    return True


def load_session(session_id, now=None) -> CheckoutSession:
    """Fetch a session, applying expiry if its deadline has passed."""
    session = session_repo().get(session_id)
    expire_if_due(session, now)
    return session


# ---------------------------------------------------------------------------
# Single active session per user
# ---------------------------------------------------------------------------
def active_session_for(user_id, now=None) -> CheckoutSession | None:
    """The session the registry names for ``user_id``, if it is still active."""
    current = get_registry().current(str(user_id))
    if current is None:
        return None
    try:
        session = session_repo().get(current)
    except ObjectNotFoundError:
        # Claimed by a create that has not committed (or never will)
        return None
    if not session.is_active or expire_if_due(session, now):
        return None
    return session


def held_quantities(session) -> dict[str, int]:
    """Units per listing the session currently holds in the ledger."""
    held: dict[str, int] = {}
    if session is None:
        return held
    for reference in session.stock_reservations:
        held[str(reference.listing_id)] = held.get(str(reference.listing_id), 0) + reference.quantity
    return held


def retire(session, reason="superseded", now=None) -> None:
    """Cancel an active session so a new one can take its place, freeing its stock."""
    release_session_holds(session, reason=reason)
    session.cancel(reason=reason, now=now)
    session_repo().add(session)
    logger.info("Checkout session superseded", session_id=str(session.id), user_id=str(session.user_id))


def retire_session(session_id, reason="superseded", now=None) -> None:
    try:
        session = session_repo().get(session_id)
    except ObjectNotFoundError:
        return
    if not session.is_active or expire_if_due(session, now):
        return
    retire(session, reason=reason, now=now)


def claim_active_slot(user_id, session_id, now=None) -> None:
    """Make ``session_id`` the user's only active session, retiring whoever holds the slot."""
    registry = get_registry()
    for _ in range(CLAIM_ATTEMPTS):
        current = registry.current(str(user_id))
        if current is not None and current != str(session_id):
            retire_session(current, now=now)
        if registry.compare_and_set(str(user_id), current, str(session_id)):
            return
    raise ValidationError({"session": ["Another checkout for this user is in progress. Please retry"]})


def assert_holds_active_slot(session) -> None:
    """Refuse an active session the registry no longer names.

    Two creates racing for one buyer can both persist. Only the one holding
    the slot may go on to payment or orders; the other keeps its holds until
    it is cancelled or expires.
    """
    if not session.is_active:
        return
    if get_registry().current(str(session.user_id)) == str(session.id):
        return

    logger.warning(
        "Checkout session lost its active slot",
        session_id=str(session.id),
        user_id=str(session.user_id),
    )
    raise SessionNotModifiableError(str(session.id), "superseded")


# ---------------------------------------------------------------------------
# Read model
# ---------------------------------------------------------------------------
def serialize_session(session, now=None) -> dict:
    data = session.to_dict()
    data["id"] = str(session.id)
    data["created_orders"] = session.order_ids
    data["seller_groups"] = [
        {**group.to_dict(), "listing_ids": group.listing_id_list} for group in session.seller_groups
    ]
    data["is_expired"] = is_expired(session, now)
    data["can_modify"] = can_modify(session, now)
    data["minutes_remaining"] = minutes_remaining(session, now)
    return data
