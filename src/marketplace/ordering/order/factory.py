"""Order factory: turns a checkout session into one order per seller group.

Creation is all-or-nothing. Every group is validated and built in memory
first; failures are collected per seller and raised together. Reservations
are committed and orders written only once every order of the session has
been built, so a failed batch leaves the holds in place and no order
behind.

An order's ``total_amount`` is what its seller's goods and delivery cost
the buyer: items less discount plus shipping. Platform and gateway fees are
carried on the order as ``platform_fee`` and ``gateway_fee`` but are not in
that total, so the orders' ``total_amount`` values add up to the session
total only when both fees are zero. In general the session total equals the
sum of ``total_amount + platform_fee + gateway_fee`` over its orders.
"""

from collections import defaultdict

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketplace.checkout.session.session import SessionStatus
from marketplace.errors import OrderCreationError
from marketplace.identity.directory import get_directory
from marketplace.inventory.reservation.manager import StockReservationManager
from marketplace.ordering.order.numbering import OrderNumberGenerator
from marketplace.ordering.order.order import (
    BuyerSnapshot,
    Order,
    OrderAddress,
    OrderItem,
    SellerSnapshot,
)
from marketplace.utils.timestamps import as_utc, utcnow

logger = structlog.get_logger(__name__)


def _order_number_taken(order_number) -> bool:
    repo = current_domain.repository_for(Order)
    return bool(repo._dao.query.filter(order_number=order_number).all().items)


def _messages(exc: ValidationError) -> list[str]:
    return [f"{field}: {message}" for field, messages in exc.messages.items() for message in messages]


class OrderFactory:
    def __init__(self, directory=None, manager=None, numbers=None):
        self._directory = directory
        self._manager = manager
        self.numbers = numbers or OrderNumberGenerator(exists=_order_number_taken)

    @property
    def directory(self):
        return self._directory or get_directory()

    @property
    def manager(self):
        return self._manager or StockReservationManager()

    @property
    def _repo(self):
        return current_domain.repository_for(Order)

    def existing_orders(self, session) -> list[Order]:
        orders = self._repo._dao.query.filter(checkout_session_id=str(session.id)).all().items
        wanted = session.order_ids
        if wanted:
            position = {order_id: index for index, order_id in enumerate(wanted)}
            orders = sorted(orders, key=lambda order: position.get(str(order.id), len(wanted)))
        return list(orders)

    def _build_items(self, session, group) -> list[OrderItem]:
        return [
            OrderItem(
                listing_id=item.listing_id,
                listing_name=item.listing_name,
                listing_type=item.listing_type,
                unit_price=item.unit_price,
                quantity=item.quantity,
                discount=item.discount or 0.0,
            )
            for item in session.items_for(group)
        ]

    def _check_reservations(self, session, group, manager) -> tuple[list, list[str]]:
        reservations, problems = [], []
        for reference in session.reservations_for(group.listing_id_list):
            try:
                reservation = manager.get(str(reference.reservation_id))
            except ObjectNotFoundError:
                problems.append(f"Reservation {reference.reservation_id} no longer exists")
                continue
            if not manager.is_committable(reservation):
                problems.append(f"Stock hold for listing {reference.listing_id} is no longer active")
                continue
            reservations.append(reservation)
        return reservations, problems

    def create_orders(self, session, now=None) -> list[Order]:
        """Create and persist the session's orders, or raise ``OrderCreationError``."""
        if session.status == SessionStatus.COMPLETED.value:
            return self.existing_orders(session)

        now = as_utc(now) or utcnow()
        directory = self.directory
        manager = self.manager
        failures = defaultdict(list)

        buyer_profile = directory.get_profile(str(session.user_id))
        if buyer_profile is None:
            failures["buyer"].append(f"Buyer {session.user_id} has no profile")

        address = None
        if session.delivery_address is not None:
            address = OrderAddress(**session.delivery_address.to_dict())

        built = []
        for group in session.seller_groups:
            seller_id = str(group.seller_id)
            seller_profile = directory.get_profile(seller_id)
            if seller_profile is None:
                failures[seller_id].append(f"Seller {seller_id} has no profile")

            reservations, problems = self._check_reservations(session, group, manager)
            failures[seller_id].extend(problems)

            if buyer_profile is None or seller_profile is None or problems:
                continue

            try:
                order = Order.place(
                    order_number=self.numbers.generate(now),
                    checkout_session_id=str(session.id),
                    buyer=BuyerSnapshot(
                        user_id=buyer_profile.user_id,
                        name=buyer_profile.name,
                        email=buyer_profile.email,
                        phone=buyer_profile.phone,
                    ),
                    seller=SellerSnapshot(
                        user_id=seller_profile.user_id,
                        name=seller_profile.name,
                        email=seller_profile.email,
                        phone=seller_profile.phone,
                        shop_name=seller_profile.shop_name or group.seller_name,
                    ),
                    items=self._build_items(session, group),
                    shipping_fee=group.delivery_fee,
                    platform_fee=group.platform_fee,
                    gateway_fee=group.gateway_fee,
                    seller_receives=group.seller_receives,
                    currency=session.pricing.currency,
                    delivery_method=session.delivery_method,
                    delivery_address=address,
                    payment_method=session.payment_method,
                    now=now,
                )
            except ValidationError as exc:
                failures[seller_id].extend(_messages(exc))
                continue
            built.append((order, reservations))

        failures = {key: reasons for key, reasons in failures.items() if reasons}
        if failures:
            logger.warning(
                "Order creation failed",
                session_id=str(session.id),
                failed_sellers=sorted(failures),
            )
            raise OrderCreationError(str(session.id), failures)

        for order, reservations in built:
            for reservation in reservations:
                try:
                    manager.commit(reservation)
                except ValidationError as exc:
                    raise OrderCreationError(str(session.id), {str(order.seller_id): _messages(exc)})

        orders = []
        for order, _ in built:
            self._repo.add(order)
            orders.append(order)
            logger.info(
                "Order created",
                order_id=str(order.id),
                order_number=order.order_number,
                session_id=str(session.id),
                seller_id=str(order.seller_id),
                total_amount=order.total_amount,
            )
        return orders


def create_orders(session, now=None) -> list[Order]:
    return OrderFactory().create_orders(session, now=now)
