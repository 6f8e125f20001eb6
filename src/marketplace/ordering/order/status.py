"""Order status updates: command and handler."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.identity.directory import get_directory
from marketplace.ordering.order.order import Order

logger = structlog.get_logger(__name__)


@marketplace.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    new_status = String(required=True, max_length=20)
    note = String(max_length=500)
    actor_id = Identifier(required=True)


@marketplace.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if not get_directory().can_user_modify(order, str(command.actor_id)):
            raise ValidationError({"actor_id": [f"User {command.actor_id} may not change order {order.order_number}"]})

        previous = order.status
        order.update_status(command.new_status, note=command.note, actor_id=str(command.actor_id))
        repo.add(order)

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            order_number=order.order_number,
            previous_status=previous,
            new_status=order.status,
            actor_id=str(command.actor_id),
        )
        return order.status
