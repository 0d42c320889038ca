"""Cart management — commands and handler.

Opens guest and customer carts; reconciliation lives in ``reconciliation``.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from checkout.cart.cart import Cart
from checkout.domain import checkout


@checkout.command(part_of="Cart")
class CreateCart:
    """Open a cart: a customer cart when ``customer_id`` is given, otherwise a guest cart."""

    customer_id = Identifier()
    session_id = String(max_length=255)


@checkout.command_handler(part_of=Cart)
class ManageCartHandler:
    @handle(CreateCart)
    def create_cart(self, command):
        if command.customer_id:
            cart = Cart.create_remote(customer_id=command.customer_id, session_id=command.session_id)
        else:
            cart = Cart.create_local(session_id=command.session_id)
        current_domain.repository_for(Cart).add(cart)
        return str(cart.id)
