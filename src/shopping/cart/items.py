"""Cart item management: commands and handler."""

from protean import handle
from protean.fields import Float, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from shopping.cart.cart import ShoppingCart
from shopping.domain import shopping


def cart_for_customer(customer_id) -> ShoppingCart:
    """Return the customer's cart, creating it on first use."""
    repo = current_domain.repository_for(ShoppingCart)
    found = repo._dao.query.filter(customer_id=customer_id).all().items
    if found:
        return repo.get(str(found[0].id))

    return ShoppingCart.create(customer_id=customer_id)


@shopping.command(part_of="ShoppingCart")
class AddToCart:
    customer_id = Identifier(required=True)
    item_kind = String(required=True, max_length=20)
    product_ref = String(required=True, max_length=100)
    variant_ref = String(max_length=100)
    quantity = Integer(required=True, min_value=1)
    unit_price = Float(default=0.0)
    snapshot = Text()  # JSON: {name, thumbnail, stock, brand}


@shopping.command(part_of="ShoppingCart")
class UpdateCartQuantity:
    customer_id = Identifier(required=True)
    item_kind = String(required=True, max_length=20)
    product_ref = String(required=True, max_length=100)
    variant_ref = String(max_length=100)
    quantity = Integer(required=True, min_value=0)


@shopping.command(part_of="ShoppingCart")
class RemoveFromCart:
    customer_id = Identifier(required=True)
    item_kind = String(required=True, max_length=20)
    product_ref = String(required=True, max_length=100)
    variant_ref = String(max_length=100)


@shopping.command(part_of="ShoppingCart")
class ClearCart:
    customer_id = Identifier(required=True)


@shopping.command_handler(part_of=ShoppingCart)
class ManageCartItemsHandler:
    @handle(AddToCart)
    def add_to_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = cart_for_customer(command.customer_id)
        cart.add_item(
            item_kind=command.item_kind,
            product_ref=command.product_ref,
            variant_ref=command.variant_ref,
            quantity=command.quantity,
            unit_price=command.unit_price or 0.0,
            snapshot=command.snapshot,
        )
        repo.add(cart)
        return str(cart.id)

    @handle(UpdateCartQuantity)
    def update_cart_quantity(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = cart_for_customer(command.customer_id)
        cart.update_item_quantity(
            item_kind=command.item_kind,
            product_ref=command.product_ref,
            variant_ref=command.variant_ref,
            quantity=command.quantity,
        )
        repo.add(cart)
        return str(cart.id)

    @handle(RemoveFromCart)
    def remove_from_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = cart_for_customer(command.customer_id)
        cart.remove_item(
            item_kind=command.item_kind,
            product_ref=command.product_ref,
            variant_ref=command.variant_ref,
        )
        repo.add(cart)
        return str(cart.id)

    @handle(ClearCart)
    def clear_cart(self, command):
        repo = current_domain.repository_for(ShoppingCart)
        cart = cart_for_customer(command.customer_id)
        cart.clear()
        repo.add(cart)
        return str(cart.id)
