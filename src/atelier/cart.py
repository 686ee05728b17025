"""Shopping cart held for a single session until checkout."""

import copy

from .errors import InvalidCartError
from .models import CartItem, Customization, Product
from .pricing import cart_subtotal


class Cart:
    """Ordered cart lines, newest first, keyed by product, size and customization."""

    def __init__(self, items: list[CartItem] | None = None):
        self.items: list[CartItem] = list(items or [])

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def _find(
        self, product_id: str, size: str, customization: Customization | None = None
    ) -> CartItem | None:
        for item in self.items:
            if (
                item.product_id == product_id
                and item.selected_size == size
                and item.customization == customization
            ):
                return item
        return None

    def add(
        self,
        product: Product,
        selected_size: str,
        quantity: int = 1,
        customization: Customization | None = None,
    ) -> CartItem:
        """
        Add units of a product in a size.

        An existing line with the same product, size and customization is
        incremented instead of duplicated.

        Raises:
            InvalidCartError: Bad quantity, unknown size, or customization on
                a product that isn't customizable.
        """
        if quantity < 1:
            raise InvalidCartError(f"quantity must be at least 1, got {quantity}")
        if product.sizes and selected_size not in product.sizes:
            raise InvalidCartError(
                f"size {selected_size!r} not offered for {product.name}"
            )
        if customization is not None and not product.is_customizable:
            raise InvalidCartError(f"{product.name} cannot be customized")

        existing = self._find(product.id, selected_size, customization)
        if existing:
            existing.quantity += quantity
            return existing

        item = CartItem.from_product(product, selected_size, quantity, customization)
        self.items.insert(0, item)
        return item

    def decrement(
        self, product_id: str, size: str, customization: Customization | None = None
    ) -> None:
        """Take one unit off the matching line, dropping it when it reaches zero."""
        item = self._find(product_id, size, customization)
        if item is None:
            return
        item.quantity -= 1
        if item.quantity < 1:
            self.items = [i for i in self.items if i is not item]

    def remove(self, product_id: str, size: str) -> None:
        self.items = [
            i for i in self.items
            if not (i.product_id == product_id and i.selected_size == size)
        ]

    def clear(self) -> None:
        self.items = []

    @property
    def subtotal(self) -> float:
        return cart_subtotal(self.items)

    def snapshot(self) -> list[CartItem]:
        """Independent copies of the lines, for placing an order."""
        return copy.deepcopy(self.items)
