"""
In-memory point-of-sale cart.

Lines are keyed by product id and hold the weight in grams together with the
price and cost per kg captured when the product was added.
"""
from dataclasses import dataclass
from decimal import Decimal

from dkmandiri.core.formatting import format_weight, line_total


class CartError(Exception):
    """Raised when a POS cart change breaks a stock or minimum weight rule"""

    pass


@dataclass
class CartLine:
    product_id: int
    name: str
    weight: Decimal
    price: Decimal
    cost_price: Decimal
    min_order_weight: Decimal
    stock: Decimal

    @property
    def total(self) -> Decimal:
        return line_total(self.weight, self.price)

    @property
    def total_cost(self) -> Decimal:
        return line_total(self.weight, self.cost_price)


class POSCart:
    """Cashier's cart, built from catalog products"""

    def __init__(self):
        self._lines = {}

    def __len__(self):
        return len(self._lines)

    def __contains__(self, product_id):
        return product_id in self._lines

    def add(self, product, weight=None):
        """
        Add a product. A new line starts at the minimum order weight (or the
        given weight); an existing line grows by the same step.
        """
        step = Decimal(weight) if weight is not None else product.min_order_weight
        if product.weight_in_stock <= 0 or not product.is_available:
            raise CartError(f'{product.name} is out of stock.')

        line = self._lines.get(product.pk)
        new_weight = step + (line.weight if line else Decimal('0'))
        if line is None and step < product.min_order_weight:
            raise CartError(f'Minimum order for {product.name} is {format_weight(product.min_order_weight)}.')
        if new_weight > product.weight_in_stock:
            raise CartError(
                f'Insufficient stock for {product.name}. Available: {format_weight(product.weight_in_stock)}.'
            )

        if line is None:
            line = CartLine(
                product_id=product.pk,
                name=product.name,
                weight=new_weight,
                price=product.price,
                cost_price=product.cost_price,
                min_order_weight=product.min_order_weight,
                stock=product.weight_in_stock,
            )
            self._lines[product.pk] = line
        else:
            line.weight = new_weight
        return line

    def update_weight(self, product_id, grams):
        line = self._get(product_id)
        grams = Decimal(grams)
        if grams < line.min_order_weight:
            raise CartError(f'Minimum order for {line.name} is {format_weight(line.min_order_weight)}.')
        if grams > line.stock:
            raise CartError(f'Insufficient stock for {line.name}. Available: {format_weight(line.stock)}.')
        line.weight = grams
        return line

    def remove(self, product_id):
        self._get(product_id)
        del self._lines[product_id]

    def clear(self):
        self._lines.clear()

    def lines(self):
        return list(self._lines.values())

    def total(self):
        return sum((line.total for line in self._lines.values()), Decimal('0.00'))

    def total_cost(self):
        return sum((line.total_cost for line in self._lines.values()), Decimal('0.00'))

    def profit(self):
        return self.total() - self.total_cost()

    def _get(self, product_id):
        try:
            return self._lines[product_id]
        except KeyError:
            raise CartError(f'Product {product_id} is not in the cart.')
