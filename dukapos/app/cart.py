"""
Cart arithmetic for the cashier screen.

Prices are VAT inclusive: a line's VAT share is `line_total * rate / (100 + rate)`
and the sale total equals the subtotal. Nothing here touches the database so the
checkout handler and the quote endpoint share one implementation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

MONEY_Q = Decimal("0.01")


def q_money(v: Decimal) -> Decimal:
    return (v or Decimal("0")).quantize(MONEY_Q, rounding=ROUND_HALF_UP)


def _dec(v) -> Decimal:
    if v is None:
        return Decimal("0")
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


class CartError(ValueError):
    pass


@dataclass(frozen=True)
class CartProduct:
    id: str
    name: str
    selling_price: Decimal
    stock_quantity: int
    vat_rate: Decimal

    @classmethod
    def from_row(cls, row: dict) -> "CartProduct":
        return cls(
            id=str(row["id"]),
            name=row["name"],
            selling_price=_dec(row["selling_price"]),
            stock_quantity=int(row.get("stock_quantity") or 0),
            vat_rate=_dec(row.get("vat_rate")),
        )


@dataclass
class CartItem:
    product: CartProduct
    quantity: int
    line_total: Decimal = Decimal("0")

    def __post_init__(self):
        self.line_total = self.product.selling_price * self.quantity

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def vat_amount(self) -> Decimal:
        rate = self.product.vat_rate
        return (self.line_total * rate) / (Decimal("100") + rate)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {"subtotal": self.subtotal, "vat_amount": self.vat_amount, "total": self.total}


@dataclass
class Cart:
    items: list[CartItem] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def find(self, product_id: str) -> Optional[CartItem]:
        pid = str(product_id)
        for item in self.items:
            if item.product_id == pid:
                return item
        return None

    def add(self, product: CartProduct, quantity: int = 1) -> CartItem:
        if quantity <= 0:
            raise CartError("quantity must be > 0")
        existing = self.find(product.id)
        if existing is not None:
            if existing.quantity + quantity > product.stock_quantity:
                raise CartError("Not enough stock available")
            return self.update_quantity(product.id, existing.quantity + quantity)
        if product.stock_quantity <= 0:
            raise CartError("out of stock")
        if quantity > product.stock_quantity:
            raise CartError("Not enough stock available")
        item = CartItem(product=product, quantity=quantity)
        self.items.append(item)
        return item

    def update_quantity(self, product_id: str, quantity: int) -> Optional[CartItem]:
        # Quantities clamp at zero and zero-quantity lines leave the cart.
        pid = str(product_id)
        kept: list[CartItem] = []
        updated = None
        for item in self.items:
            if item.product_id == pid:
                item = CartItem(product=item.product, quantity=max(0, int(quantity)))
                updated = item
            if item.quantity > 0:
                kept.append(item)
        self.items = kept
        if updated is not None and updated.quantity == 0:
            return None
        return updated

    def remove(self, product_id: str) -> None:
        pid = str(product_id)
        self.items = [i for i in self.items if i.product_id != pid]

    def totals(self) -> CartTotals:
        subtotal = sum((i.line_total for i in self.items), Decimal("0"))
        vat_amount = sum((i.vat_amount for i in self.items), Decimal("0"))
        return CartTotals(
            subtotal=q_money(subtotal),
            vat_amount=q_money(vat_amount),
            total=q_money(subtotal),
        )


def build_cart(products: Iterable[CartProduct], lines: Iterable[tuple[str, int]]) -> Cart:
    """Ring up `(product_id, quantity)` lines against the given catalog rows."""
    by_id = {p.id: p for p in products}
    cart = Cart()
    for product_id, quantity in lines:
        product = by_id.get(str(product_id))
        if product is None:
            raise CartError(f"product not available: {product_id}")
        cart.add(product, int(quantity))
    return cart


def generate_receipt_number(now: Optional[datetime] = None, prefix: str = "RCP") -> str:
    now = now or datetime.now(timezone.utc)
    return f"{prefix}-{int(now.timestamp() * 1000)}"
