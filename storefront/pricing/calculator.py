"""
Calcul des montants du checkout (pur: pas de DB, pas de réseau).

Formule: total = round2(subtotal - couponDiscount + tax + effectiveShipping)
- Les sommes intermédiaires restent non arrondies; l'arrondi HALF_UP à 2 décimales
  n'est appliqué qu'à tax et total.
- La remise d'un coupon "panier entier" est répartie proportionnellement entre la partie
  taxable et la partie non taxable (cartes cadeaux, produits sans TVA).
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from storefront.checkout.models import CartItem, Coupon, DiscountType, TaxSettings

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# module storefront.pricing.calculator
def round2(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)

def compute_subtotal(items: Iterable[CartItem]) -> Decimal:
    return sum((item.line_total for item in items), ZERO)

def applicable_items(items: Iterable[CartItem], coupon: Coupon) -> List[CartItem]:
    """Lignes concernées par le coupon: tout le panier, ou la/les ligne(s) du produit ciblé."""
    items = list(items)
    if not coupon.product_id:
        return items
    return [i for i in items if (i.product_id or i.id) == coupon.product_id]

def is_coupon_applicable(coupon: Optional[Coupon], subtotal: Decimal, now: Optional[datetime] = None) -> bool:
    """
    Un coupon ne s'applique pas s'il est:
    - inactif, expiré (expires_at <= now) ou épuisé (times_used >= max_uses)
    - sous le minimum d'achat (subtotal < min_purchase)
    """
    if coupon is None or not coupon.is_active:
        return False
    now = now or datetime.now(timezone.utc)
    if coupon.expires_at is not None:
        expires_at = coupon.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at <= now:
            return False
    if coupon.max_uses is not None and coupon.times_used >= coupon.max_uses:
        return False
    return subtotal >= (coupon.min_purchase or ZERO)

def compute_coupon_discount(items: Iterable[CartItem], coupon: Optional[Coupon], now: Optional[datetime] = None) -> Decimal:
    """
    Remise monétaire du coupon, bornée à [0, subtotal des lignes concernées].
    - free_shipping: 0 (la livraison est traitée par get_effective_shipping_cost)
    """
    items = list(items)
    if not is_coupon_applicable(coupon, compute_subtotal(items), now=now):
        return ZERO
    if coupon.discount_type == DiscountType.FREE_SHIPPING:
        return ZERO

    base = compute_subtotal(applicable_items(items, coupon))
    value = Decimal(coupon.discount_value or ZERO)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = base * value / HUNDRED
    else:
        discount = value
    return max(ZERO, min(discount, base))

def compute_taxable_amount(items: Iterable[CartItem]) -> Decimal:
    return sum(
        (item.line_total for item in items if not item.is_gift_card and item.tax_enabled),
        ZERO,
    )

def compute_tax(items: Iterable[CartItem], coupon: Optional[Coupon], discount: Decimal, tax_settings: TaxSettings) -> Decimal:
    """
    TVA sur la partie taxable après répartition proportionnelle de la remise:
      taxableRatio = taxableAmount / subtotal
      taxableAfterDiscount = max(0, taxableAmount - discount * taxableRatio)
      tax = round2(taxableAfterDiscount * rate)
    Le coupon n'intervient qu'à travers `discount` (un free_shipping ne touche pas la TVA).
    """
    items = list(items)
    if not tax_settings.enabled:
        return round2(ZERO)
    subtotal = compute_subtotal(items)
    taxable_amount = compute_taxable_amount(items)
    if taxable_amount <= ZERO:
        return round2(ZERO)

    taxable_ratio = taxable_amount / subtotal if subtotal > ZERO else ZERO
    taxable_discount = Decimal(discount or ZERO) * taxable_ratio
    taxable_after_discount = max(ZERO, taxable_amount - taxable_discount)
    rate = Decimal(tax_settings.rate) / HUNDRED
    return round2(taxable_after_discount * rate)

def get_effective_shipping_cost(quoted_cost: Decimal, coupon: Optional[Coupon]) -> Decimal:
    if coupon is not None and coupon.discount_type == DiscountType.FREE_SHIPPING:
        return ZERO
    return Decimal(quoted_cost or ZERO)

def compute_total(subtotal: Decimal, discount: Decimal, tax: Decimal, effective_shipping: Decimal) -> Decimal:
    return round2(subtotal - discount + tax + effective_shipping)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    taxable_amount: Decimal
    taxable_ratio: Decimal
    coupon_discount: Decimal
    tax: Decimal
    quoted_shipping: Decimal
    effective_shipping: Decimal
    total: Decimal


def compute_breakdown(
    items: Iterable[CartItem],
    coupon: Optional[Coupon],
    tax_settings: TaxSettings,
    quoted_shipping: Decimal,
    now: Optional[datetime] = None,
) -> PriceBreakdown:
    """Enchaîne subtotal -> remise -> TVA -> livraison effective -> total pour un panier."""
    items = list(items)
    subtotal = compute_subtotal(items)
    # Un coupon non applicable ne doit pas non plus offrir la livraison
    effective_coupon = coupon if is_coupon_applicable(coupon, subtotal, now=now) else None
    discount = compute_coupon_discount(items, effective_coupon, now=now)
    taxable_amount = compute_taxable_amount(items)
    tax = compute_tax(items, effective_coupon, discount, tax_settings)
    effective_shipping = get_effective_shipping_cost(quoted_shipping, effective_coupon)
    return PriceBreakdown(
        subtotal=subtotal,
        taxable_amount=taxable_amount,
        taxable_ratio=(taxable_amount / subtotal) if subtotal > ZERO else ZERO,
        coupon_discount=discount,
        tax=tax,
        quoted_shipping=Decimal(quoted_shipping or ZERO),
        effective_shipping=effective_shipping,
        total=compute_total(subtotal, discount, tax, effective_shipping),
    )
