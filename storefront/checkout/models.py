# module storefront.checkout.models
"""
Types du checkout (pydantic): panier, coupon, pending order, commande, facture.
- Les montants sont des Decimal (arrondis uniquement aux frontières tax/total).
- PendingOrder est le seul format "wire" interne: il transite par le pont Redis en JSON.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    PAYPAL = "paypal"
    REVOLUT = "revolut"

    @property
    def needs_external_link(self) -> bool:
        return self is not PaymentMethod.BANK_TRANSFER


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


class CheckoutState(str, Enum):
    IDLE = "idle"
    METHOD_CHOSEN = "method_chosen"
    BANK_INFO_SHOWN = "bank_info_shown"
    AWAITING_EXTERNAL_REDIRECT = "awaiting_external_redirect"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"
    FAILED = "failed"
    CANCELLED = "cancelled"


PAYMENT_STATUS_PENDING = "pending"


class CartItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1)
    is_gift_card: bool = Field(default=False, alias="isGiftCard")
    tax_enabled: bool = True
    product_id: Optional[str] = Field(default=None, alias="productId")
    material_id: Optional[str] = Field(default=None, alias="materialId")
    color_id: Optional[str] = Field(default=None, alias="colorId")
    custom_text: Optional[str] = Field(default=None, alias="customText")
    customization_selections: Optional[List[Dict[str, Any]]] = Field(default=None, alias="colorSelections")
    gift_card_code: Optional[str] = Field(default=None, alias="giftCardCode")
    gift_card_recipient: Optional[str] = Field(default=None, alias="giftCardRecipient")
    gift_card_sender: Optional[str] = Field(default=None, alias="giftCardSender")
    gift_card_message: Optional[str] = Field(default=None, alias="giftCardMessage")

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Coupon(BaseModel):
    id: Optional[str] = None
    code: str
    discount_type: DiscountType
    discount_value: Decimal = Decimal("0")
    min_purchase: Decimal = Decimal("0")
    max_uses: Optional[int] = None
    times_used: int = 0
    product_id: Optional[str] = None
    is_active: bool = True
    expires_at: Optional[datetime] = None

    @field_validator("discount_value", "min_purchase", "times_used", mode="before")
    @classmethod
    def _null_as_zero(cls, v):
        # colonnes nullables côté base
        return 0 if v is None else v

    @field_validator("is_active", mode="before")
    @classmethod
    def _null_as_active(cls, v):
        return True if v is None else v


class TaxSettings(BaseModel):
    enabled: bool = True
    rate: Decimal = Decimal("21")


class ShippingQuote(BaseModel):
    cost: Decimal = Decimal("0")
    is_free: bool = False
    country: str = ""


class PendingOrder(BaseModel):
    cart_items: List[CartItem]
    shipping_info: Dict[str, Any] = Field(default_factory=dict)
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    coupon_discount: Decimal = Decimal("0")
    applied_coupon: Optional[Coupon] = None
    total: Decimal
    method: PaymentMethod

    @property
    def payment_reference(self) -> Optional[str]:
        return (self.shipping_info or {}).get("payment_reference")


class Order(BaseModel):
    id: Optional[str] = None
    order_number: str
    user_id: Optional[str] = None
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    payment_method: PaymentMethod
    payment_status: str = PAYMENT_STATUS_PENDING
    shipping_address: Dict[str, Any] = Field(default_factory=dict)
    billing_address: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None


class OrderItem(BaseModel):
    order_id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    selected_material: Optional[str] = None
    selected_color: Optional[str] = None
    custom_text: Optional[str] = None
    customization_selections: Optional[List[Dict[str, Any]]] = None


class Invoice(BaseModel):
    id: Optional[str] = None
    invoice_number: str
    order_id: Optional[str] = None
    user_id: Optional[str] = None
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    coupon_code: Optional[str] = None
    coupon_discount: Optional[Decimal] = None
    total: Decimal
    payment_method: PaymentMethod
    payment_status: str = PAYMENT_STATUS_PENDING
    issue_date: datetime
    due_date: datetime
    notes: Optional[str] = None


class InvoicePayment(BaseModel):
    """Paiement d'une facture existante (pas de nouveau panier)."""
    invoice_id: str
    invoice_number: Optional[str] = None
    total: Optional[Decimal] = None
