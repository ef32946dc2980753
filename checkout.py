"""
Checkout flow: shipping -> payment -> review -> confirmed.

Form validation never raises; it returns a mapping of field name to message
and keeps the flow on the current step. Card numbers and CVVs are never
logged and never copied into the order record.
"""
import asyncio
import logging
import os
import re
import threading
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from cart import Cart, CartLineItem
from errors import InvalidTransition, OrderInProgress, ProcessingTimedOut
from pricing import compute_totals
from schemas import Address, Order, OrderItem, PaymentInfo, PaymentSummary, ShippingInfo

logger = logging.getLogger(__name__)

UNITED_STATES = "United States"
SUPPORTED_COUNTRIES = (UNITED_STATES, "Georgia")

CHECKOUT_TIMEOUT = float(os.getenv("CHECKOUT_TIMEOUT_SECONDS", "30"))
PROCESSING_DELAY = float(os.getenv("PAYMENT_PROCESSING_DELAY", "2"))

EMAIL_RE = re.compile(r"\S+@\S+\.\S+")
EXPIRY_RE = re.compile(r"^(0[1-9]|1[0-2])/\d{2}$")

OrderProcessor = Callable[[Order], Awaitable[None]]


class CheckoutStep(str, Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    REVIEW = "review"
    CONFIRMED = "confirmed"


# ------------------------- Validation -------------------------
def validate_shipping(info: ShippingInfo) -> Dict[str, str]:
    errors: Dict[str, str] = {}

    if not info.first_name.strip():
        errors["first_name"] = "First name is required"
    if not info.last_name.strip():
        errors["last_name"] = "Last name is required"
    if not info.email.strip():
        errors["email"] = "Email is required"
    elif not EMAIL_RE.search(info.email):
        errors["email"] = "Please enter a valid email"
    if not info.phone.strip():
        errors["phone"] = "Phone is required"
    if not info.address.strip():
        errors["address"] = "Address is required"
    if not info.city.strip():
        errors["city"] = "City is required"
    if not info.country.strip():
        errors["country"] = "Country is required"
    elif info.country not in SUPPORTED_COUNTRIES:
        errors["country"] = f"We do not ship to {info.country}"

    # State and postal code only matter for US addresses
    if info.country == UNITED_STATES:
        if not info.state.strip():
            errors["state"] = "State is required"
        if not info.postal_code.strip():
            errors["postal_code"] = "Postal code is required"

    return errors


def validate_payment(info: PaymentInfo) -> Dict[str, str]:
    errors: Dict[str, str] = {}

    if not info.cardholder_name.strip():
        errors["cardholder_name"] = "Cardholder name is required"

    digits = re.sub(r"\s", "", info.card_number)
    if not digits:
        errors["card_number"] = "Card number is required"
    elif not digits.isdigit() or len(digits) < 16:
        errors["card_number"] = "Please enter a valid card number"

    expiry = info.expiry_date.strip()
    if not expiry:
        errors["expiry_date"] = "Expiry date is required"
    elif not EXPIRY_RE.match(expiry):
        errors["expiry_date"] = "Please enter a valid expiry date (MM/YY)"

    cvv = info.cvv.strip()
    if not cvv:
        errors["cvv"] = "CVV is required"
    elif not cvv.isdigit() or not 3 <= len(cvv) <= 4:
        errors["cvv"] = "Please enter a valid CVV"

    return errors


def apply_saved_address(address: Address, email: str = "") -> ShippingInfo:
    """Prefill the shipping form from a saved address. Phone comes from the address if it has one."""
    line = address.address_line1
    if address.address_line2:
        line = f"{line}, {address.address_line2}"
    return ShippingInfo(
        first_name=address.first_name,
        last_name=address.last_name,
        email=email,
        phone=address.phone or "",
        address=line,
        city=address.city,
        state=address.state or "",
        postal_code=address.postal_code or "",
        country=address.country,
    )


# ------------------------- Orders -------------------------
_order_lock = threading.Lock()
_last_order_ms = 0


def generate_order_id() -> str:
    """ORD-<milliseconds>, strictly increasing within the process."""
    global _last_order_ms
    with _order_lock:
        now = int(time.time() * 1000)
        if now <= _last_order_ms:
            now = _last_order_ms + 1
        _last_order_ms = now
    return f"ORD-{now}"


def build_order(items: List[CartLineItem], shipping_info: ShippingInfo, payment: PaymentInfo, order_id: Optional[str] = None) -> Order:
    totals = compute_totals(items).rounded()
    digits = re.sub(r"\s", "", payment.card_number)
    return Order(
        order_id=order_id,
        items=[
            OrderItem(
                product_id=item.product.id,
                name=item.product.name,
                price=item.product.price,
                quantity=item.quantity,
                selected_color=item.selected_color,
                selected_size=item.selected_size,
                selected_color_value=item.selected_color_value,
                line_total=float(item.line_total),
            )
            for item in items
        ],
        shipping_info=shipping_info,
        payment=PaymentSummary(cardholder_name=payment.cardholder_name.strip(), card_last4=digits[-4:]),
        subtotal=float(totals.subtotal),
        shipping=float(totals.shipping),
        tax=float(totals.tax),
        total=float(totals.total),
    )


def simulated_processor(delay: Optional[float] = None) -> OrderProcessor:
    """Stand-in for a payment gateway: waits ``delay`` seconds and accepts the order."""
    if delay is None:
        delay = PROCESSING_DELAY

    async def process(order: Order) -> None:
        await asyncio.sleep(delay)

    return process


# ------------------------- Flow -------------------------
class CheckoutFlow:
    """Drives one checkout from the shipping form to a confirmed order.

    ``processor`` accepts or rejects the order draft (it has no id yet).
    Once it returns, the order id is assigned and ``recorder``, if given,
    stores the finished order. Both run under one ``timeout``.
    """

    def __init__(
        self,
        cart: Cart,
        processor: Optional[OrderProcessor] = None,
        timeout: Optional[float] = None,
        recorder: Optional[OrderProcessor] = None,
    ):
        self.cart = cart
        self.processor = processor or simulated_processor()
        self.recorder = recorder
        self.timeout = CHECKOUT_TIMEOUT if timeout is None else timeout
        self.step = CheckoutStep.SHIPPING
        self.shipping_info = ShippingInfo()
        self._payment_info = PaymentInfo()
        self.errors: Dict[str, str] = {}
        self.is_processing = False
        self.order_id: Optional[str] = None
        self.order: Optional[Order] = None

    def _require(self, step: CheckoutStep, action: str) -> None:
        if self.step != step:
            raise InvalidTransition(f"Cannot {action} from the {self.step.value} step")

    def _require_idle(self, action: str) -> None:
        if self.is_processing:
            raise OrderInProgress(f"Cannot {action} while the order is being processed")

    def submit_shipping(self, info: ShippingInfo) -> Dict[str, str]:
        self._require(CheckoutStep.SHIPPING, "submit shipping details")
        self.shipping_info = info
        self.errors = validate_shipping(info)
        if not self.errors:
            self.step = CheckoutStep.PAYMENT
        return self.errors

    def submit_payment(self, info: PaymentInfo) -> Dict[str, str]:
        self._require(CheckoutStep.PAYMENT, "submit payment details")
        self._payment_info = info
        self.errors = validate_payment(info)
        if not self.errors:
            self.step = CheckoutStep.REVIEW
        return self.errors

    def edit_shipping(self) -> None:
        self._require(CheckoutStep.REVIEW, "edit shipping details")
        self._require_idle("edit shipping details")
        self.errors = {}
        self.step = CheckoutStep.SHIPPING

    def edit_payment(self) -> None:
        self._require(CheckoutStep.REVIEW, "edit payment details")
        self._require_idle("edit payment details")
        self.errors = {}
        self.step = CheckoutStep.PAYMENT

    async def _process(self, draft: Order) -> Order:
        await self.processor(draft)
        order = draft.model_copy(update={"order_id": generate_order_id()})
        if self.recorder is not None:
            await self.recorder(order)
        return order

    async def place_order(self) -> str:
        self._require(CheckoutStep.REVIEW, "place the order")
        self._require_idle("place the order")
        items = self.cart.items()
        if not items:
            raise InvalidTransition("Cannot place an order with an empty cart")

        draft = build_order(items, self.shipping_info, self._payment_info)
        self.is_processing = True
        try:
            order = await asyncio.wait_for(self._process(draft), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Order processing timed out after %ss; cart kept", self.timeout)
            raise ProcessingTimedOut(self.timeout) from None
        finally:
            self.is_processing = False

        self.cart.clear()
        self.order = order
        self.order_id = order.order_id
        self.step = CheckoutStep.CONFIRMED
        logger.info("Order %s confirmed: %d line items, total %.2f", order.order_id, len(order.items), order.total)
        return order.order_id
