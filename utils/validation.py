# utils/validation.py
from decimal import Decimal, InvalidOperation
from typing import Optional

from database.models.order import Order
from utils.errors import ValidationError
from utils.phone import is_local_phone, normalize_phone

REQUIRED_ORDER_FIELDS = ("name", "number", "order_items", "address", "amount")
MAX_AMOUNT = Decimal("10000000")


def parse_amount(value) -> Optional[Decimal]:
    """Non-negative amount with at most two decimals, or None."""
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite() or amount < 0 or amount > MAX_AMOUNT:
        return None
    return amount.quantize(Decimal("0.01"))


def clean_phone(value) -> Optional[str]:
    raw = str(value or "").strip()
    if is_local_phone(raw):
        return raw
    return normalize_phone(raw)


def validate_order_data(data: dict, partial: bool = False) -> dict:
    """
    Checks the order form and returns cleaned values.
    With `partial=True` only the keys present are checked (edit form).
    Raises ValidationError with one message per bad field.
    """
    errors: dict[str, str] = {}
    cleaned: dict = {}

    fields = [f for f in REQUIRED_ORDER_FIELDS if f in data] if partial else REQUIRED_ORDER_FIELDS
    for name in ("name", "order_items", "address"):
        if name not in fields:
            continue
        value = " ".join(str(data.get(name) or "").split())
        if not value:
            errors[name] = {
                "name": "Customer name is required",
                "order_items": "Order items are required",
                "address": "Address is required",
            }[name]
        else:
            cleaned[name] = value

    if "number" in fields:
        phone = clean_phone(data.get("number"))
        if not phone:
            errors["number"] = "Phone number must be 11 digits"
        else:
            cleaned["number"] = phone

    if "amount" in fields:
        amount = parse_amount(data.get("amount"))
        if amount is None:
            errors["amount"] = "Amount must be a positive number"
        else:
            cleaned["amount"] = amount

    for name in ("reference", "notes"):
        if name in data:
            cleaned[name] = str(data.get(name) or "").strip()

    if errors:
        raise ValidationError(errors)
    return cleaned


def consignment_error(order: Order) -> Optional[str]:
    """
    Returns the reason an order cannot be sent to the courier, or None.
    """
    number = str(order.number or "").strip()
    if not (order.order_id and order.name and number and order.order_items and order.address) \
            or order.amount is None:
        return "All required fields (ID, Name, Number, Order-Items, Address, Amount) must be provided"
    if not is_local_phone(number):
        return "Phone number must be 11 digits"
    if parse_amount(order.amount) is None:
        return "Amount must be a positive number"
    return None
