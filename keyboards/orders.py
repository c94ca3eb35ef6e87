from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from database.models.order import Order, OrderStatus
from services.order_controller import ALL_STATUSES

STATUS_ICONS = {
    OrderStatus.PENDING: "🕓",
    OrderStatus.CONFIRMED: "✅",
}

EDITABLE_FIELDS = {
    "name": "Name",
    "number": "Phone",
    "order_items": "Items",
    "address": "Address",
    "amount": "Amount",
    "reference": "Reference",
    "notes": "Notes",
}


def get_orders_list_kb(
        orders: list[Order],
        selected: set,
        page: int,
        total_pages: int,
        status_filter: str,
        searching: bool = False,
) -> InlineKeyboardMarkup:
    rows: list[list[InlineKeyboardButton]] = []

    for o in orders:
        mark = "☑️" if o.doc_id in selected else "⬜️"
        rows.append([
            InlineKeyboardButton(text=mark, callback_data=f"ord-sel:{o.doc_id}"),
            InlineKeyboardButton(
                text=f"{STATUS_ICONS[o.status]} {o.order_id} · {o.name} · {o.amount:.0f}",
                callback_data=f"ord:{o.doc_id}",
            ),
        ])

    if total_pages > 1:
        prev_page = page - 1 if page > 1 else 1
        next_page = page + 1 if page < total_pages else total_pages
        rows.append([
            InlineKeyboardButton(text="«", callback_data="ord-page:1" if page > 1 else "noop"),
            InlineKeyboardButton(text="‹", callback_data=f"ord-page:{prev_page}" if page > 1 else "noop"),
            InlineKeyboardButton(text=f"{page}/{total_pages}", callback_data="noop"),
            InlineKeyboardButton(text="›", callback_data=f"ord-page:{next_page}" if page < total_pages else "noop"),
            InlineKeyboardButton(text="»",
                                 callback_data=f"ord-page:{total_pages}" if page < total_pages else "noop"),
        ])

    rows.append([
        InlineKeyboardButton(text=("• " if status_filter == value else "") + value,
                             callback_data=f"ord-filter:{value}")
        for value in (ALL_STATUSES, OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value)
    ])
    rows.append([
        InlineKeyboardButton(text="🔍 Search", callback_data="ord-search"),
        InlineKeyboardButton(text="✖️ Clear search", callback_data="ord-search-clear") if searching
        else InlineKeyboardButton(text="🔄 Refresh", callback_data="orders"),
    ])
    rows.append([
        InlineKeyboardButton(text="Select all", callback_data="ord-sel-all"),
        InlineKeyboardButton(text="Clear selection", callback_data="ord-sel-clear"),
    ])
    rows.append([
        InlineKeyboardButton(text="🚚 Send selected", callback_data="ord-courier-selected"),
        InlineKeyboardButton(text="🧾 Invoices", callback_data="ord-invoice-selected"),
    ])
    rows.append([
        InlineKeyboardButton(text="📡 Check all statuses", callback_data="ord-check-all"),
        InlineKeyboardButton(text="📊 Courier ratio", callback_data="ord-ratio-selected"),
    ])
    rows.append([InlineKeyboardButton(text="➕ New order", callback_data="ord-new")])
    rows.append([InlineKeyboardButton(text="⬅️ Back", callback_data="back-main")])
    return InlineKeyboardMarkup(inline_keyboard=rows)


def order_detail_kb(order: Order) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    builder.button(text="📡 Check delivery status", callback_data=f"ord-check:{order.doc_id}")
    if order.status == OrderStatus.PENDING:
        builder.button(text="🚚 Send to Steadfast", callback_data=f"ord-courier:{order.doc_id}")
    builder.button(text="🧾 Invoice", callback_data=f"ord-invoice:{order.doc_id}")
    builder.button(text="🛡 Fraud check", callback_data=f"ord-fraud:{order.doc_id}")
    builder.button(text="✏️ Edit", callback_data=f"ord-edit:{order.doc_id}")
    builder.button(text="🗑 Delete", callback_data=f"ord-del:{order.doc_id}")
    builder.button(text="⬅️ Back to list", callback_data="orders")
    builder.adjust(1)
    return builder.as_markup()


def order_delete_confirm_kb(order: Order) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="YES, delete", callback_data=f"ord-del-yes:{order.doc_id}")],
        [InlineKeyboardButton(text="KEEP", callback_data=f"ord:{order.doc_id}")],
    ])


def order_edit_fields_kb(order: Order) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    for field, label in EDITABLE_FIELDS.items():
        builder.button(text=label, callback_data=f"ord-edit-field:{order.doc_id}:{field}")
    builder.button(text="⬅️ Back", callback_data=f"ord:{order.doc_id}")
    builder.adjust(2)
    return builder.as_markup()


def form_cancel_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="✖️ Cancel", callback_data="ord-form-cancel")]
    ])


def form_skip_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="Skip", callback_data="ord-form-skip")],
        [InlineKeyboardButton(text="✖️ Cancel", callback_data="ord-form-cancel")],
    ])


def courier_batch_kb(orders: list[Order], errors: dict[str, str]) -> InlineKeyboardMarkup:
    rows: list[list[InlineKeyboardButton]] = []
    for o in orders:
        if o.order_id in errors:
            rows.append([InlineKeyboardButton(text=f"🗑 Discard {o.order_id}",
                                              callback_data=f"courier-drop:{o.order_id}")])
    label = "🔁 Retry failed" if errors else f"🚚 Send {len(orders)} to Steadfast"
    rows.append([InlineKeyboardButton(text=label, callback_data="courier-send")])
    rows.append([InlineKeyboardButton(text="✖️ Close", callback_data="courier-close")])
    return InlineKeyboardMarkup(inline_keyboard=rows)
