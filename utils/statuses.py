# utils/statuses.py

# --- 1. LOCAL ORDER STATUSES ---
S_PENDING = "Pending"  # Created, not handed to the courier yet
S_CONFIRMED = "Confirmed"  # Consignment created at Steadfast

ORDER_STATUSES = (S_PENDING, S_CONFIRMED)

# --- 2. STEADFAST DELIVERY STATUSES ---
D_PENDING = "pending"
D_DELIVERED = "delivered"
D_PARTIAL_DELIVERED = "partial_delivered"
D_DELIVERED_APPROVAL_PENDING = "delivered_approval_pending"
D_PARTIAL_DELIVERED_APPROVAL_PENDING = "partial_delivered_approval_pending"
D_CANCELLED = "cancelled"
D_CANCELLED_APPROVAL_PENDING = "cancelled_approval_pending"
D_HOLD = "hold"
D_IN_REVIEW = "in_review"
D_UNKNOWN = "unknown"
D_UNKNOWN_APPROVAL_PENDING = "unknown_approval_pending"

DELIVERY_STATUSES = (
    D_PENDING,
    D_DELIVERED,
    D_PARTIAL_DELIVERED,
    D_DELIVERED_APPROVAL_PENDING,
    D_PARTIAL_DELIVERED_APPROVAL_PENDING,
    D_CANCELLED,
    D_CANCELLED_APPROVAL_PENDING,
    D_HOLD,
    D_IN_REVIEW,
    D_UNKNOWN,
    D_UNKNOWN_APPROVAL_PENDING,
)

# Courier-side statuses that count as a confirmed order locally
CONFIRMED_DELIVERY_STATUSES = {
    D_DELIVERED,
    D_PARTIAL_DELIVERED,
    D_DELIVERED_APPROVAL_PENDING,
    D_PARTIAL_DELIVERED_APPROVAL_PENDING,
}

# --- 3. HUMAN READABLE LABELS (for the bot) ---
DELIVERY_STATUS_LABELS = {
    D_PENDING: "⏳ Pending",
    D_DELIVERED: "✅ Delivered",
    D_PARTIAL_DELIVERED: "☑️ Partially delivered",
    D_DELIVERED_APPROVAL_PENDING: "✅ Delivered (approval pending)",
    D_PARTIAL_DELIVERED_APPROVAL_PENDING: "☑️ Partially delivered (approval pending)",
    D_CANCELLED: "❌ Cancelled",
    D_CANCELLED_APPROVAL_PENDING: "❌ Cancelled (approval pending)",
    D_HOLD: "⏸ On hold",
    D_IN_REVIEW: "🔎 In review",
    D_UNKNOWN: "❔ Unknown",
    D_UNKNOWN_APPROVAL_PENDING: "❔ Unknown (approval pending)",
}


def map_delivery_status(delivery_status: str | None) -> str:
    """
    Maps a Steadfast delivery status to the local order status.
    Anything that is not a (partial) delivery is treated as Pending.
    """
    if delivery_status in CONFIRMED_DELIVERY_STATUSES:
        return S_CONFIRMED
    return S_PENDING


def delivery_status_label(delivery_status: str | None) -> str:
    if not delivery_status:
        return "—"
    return DELIVERY_STATUS_LABELS.get(delivery_status, delivery_status)
