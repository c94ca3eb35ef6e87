from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from fpdf import FPDF
from jinja2 import Environment, FileSystemLoader, select_autoescape

from database.models.order import Order
from utils.config import (
    INVOICE_BOLD_FONT_PATH,
    INVOICE_FALLBACK_FONTS,
    INVOICE_FONT_PATH,
    SHOP_NAME,
    SHOP_PHONE,
)
from utils.errors import InvoiceError
from utils.logger import get_logger

log = get_logger("[Invoice]")

TEMPLATES_DIR = Path(__file__).with_name("templates")
CURRENCY = "Tk"
BODY_FONT = "invoice"


@dataclass
class ShopInfo:
    name: str = SHOP_NAME
    phone: str = SHOP_PHONE


@dataclass
class InvoiceFonts:
    regular: str = INVOICE_FONT_PATH
    bold: Optional[str] = INVOICE_BOLD_FONT_PATH
    fallbacks: List[str] = field(default_factory=lambda: list(INVOICE_FALLBACK_FONTS))


@dataclass
class InvoiceItem:
    name: str
    quantity: int
    price: float


@dataclass
class InvoiceFile:
    filename: str
    content: bytes


_env = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)


def invoice_filename(order: Order) -> str:
    return f"invoice-{order.order_id}.pdf"


def invoice_items(order: Order) -> List[InvoiceItem]:
    # An order carries its items as free text, so the invoice has a single line
    return [InvoiceItem(name=order.order_items, quantity=1, price=float(order.amount))]


def render_invoice_html(order: Order, shop: Optional[ShopInfo] = None,
                        generated_at: Optional[datetime] = None) -> str:
    items = invoice_items(order)
    return _env.get_template("invoice.html").render(
        order=order,
        shop=shop or ShopInfo(),
        items=items,
        total=float(order.amount),
        currency=CURRENCY,
        generated_at=generated_at or datetime.now(),
    )


def _load_fonts(pdf: FPDF, fonts: InvoiceFonts) -> None:
    """
    Registers the body font (regular and bold) and every fallback font
    that exists on disk. Names and addresses are often written in Bengali,
    which the core PDF fonts cannot show.
    """
    if not Path(fonts.regular).is_file():
        raise InvoiceError(f"Invoice font not found: {fonts.regular}. Set INVOICE_FONT_PATH.")
    bold = fonts.bold if fonts.bold and Path(fonts.bold).is_file() else fonts.regular
    pdf.add_font(BODY_FONT, style="", fname=fonts.regular)
    pdf.add_font(BODY_FONT, style="B", fname=bold)

    fallback_names = []
    for i, path in enumerate(fonts.fallbacks):
        if not Path(path).is_file():
            log.warning(f"Fallback font not found, skipped: {path}")
            continue
        name = f"fallback{i}"
        pdf.add_font(name, style="", fname=path)
        fallback_names.append(name)
    if fallback_names:
        # Bold text falls back to the regular face
        pdf.set_fallback_fonts(fallback_names, exact_match=False)
    pdf.set_text_shaping(True)


def render_invoice_pdf(order: Order, shop: Optional[ShopInfo] = None,
                       fonts: Optional[InvoiceFonts] = None) -> bytes:
    html = render_invoice_html(order, shop)

    pdf = FPDF(orientation="portrait", unit="mm", format="letter")
    pdf.set_margins(13, 13, 13)
    _load_fonts(pdf, fonts or InvoiceFonts())
    pdf.add_page()
    pdf.set_font(BODY_FONT, size=11)
    pdf.write_html(html)
    content = bytes(pdf.output())

    log.debug(f"Invoice for {order.order_id} rendered ({len(content)} bytes)")
    return content


def render_invoices(orders: Iterable[Order], shop: Optional[ShopInfo] = None,
                    fonts: Optional[InvoiceFonts] = None) -> List[InvoiceFile]:
    """One PDF per order, in the given order."""
    return [
        InvoiceFile(filename=invoice_filename(o), content=render_invoice_pdf(o, shop, fonts))
        for o in orders
    ]
