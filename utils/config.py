import os
from dotenv import load_dotenv

load_dotenv()

BOT_TOKEN = os.getenv("BOT_TOKEN")

DB_NAME = os.getenv("DB_NAME")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_MIN_POOL_SIZE = int(os.getenv("DB_MIN_POOL_SIZE", "2"))
DB_MAX_POOL_SIZE = int(os.getenv("DB_MAX_POOL_SIZE", "10"))

STEADFAST_API_URL = os.getenv("STEADFAST_API_URL", "https://portal.packzy.com/api/v1")
STEADFAST_API_KEY = os.getenv("STEADFAST_API_KEY")
STEADFAST_SECRET_KEY = os.getenv("STEADFAST_SECRET_KEY")

FRAUD_API_URL = os.getenv("FRAUD_API_URL")
FRAUD_API_KEY = os.getenv("FRAUD_API_KEY")

# Telegram ids registered as verified admins on first contact
ADMIN_IDS = [int(x) for x in os.getenv("ADMIN_IDS", "").split(",") if x.strip()]

ORDERS_PAGE_SIZE = int(os.getenv("ORDERS_PAGE_SIZE", "10"))
BALANCE_CACHE_TTL_SECONDS = int(os.getenv("BALANCE_CACHE_TTL_SECONDS", "300"))
STATUS_SYNC_INTERVAL_MINUTES = int(os.getenv("STATUS_SYNC_INTERVAL_MINUTES", "30"))

SHOP_NAME = os.getenv("SHOP_NAME", "Dreamer Shop")
SHOP_PHONE = os.getenv("SHOP_PHONE", "01810-308171")

TIMEZONE = os.getenv("TIMEZONE", "Asia/Dhaka")

# TTF fonts for PDF invoices; fallbacks cover scripts the body font lacks (Bengali)
INVOICE_FONT_PATH = os.getenv("INVOICE_FONT_PATH", "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf")
INVOICE_BOLD_FONT_PATH = os.getenv("INVOICE_BOLD_FONT_PATH", "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf")
INVOICE_FALLBACK_FONTS = [
    p.strip() for p in os.getenv(
        "INVOICE_FALLBACK_FONTS", "/usr/share/fonts/truetype/noto/NotoSansBengali-Regular.ttf"
    ).split(",") if p.strip()
]
