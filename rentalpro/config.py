import os
import logging
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


class Config:
    # Bot Token (REQUIRED)
    BOT_TOKEN = os.getenv("BOT_TOKEN")
    if not BOT_TOKEN:
        raise ValueError(
            "BOT_TOKEN is required! Set it in .env file.\n"
            "Thiếu BOT_TOKEN: hãy khai báo trong file .env (lấy token từ @BotFather)."
        )

    # Database Configuration
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASS = os.getenv("DB_PASS", "postgres")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "rentalpro")

    @property
    def DATABASE_URL(self):
        # Prefer DATABASE_URL env var if set (for SQLite support)
        url = os.getenv("DATABASE_URL")
        if url:
            return url

        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Identity provider (Supabase-compatible GoTrue endpoint)
    AUTH_URL = os.getenv("AUTH_URL")  # e.g. https://xyz.supabase.co/auth/v1
    AUTH_API_KEY = os.getenv("AUTH_API_KEY")
    AUTH_REDIRECT_URL = os.getenv("AUTH_REDIRECT_URL")  # magic link / reset password target

    # Receipt render service (markup -> png/pdf)
    RENDER_SERVICE_URL = os.getenv("RENDER_SERVICE_URL")  # None = export disabled
    RENDER_TIMEOUT = _int_env("RENDER_TIMEOUT", 60)

    # Billing defaults (VND)
    DEFAULT_COLLECTION_DAY = _int_env("DEFAULT_COLLECTION_DAY", 24)
    DEFAULT_ELECTRICITY_PRICE = _int_env("DEFAULT_ELECTRICITY_PRICE", 4000)
    DEFAULT_WATER_PRICE = _int_env("DEFAULT_WATER_PRICE", 11000)
    DEFAULT_INTERNET_AMOUNT = _int_env("DEFAULT_INTERNET_AMOUNT", 50000)
    DEFAULT_TRASH_AMOUNT = _int_env("DEFAULT_TRASH_AMOUNT", 20000)
    INVOICE_DUE_DAYS = _int_env("INVOICE_DUE_DAYS", 7)

    # Landlord details printed on receipts
    COMPANY_NAME = os.getenv("COMPANY_NAME", "RentalPro")
    COMPANY_PHONE = os.getenv("COMPANY_PHONE", "")
    COMPANY_EMAIL = os.getenv("COMPANY_EMAIL", "")
    COMPANY_CITY = os.getenv("COMPANY_CITY", "TP.HCM")


config = Config()

# Log configuration on startup
logging.info(f"Database: {config.DATABASE_URL.split('@')[1] if '@' in config.DATABASE_URL else 'SQLite'}")
logging.info(f"Auth provider: {'enabled' if config.AUTH_URL else 'disabled'}")
logging.info(f"Receipt export: {'enabled' if config.RENDER_SERVICE_URL else 'disabled'}")
