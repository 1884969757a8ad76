import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


class Settings:
    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./zapshift.db")
        self.db_timeout = float(os.getenv("DB_TIMEOUT", 10))

        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY")
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
        self.stripe_currency = os.getenv("STRIPE_CURRENCY", "usd")
        self.stripe_timeout = float(os.getenv("STRIPE_TIMEOUT", 20))
        self.site_domain = os.getenv("SITE_DOMAIN", "http://localhost:5173").rstrip("/")

        self.jwt_secret = os.getenv("JWT_SECRET", "")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.jwt_audience = os.getenv("JWT_AUDIENCE") or None

        self.cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
        self.port = int(os.getenv("PORT", 3000))
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
