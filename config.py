"""Конфигурация приложения"""
from decimal import Decimal
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Настройки приложения"""

    # Database
    # DATABASE_URL имеет приоритет над отдельными параметрами DB_*
    DATABASE_URL: str = ""
    DB_HOST: str = ""
    DB_PORT: int = 5432
    DB_USER: str = ""
    DB_PASSWORD: str = ""
    DB_NAME: str = ""

    # Telegram Bot (необязателен: без токена уведомления пишутся в лог)
    BOT_TOKEN: Optional[str] = None

    # Admin
    ADMIN_USER_IDS: str = ""
    ADMIN_EMAILS: str = ""

    # FastAPI
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Ссылки и контакты для уведомлений
    SITE_URL: str = "http://localhost:8000"
    AUCTION_CONTACT_EMAIL: Optional[str] = None

    # Auction Settings
    # Фиксированный шаг ставки для всех лотов
    BID_INCREMENT: Decimal = Decimal("5")
    # Не чаще одного уведомления о перебитой ставке на лот за это окно
    OUTBID_NOTIFY_WINDOW_MINUTES: int = 30

    # Очередь уведомлений
    NOTIFICATION_QUEUE_SIZE: int = 1000
    NOTIFICATION_WORKERS: int = 2
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # Планировщик закрытия аукциона
    SCHEDULER_ENABLED: bool = True
    CLOSE_CHECK_INTERVAL_SECONDS: int = 60

    @property
    def admin_ids_list(self) -> List[int]:
        """Список ID администраторов"""
        if not self.ADMIN_USER_IDS:
            return []
        return [int(uid.strip()) for uid in self.ADMIN_USER_IDS.split(",") if uid.strip()]

    @property
    def admin_emails_list(self) -> List[str]:
        """Список email администраторов"""
        if not self.ADMIN_EMAILS:
            return []
        return [email.strip() for email in self.ADMIN_EMAILS.split(",") if email.strip()]

    @property
    def database_url(self) -> str:
        """URL подключения к базе данных"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_HOST:
            return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        return "sqlite+aiosqlite:///./auction.db"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
