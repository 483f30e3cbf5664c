"""Runtime settings read per request: webhook secret and outbound automation URL."""
from abc import ABC, abstractmethod
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import Settings, settings as app_settings
from ..models import AppSettings

DEFAULT_SETTINGS_ID = "default"


class SettingsProvider(ABC):
    @abstractmethod
    async def get_webhook_secret(self) -> Optional[str]:
        ...

    @abstractmethod
    async def get_zapier_webhook_url(self) -> Optional[str]:
        ...


class StaticSettingsProvider(SettingsProvider):
    def __init__(self, webhook_secret: Optional[str] = None, zapier_webhook_url: Optional[str] = None):
        self.webhook_secret = webhook_secret
        self.zapier_webhook_url = zapier_webhook_url

    async def get_webhook_secret(self) -> Optional[str]:
        return self.webhook_secret

    async def get_zapier_webhook_url(self) -> Optional[str]:
        return self.zapier_webhook_url


class DatabaseSettingsProvider(SettingsProvider):
    """The app_settings row (editable from the dashboard), falling back to the environment."""

    def __init__(self, session: AsyncSession, fallback: Settings = app_settings):
        self.session = session
        self.fallback = fallback

    async def _row(self) -> Optional[AppSettings]:
        return await self.session.get(AppSettings, DEFAULT_SETTINGS_ID)

    async def get_webhook_secret(self) -> Optional[str]:
        row = await self._row()
        secret = (row.webhook_secret if row else None) or self.fallback.whop_webhook_secret
        return secret.strip() if secret and secret.strip() else None

    async def get_zapier_webhook_url(self) -> Optional[str]:
        row = await self._row()
        url = (row.zapier_webhook_url if row else None) or self.fallback.zapier_webhook_url
        return url.strip() if url and url.strip() else None


async def save_settings(session: AsyncSession, **values) -> AppSettings:
    row = await session.get(AppSettings, DEFAULT_SETTINGS_ID)
    if row is None:
        row = AppSettings(id=DEFAULT_SETTINGS_ID)
    for key, value in values.items():
        setattr(row, key, value)
    session.add(row)
    await session.commit()
    await session.refresh(row)
    return row
