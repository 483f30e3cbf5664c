from fastapi import Depends
from sqlmodel.ext.asyncio.session import AsyncSession
from .db import get_session
from .services.notifier import ZapierNotifier
from .services.settings_provider import DatabaseSettingsProvider, SettingsProvider

def get_settings_provider(session: AsyncSession = Depends(get_session)) -> SettingsProvider:
    return DatabaseSettingsProvider(session)

def get_notifier() -> ZapierNotifier:
    return ZapierNotifier()
