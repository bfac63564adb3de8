"""The admin-controlled "AI enabled" flag."""
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import AppSetting

AI_ENABLED_KEY = "ai_enabled"


class SettingsRepository:
    """Reads and writes app-wide flags.

    Queries block the calling loop like ``ContributionStore``; each is a
    single primary-key lookup.
    """

    def __init__(self, ai_enabled_default: bool = True):
        self.ai_enabled_default = ai_enabled_default

    async def is_ai_enabled(self) -> bool:
        setting = db.session.get(AppSetting, AI_ENABLED_KEY)
        if setting is None:
            return self.ai_enabled_default
        return setting.value == "true"

    async def set_ai_enabled(self, enabled: bool):
        setting = db.session.get(AppSetting, AI_ENABLED_KEY)
        if setting is None:
            setting = AppSetting(key=AI_ENABLED_KEY, value="false")
            db.session.add(setting)
        setting.value = "true" if enabled else "false"
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
