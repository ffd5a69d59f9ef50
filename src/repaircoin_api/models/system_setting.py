from sqlalchemy import Column, DateTime, String, Text, func

from repaircoin_api.db.base import Base


class SystemSetting(Base):
    """Operator-editable key/value settings grouped by category."""

    __tablename__ = "system_settings"

    setting_key = Column(String, primary_key=True)
    setting_value = Column(Text, nullable=True)
    category = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
