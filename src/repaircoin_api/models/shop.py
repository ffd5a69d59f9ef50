"""Repair shop records and cached RCG tier state."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, Numeric, String, func

from repaircoin_api.db.base import Base


class ShopTierEnum(str, Enum):
    """Partner tier derived from the shop's RCG governance token balance."""

    NONE = "none"
    STANDARD = "standard"
    PREMIUM = "premium"
    ELITE = "elite"


class Shop(Base):
    __tablename__ = "shops"

    shop_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    wallet_address = Column(String, nullable=True, index=True)
    email = Column(String, nullable=True)
    active = Column(Boolean, nullable=False, default=True, server_default="true")
    verified = Column(Boolean, nullable=False, default=False, server_default="false")
    rcg_tier = Column(
        SqlEnum(
            ShopTierEnum,
            name="shop_rcg_tier_enum",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=ShopTierEnum.NONE,
        server_default=ShopTierEnum.NONE.value,
    )
    rcg_balance = Column(Numeric(38, 18), nullable=False, default=0, server_default="0")
    tier_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
