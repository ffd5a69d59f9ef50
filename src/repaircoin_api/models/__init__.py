"""SQLAlchemy models."""

from .customer import Customer, NoShowTierEnum  # noqa: F401
from .no_show import DisputeStatusEnum, NoShowHistory, ShopNoShowPolicy  # noqa: F401
from .service_order import ServiceOrder, ServiceOrderStatusEnum  # noqa: F401
from .shop import Shop, ShopTierEnum  # noqa: F401
from .system_setting import SystemSetting  # noqa: F401
from .transaction import ArchivedTransaction, Transaction  # noqa: F401
from .webhook_log import WebhookLog, WebhookSourceEnum, WebhookStatusEnum  # noqa: F401

__all__ = [
    "ArchivedTransaction",
    "Customer",
    "DisputeStatusEnum",
    "NoShowHistory",
    "NoShowTierEnum",
    "ServiceOrder",
    "ServiceOrderStatusEnum",
    "Shop",
    "ShopNoShowPolicy",
    "ShopTierEnum",
    "SystemSetting",
    "Transaction",
    "WebhookLog",
    "WebhookSourceEnum",
    "WebhookStatusEnum",
]
