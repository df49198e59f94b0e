"""
archilex/models/notification.py

Notification kinds and rendered e-mail content.
"""

from enum import Enum
from pydantic import BaseModel, ConfigDict


class NotificationKind(str, Enum):
    USAGE_80 = "usage_80"
    USAGE_100 = "usage_100"
    UPGRADE_SUCCESS = "upgrade_success"


class EmailContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str
    html: str
    text: str
