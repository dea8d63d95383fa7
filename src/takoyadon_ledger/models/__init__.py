"""SQLAlchemy models package."""

from .account import AccountRole, LoyaltyAccount  # noqa: F401
from .activity import ActivityStatus, PointEarningActivity  # noqa: F401
from .catalog import ActivityPointRule, Reward  # noqa: F401
from .ledger import LedgerEventType, PointTransaction  # noqa: F401
from .notification import (  # noqa: F401
    Notification,
    NotificationChannelEnum,
    NotificationOutbox,
    OutboxStatusEnum,
)
from .referral import Referral, ReferralStatus  # noqa: F401
