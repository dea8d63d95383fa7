"""Account service exports."""

from .service import AccountAudit, AccountService, account_not_found  # noqa: F401
