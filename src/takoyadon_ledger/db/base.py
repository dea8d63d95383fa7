from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by every ledger table."""


# Import models to ensure metadata registration for Alembic
try:  # pragma: no cover - import side effects only
    import takoyadon_ledger.models  # noqa: F401
except ImportError:  # pragma: no cover - partial imports during migrations
    pass
