"""Activity service exports."""

from .service import ActivityService  # noqa: F401
