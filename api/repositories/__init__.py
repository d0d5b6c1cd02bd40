"""Repository layer for database operations.

Repositories hold every SQL query. They flush but never commit; the request's
unit of work (core.database.get_db) owns the transaction.
"""

from repositories.category_repository import CategoryRepository
from repositories.client_repository import ClientRepository, CopyMachineRepository
from repositories.dashboard_stats_repository import DashboardStatsRepository
from repositories.image_repository import ImageRepository
from repositories.service_repository import ServiceRepository
from repositories.stats_repository import ServiceStatsRepository
from repositories.step_repository import StepRepository
from repositories.user_repository import UserRepository
from repositories.utils import log_slow_query

__all__ = [
    "CategoryRepository",
    "ClientRepository",
    "CopyMachineRepository",
    "DashboardStatsRepository",
    "ImageRepository",
    "ServiceRepository",
    "ServiceStatsRepository",
    "StepRepository",
    "UserRepository",
    "log_slow_query",
]
