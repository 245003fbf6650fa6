"""
Maintso Vola admin backend.

Dashboard aggregates and entity management (cultures, projects, users,
project finances) over the hosted agricultural-investment database.
"""

from .config import AppConfig, DashboardConfig, DatabaseConfig, configure_logging, load_config  # noqa: F401
from .models import (  # noqa: F401
    ActivityItem,
    CostRecord,
    CultureRecord,
    DashboardOverview,
    DashboardStats,
    FinancialSummary,
    PaymentRecord,
    ProjectCultureRecord,
    ProjectRecord,
    ProjectTypeShare,
    RevenuePoint,
    UpcomingMilestone,
    UserRecord,
)
from .repository import (  # noqa: F401
    DataStore,
    DataStoreError,
    InMemoryDataStore,
    SQLDataStore,
    build_data_store_from_env,
)
from .service import DashboardService, top_with_overflow  # noqa: F401
from .services import CultureService, FinanceService, ProjectService, UserService  # noqa: F401
