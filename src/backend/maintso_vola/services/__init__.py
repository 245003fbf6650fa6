from .culture import CultureService  # noqa: F401
from .finance import FinanceService, derive_payment_status  # noqa: F401
from .project import ProjectService  # noqa: F401
from .user import UserService  # noqa: F401
