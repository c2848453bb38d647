"""Central model registry. Import all models so Alembic autodiscover works."""

from procure_api.database import Base  # noqa: F401

from procure_api.models.department import Department, DepartmentType  # noqa: F401
from procure_api.models.user import User  # noqa: F401
from procure_api.models.catalog import (  # noqa: F401
    AcquisitionTypeMaster,
    ContractType,
    Item,
    ItemCategory,
    ItemExclusion,
    ItemType,
)
from procure_api.models.request import Request, RequestItem  # noqa: F401
from procure_api.models.request_history import RequestHistory  # noqa: F401
from procure_api.models.notification import Notification  # noqa: F401
from procure_api.models.system_parameter import SystemParameter  # noqa: F401
