"""Import every model so Base.metadata knows all tables."""

from sealtrack.agents.models import Agent  # noqa: F401
from sealtrack.attendance.models import AttendanceRecord  # noqa: F401
from sealtrack.audit.models import AuditLog  # noqa: F401
from sealtrack.custody.models import CustodyEvent  # noqa: F401
from sealtrack.tasks.models import Task, TaskStatusTransition  # noqa: F401
