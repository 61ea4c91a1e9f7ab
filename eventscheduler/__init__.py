"""
eventscheduler - asynchronous client for a remote event-scheduling service.

Features:
- add/get/list/remove/update of scheduled events
- Compensating undo registration for remove/update inside a caller's transaction
- One error taxonomy for validation, remote and transport failures
"""
from .client import SchedulerClient, create_client
from .config import SchedulerSettings, get_settings
from .errors import (
    NotFoundError,
    RemoteError,
    SchedulerError,
    TransportError,
    ValidationError,
    normalize_error,
)
from .event_models import Event, EventRef, HostRequest, HrefRequest, from_response, normalize
from .metrics import ClientMetrics
from .query import ListFilters, build_query
from .transactions import Compensation, TransactionCoordinator, UndoLog

__version__ = "0.1.0"
