# courier-task-sequencer/sequencer/__init__.py

from .models import (
    Assignment,
    AssignmentStatus,
    GeoPoint,
    Task,
    TaskStatus,
    TaskType,
)
from .config import (
    AVG_SPEED_KMH,
    EARTH_RADIUS_KM,
    URGENCY_WINDOW_MINS,
)
from .exceptions import (
    SequencingError,
    NotFound,
    InvalidTransition,
    InvalidState,
    InvalidWindow,
    InvalidSequence,
    InvalidLocation,
    ConcurrentModification,
)
from .repository import TaskRepository, InMemoryTaskRepository
from .sequencing import SequencingEngine, SequenceSummary, ScheduledStop, determine_optimal_sequence
from .service import AssignmentTaskService
from .utils import haversine_distance

__version__ = "1.0.0"

__all__ = [
    # Models
    "Assignment",
    "AssignmentStatus",
    "GeoPoint",
    "Task",
    "TaskStatus",
    "TaskType",
    # Errors
    "SequencingError",
    "NotFound",
    "InvalidTransition",
    "InvalidState",
    "InvalidWindow",
    "InvalidSequence",
    "InvalidLocation",
    "ConcurrentModification",
    # Core
    "SequencingEngine",
    "SequenceSummary",
    "ScheduledStop",
    "AssignmentTaskService",
    "TaskRepository",
    "InMemoryTaskRepository",
    # Functions
    "determine_optimal_sequence",
    "haversine_distance",
    # Config
    "AVG_SPEED_KMH",
    "EARTH_RADIUS_KM",
    "URGENCY_WINDOW_MINS",
]
