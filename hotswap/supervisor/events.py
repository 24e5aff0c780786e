from enum import Enum
from typing import TYPE_CHECKING, NamedTuple, Optional

if TYPE_CHECKING:
    from .process_utils import ChildHandle


class EventKind(Enum):
    CHILD_EXITED = "child_exited"
    RELOAD = "reload"
    TERMINATE = "terminate"


class SupervisorEvent(NamedTuple):
    """One item on the supervisor's event queue."""
    kind: EventKind
    child: Optional["ChildHandle"] = None
    signum: Optional[int] = None
