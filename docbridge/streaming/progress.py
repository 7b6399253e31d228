"""
Job notifications

Import and export jobs publish three kinds of events to any number of
listeners: periodic progress, completion and a classified error.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..exceptions import classify_error

logger = logging.getLogger(__name__)


class Phase(Enum):
    IMPORT = "import"
    EXPORT = "export"


class EventType(Enum):
    PROGRESS = "progress"
    DONE = "done"
    ERROR = "error"


@dataclass
class JobEvent:
    """Notification emitted by a job"""
    event_type: EventType
    phase: Phase
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    def __post_init__(self):
        if self.timestamp == 0.0:
            self.timestamp = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event': self.event_type.value,
            'phase': self.phase.value,
            'data': self.data,
            'timestamp': self.timestamp
        }


Listener = Callable[[JobEvent], None]


class ProgressReporter:
    """Fans job events out to registered listeners"""

    def __init__(self, phase: Phase, listener: Optional[Listener] = None):
        self.phase = phase
        self.listeners: List[Listener] = []
        self.history: List[JobEvent] = []
        if listener:
            self.subscribe(listener)

    def subscribe(self, listener: Listener):
        self.listeners.append(listener)

    def progress(self, current: int, total: int, **extra) -> JobEvent:
        data = {'current': current, 'total': total, 'phase': self.phase.value}
        data.update(extra)
        return self._publish(JobEvent(EventType.PROGRESS, self.phase, data))

    def done(self, **data) -> JobEvent:
        return self._publish(JobEvent(EventType.DONE, self.phase, data))

    def error(self, error: BaseException) -> JobEvent:
        classified = classify_error(error)
        return self._publish(JobEvent(EventType.ERROR, self.phase, classified.to_dict()))

    def _publish(self, event: JobEvent) -> JobEvent:
        self.history.append(event)
        for listener in self.listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Error in {self.phase.value} listener: {e}")
        return event
