"""
领域事件分发

业务服务在事务提交后发布事件（入住、退房、预订修改等），
通知等副作用由订阅者完成；订阅者出错只记日志，不影响已提交的业务操作。
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List
import logging
import threading

from frontdesk.models.events import EventType

logger = logging.getLogger(__name__)

Handler = Callable[["Event"], None]


@dataclass
class Event:
    """已提交的领域事件"""
    event_type: EventType
    timestamp: datetime
    data: Dict[str, Any]
    source: str  # 发布事件的服务名


class EventBus:
    """按事件类型分发的同步总线"""

    def __init__(self):
        self._handlers: Dict[EventType, List[Handler]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, handler: Handler) -> None:
        event_type = EventType(event_type)
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if handler not in handlers:
                handlers.append(handler)

    def unsubscribe(self, event_type: EventType, handler: Handler) -> None:
        event_type = EventType(event_type)
        with self._lock:
            if handler in self._handlers.get(event_type, []):
                self._handlers[event_type].remove(handler)

    def handlers_for(self, event_type: EventType) -> List[Handler]:
        with self._lock:
            return list(self._handlers.get(EventType(event_type), []))

    def publish(self, event: Event) -> None:
        """依次调用订阅者；单个订阅者失败不影响其余订阅者"""
        handlers = self.handlers_for(event.event_type)
        logger.debug(f"{event.event_type.value} from {event.source} -> {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    f"Handler {getattr(handler, '__name__', handler)} failed on "
                    f"{event.event_type.value}: {e}",
                    exc_info=True
                )


# 应用级事件总线
event_bus = EventBus()
