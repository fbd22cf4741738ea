"""
事件处理器 - 把提交后的领域事件转发给自动化 Webhook
入住、退房、预订修改三类事件会触发通知；发送失败只记日志
"""
from datetime import datetime
from typing import Any, Dict, Optional
import logging

from frontdesk.config import settings
from frontdesk.engine.event_bus import Event, event_bus
from frontdesk.models.events import EventType
from frontdesk.notification.webhook_channel import WebhookChannel

logger = logging.getLogger(__name__)


def message_type(visit_count: int) -> str:
    """按入住次数选择欢迎语模板"""
    if visit_count == 1:
        return "first_visit"
    if visit_count == 2:
        return "second_visit"
    return "loyal_customer"


def build_checkin_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "guest": {
            "name": data["guest_name"],
            "phone": data["guest_phone"],
            "email": data["guest_email"],
            "visit_count": data["visit_count"],
            "doc_number": data["guest_doc_number"],
        },
        "reservation": {
            "room_number": data["room_number"],
            "start_date": data["start_date"],
            "end_date": data["end_date"],
        },
        "message_type": message_type(data["visit_count"]),
        "timestamp": datetime.utcnow().isoformat(),
    }


def build_checkout_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "guest": {
            "name": data["guest_name"],
            "phone": data["guest_phone"],
        },
        "reservation": {
            "room_number": data["room_number"],
        },
        "timestamp": datetime.utcnow().isoformat(),
    }


def build_update_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "reservation_code": data["reservation_code"],
        "changed_fields": data["changed_fields"],
        "updated_by": data["updated_by"],
        "recipient": settings.NOTIFICATION_RECIPIENT,
        "timestamp": datetime.utcnow().isoformat(),
    }


class EventHandlers:
    """
    事件处理器集合

    支持依赖注入以便于测试：
    - channel: Webhook 渠道（可替换为记录型实现）
    """

    def __init__(self, channel: Optional[WebhookChannel] = None):
        self._channel = channel
        self._registered = False

    @property
    def channel(self) -> WebhookChannel:
        if self._channel is None:
            self._channel = WebhookChannel()
        return self._channel

    def handle_guest_checked_in(self, event: Event) -> None:
        """入住通知：按入住次数发送欢迎消息"""
        self.channel.send_async(settings.CHECKIN_WEBHOOK_URL, build_checkin_payload(event.data))

    def handle_guest_checked_out(self, event: Event) -> None:
        """退房通知"""
        self.channel.send_async(settings.CHECKOUT_WEBHOOK_URL, build_checkout_payload(event.data))

    def handle_reservation_updated(self, event: Event) -> None:
        """预订修改通知（字段级变更记录）"""
        if not event.data.get("changed_fields"):
            return
        self.channel.send_async(
            settings.RESERVATION_UPDATE_WEBHOOK_URL, build_update_payload(event.data)
        )

    def register_handlers(self, event_bus_instance=None) -> None:
        """注册所有事件处理器"""
        if self._registered:
            logger.warning("Event handlers already registered")
            return

        bus = event_bus_instance or event_bus
        bus.subscribe(EventType.GUEST_CHECKED_IN, self.handle_guest_checked_in)
        bus.subscribe(EventType.GUEST_CHECKED_OUT, self.handle_guest_checked_out)
        bus.subscribe(EventType.RESERVATION_UPDATED, self.handle_reservation_updated)

        self._registered = True
        logger.info("Event handlers registered successfully")

    def unregister_handlers(self, event_bus_instance=None) -> None:
        """取消注册所有事件处理器（用于测试）"""
        bus = event_bus_instance or event_bus

        bus.unsubscribe(EventType.GUEST_CHECKED_IN, self.handle_guest_checked_in)
        bus.unsubscribe(EventType.GUEST_CHECKED_OUT, self.handle_guest_checked_out)
        bus.unsubscribe(EventType.RESERVATION_UPDATED, self.handle_reservation_updated)

        self._registered = False
        logger.info("Event handlers unregistered")


# 全局事件处理器实例
event_handlers = EventHandlers()


def register_event_handlers():
    """注册所有事件处理器（应用启动时调用）"""
    event_handlers.register_handlers()
