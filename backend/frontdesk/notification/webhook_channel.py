"""
Webhook 通知渠道 - 向自动化平台推送 JSON

通知是尽力而为的：在后台线程发送，短超时，失败只记录日志，
不会回滚或阻塞已提交的业务操作。
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional

import httpx

from frontdesk.config import settings

logger = logging.getLogger(__name__)


class WebhookChannel:
    """通用 Webhook 通知渠道"""

    def __init__(
        self,
        timeout: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.timeout = timeout if timeout is not None else settings.NOTIFICATION_TIMEOUT_SECONDS
        self.headers = headers or {"Content-Type": "application/json"}
        self._executor = executor
        self._transport = transport

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="webhook")
        return self._executor

    def send(self, url: str, payload: Dict[str, Any]) -> bool:
        """同步发送，返回是否成功"""
        if not url:
            logger.warning("Webhook URL not configured, notification skipped")
            return False

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(url, json=payload, headers=self.headers)
                resp.raise_for_status()
            logger.info(f"Webhook sent to {url}")
            return True
        except Exception as e:
            logger.error(f"Failed to send webhook to {url}: {e}")
            return False

    def send_async(self, url: str, payload: Dict[str, Any]) -> Optional[Future]:
        """后台发送（fire-and-forget），通知关闭或未配置地址时直接跳过"""
        if not url:
            logger.warning("Webhook URL not configured, notification skipped")
            return None
        if not settings.NOTIFICATIONS_ENABLED:
            logger.debug(f"Notifications disabled, skipping webhook to {url}")
            return None
        return self._get_executor().submit(self.send, url, payload)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
