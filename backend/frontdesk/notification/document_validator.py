"""
证件 OCR 校验 - 同步 multipart 请求

入住前调用；网络错误、超时、非 2xx 一律视为校验失败，由调用方决定是否拒绝。
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from frontdesk.config import settings

logger = logging.getLogger(__name__)


@dataclass
class DocumentValidationResult:
    success: bool
    extracted_document: Optional[str] = None
    message: str = ""


class DocumentValidator:
    """证件 OCR 校验客户端"""

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.url = url if url is not None else settings.DOCUMENT_VALIDATION_WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.DOCUMENT_VALIDATION_TIMEOUT_SECONDS
        self._transport = transport

    def validate(self, image: bytes, expected_document: str,
                 filename: str = "document.jpg") -> DocumentValidationResult:
        """
        上传证件照片，比对识别出的证件号

        期望响应：{"success": bool, "extracted_dni": str, "message": str}
        """
        if not self.url:
            logger.error("Document validation webhook not configured")
            return DocumentValidationResult(False, message="证件校验服务未配置")

        logger.info(f"Validating identity document, expected {expected_document}")
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.post(
                    self.url,
                    files={"image": (filename, image, "application/octet-stream")},
                    data={"expected_dni": expected_document},
                )
                resp.raise_for_status()
                body = resp.json()
        except Exception as e:
            logger.error(f"Document validation request failed: {e}")
            return DocumentValidationResult(False, message="证件校验失败，请重试")

        extracted = body.get("extracted_dni") or body.get("extracted_document")
        if body.get("success"):
            return DocumentValidationResult(True, extracted, body.get("message") or "证件校验通过")
        return DocumentValidationResult(
            False, extracted, body.get("message") or "证件号与预订登记不一致"
        )
