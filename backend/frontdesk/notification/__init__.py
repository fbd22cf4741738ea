"""
外部协作方：自动化 Webhook 通知、证件 OCR 校验
"""
