#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""Android设备屏幕截图"""

import base64
import logging
import subprocess
from io import BytesIO

from PIL import Image, ImageStat

from autoglm_agent.adb.device import get_adb_prefix
from autoglm_agent.kernel.protocols import Screenshot

logger = logging.getLogger(__name__)

FALLBACK_WIDTH = 1080
FALLBACK_HEIGHT = 2400

# 平均亮度低于该值视为全黑（FLAG_SECURE 页面截图通常是全黑）
BLACK_SCREEN_THRESHOLD = 10


def get_screenshot(device_id: str | None = None, timeout: int = 30) -> Screenshot:
    """
    通过 `adb exec-out screencap -p` 获取截图

    失败、超时、数据过小或全黑时返回黑色占位图，并标记为敏感。

    Args:
        device_id: ADB设备ID(可选),用于多设备场景
        timeout: 截图操作超时秒数

    Returns:
        包含base64数据和尺寸的Screenshot对象
    """
    try:
        result = subprocess.run(
            get_adb_prefix(device_id) + ["exec-out", "screencap", "-p"],
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Screenshot timeout after {timeout}s")
        return create_fallback_screenshot()

    if result.returncode != 0:
        error_msg = result.stderr.decode("utf-8", errors="ignore")
        logger.warning(f"Screenshot failed: {error_msg.strip()}")
        return create_fallback_screenshot()

    image_data = result.stdout
    if not image_data or len(image_data) < 100:
        logger.warning(f"Screenshot data too small: {len(image_data or b'')} bytes")
        return create_fallback_screenshot()

    try:
        img = Image.open(BytesIO(image_data))
        width, height = img.size
        brightness = ImageStat.Stat(img.convert("L")).mean[0]
    except OSError as e:
        logger.error(f"Screenshot decode error: {e}")
        return create_fallback_screenshot()

    if brightness < BLACK_SCREEN_THRESHOLD:
        logger.warning(f"Screenshot is almost black (brightness: {brightness:.1f}), marking as sensitive")
        return create_fallback_screenshot()

    return Screenshot(
        base64_data=base64.b64encode(image_data).decode("utf-8"),
        width=width,
        height=height,
        is_sensitive=False,
    )


def create_fallback_screenshot(
    width: int = FALLBACK_WIDTH,
    height: int = FALLBACK_HEIGHT,
) -> Screenshot:
    """黑色占位截图"""
    black_img = Image.new("RGB", (width, height), color="black")
    buffer = BytesIO()
    black_img.save(buffer, format="PNG")
    return Screenshot(
        base64_data=base64.b64encode(buffer.getvalue()).decode("utf-8"),
        width=width,
        height=height,
        is_sensitive=True,
    )


class AdbScreenshotProvider:
    """ScreenshotProvider 的 ADB 实现"""

    def __init__(self, device_id: str | None = None, timeout: int = 30):
        self.device_id = device_id
        self.timeout = timeout

    def capture(self) -> Screenshot:
        return get_screenshot(self.device_id, self.timeout)
