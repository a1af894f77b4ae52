#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""ADB 协作者实现"""

from autoglm_agent.adb.device import (
    AdbShellExecutor,
    check_device_connected,
    get_adb_prefix,
    get_current_app,
)
from autoglm_agent.adb.screenshot import (
    AdbScreenshotProvider,
    create_fallback_screenshot,
    get_screenshot,
)

__all__ = [
    "AdbScreenshotProvider",
    "AdbShellExecutor",
    "check_device_connected",
    "create_fallback_screenshot",
    "get_adb_prefix",
    "get_current_app",
    "get_screenshot",
]
