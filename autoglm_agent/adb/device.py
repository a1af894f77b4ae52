#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""ADB 命令执行与前台应用检测"""

import logging
import re
import shlex
import subprocess

from autoglm_agent.config.apps import find_app_name
from autoglm_agent.kernel.protocols import CommandResult

logger = logging.getLogger(__name__)

HOME_SCREEN = "系统桌面"

_FOCUS_PACKAGE = re.compile(r"\s([A-Za-z][\w]*(?:\.[\w]+)+)/")


def get_adb_prefix(device_id: str | None) -> list[str]:
    """Get ADB command prefix with optional device specifier."""
    if device_id:
        return ["adb", "-s", device_id]
    return ["adb"]


class AdbShellExecutor:
    """
    CommandExecutor 的 ADB 实现：`adb [-s id] shell <command>`

    Args:
        device_id: ADB设备ID(可选)
        timeout: 单条命令超时秒数
    """

    def __init__(self, device_id: str | None = None, timeout: int = 15):
        self.device_id = device_id
        self.timeout = timeout

    def run(self, command: str) -> CommandResult:
        """
        执行 shell 命令

        Raises:
            RuntimeError: 命令超时或 adb 不可用
        """
        args = get_adb_prefix(self.device_id) + ["shell"] + shlex.split(command)
        try:
            result = subprocess.run(args, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise RuntimeError(f"ADB command timeout after {self.timeout}s: {command}") from e
        except FileNotFoundError as e:
            raise RuntimeError("adb not found in PATH") from e
        return CommandResult(stdout=result.stdout, stderr=result.stderr, exit_code=result.returncode)


def get_current_app(device_id: str | None = None) -> str:
    """
    获取当前焦点应用名称

    Args:
        device_id: ADB设备ID(可选),用于多设备场景

    Returns:
        识别的应用名称；未收录的应用返回包名；检测不到时返回"系统桌面"
    """
    try:
        result = subprocess.run(
            get_adb_prefix(device_id) + ["shell", "dumpsys", "window"],
            capture_output=True,
            text=True,
            timeout=10,
        )
    except subprocess.TimeoutExpired:
        logger.warning("dumpsys window timeout")
        return HOME_SCREEN

    for line in result.stdout.splitlines():
        if "mCurrentFocus" in line or "mFocusedApp" in line:
            match = _FOCUS_PACKAGE.search(line)
            if match:
                package = match.group(1)
                return find_app_name(package) or package

    return HOME_SCREEN


def check_device_connected(device_id: str | None = None) -> bool:
    """`adb get-state` 返回 device 即视为已连接"""
    try:
        result = subprocess.run(
            get_adb_prefix(device_id) + ["get-state"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        return False
    return result.returncode == 0 and result.stdout.strip() == "device"
