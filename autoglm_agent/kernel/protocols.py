#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
外部协作者协议

协调器只依赖这些接口，不关心背后是 ADB、模拟器还是测试替身：
1. CommandExecutor: 执行一条 shell 命令，返回 stdout/stderr/退出码
2. ScreenshotProvider: 每一步提供一张 base64 截图
3. AppDetector: 返回当前前台应用名称（可选）
"""

from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass(frozen=True)
class CommandResult:
    """
    命令执行结果

    输出对核心逻辑是不透明的文本，只有退出码参与判断。
    """
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class Screenshot:
    """截图结果"""
    base64_data: str
    width: int
    height: int
    is_sensitive: bool = False


class CommandExecutor(Protocol):
    """
    设备命令执行协议

    Example:
        >>> class EchoExecutor:
        ...     def run(self, command: str) -> CommandResult:
        ...         return CommandResult(stdout=command)
    """

    def run(self, command: str) -> CommandResult:
        """
        执行 shell 命令

        Args:
            command: 完整命令文本（不含 `adb shell` 前缀）
        """
        ...


class ScreenshotProvider(Protocol):
    """截图协议"""

    def capture(self) -> Screenshot:
        ...


AppDetector = Callable[[], str]


__all__ = [
    "AppDetector",
    "CommandExecutor",
    "CommandResult",
    "Screenshot",
    "ScreenshotProvider",
]
