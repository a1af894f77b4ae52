#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
标准动作执行器

职责：
1. 坐标映射 + 命令构建（commands.build_commands）
2. 通过 CommandExecutor 执行命令
3. 统一结果格式和日志记录

命令输出视为不透明文本，只根据退出码判断成功与否。
协作者抛出的异常（设备断开等）直接向上传播，由协调器标记任务失败。
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from autoglm_agent.actions.commands import DOUBLE_TAP_INTERVAL_MS, build_commands
from autoglm_agent.actions.standard_actions import Action, Batch, DoubleTap, ListApps, Tap, Wait
from autoglm_agent.config.apps import UnknownAppError, find_app_name
from autoglm_agent.kernel.protocols import CommandExecutor

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """单个动作的执行结果"""
    success: bool
    message: str = ""
    commands: list[str] = field(default_factory=list)
    # List_Apps 的结果（应用名称，未收录的用包名）
    apps: list[str] = field(default_factory=list)


class ActionExecutor:
    """
    动作执行器

    Args:
        command_executor: 命令执行协作者
        sleep: 等待函数（秒），协调器注入的版本在任务取消时抛出异常，后续步骤不再执行
    """

    def __init__(
        self,
        command_executor: CommandExecutor,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.command_executor = command_executor
        self._sleep = sleep

    def execute(self, action: Action, screen_width: int, screen_height: int) -> ExecutionResult:
        """
        执行动作

        Args:
            action: 已解析的动作
            screen_width: 屏幕宽度（像素）
            screen_height: 屏幕高度（像素）

        Returns:
            ExecutionResult
        """
        if isinstance(action, Batch):
            return self._execute_batch(action, screen_width, screen_height)

        if isinstance(action, Tap) and action.message:
            logger.warning(f"[SENSITIVE] {action.message}")

        if isinstance(action, Wait):
            logger.info(f"[WAIT] {action.duration_seconds:g}s")
            self._sleep(action.duration_seconds)
            return ExecutionResult(success=True, message=f"Waited {action.duration_seconds:g}s")

        try:
            commands = build_commands(action, screen_width, screen_height)
        except UnknownAppError as e:
            logger.warning(f"[X] {e}")
            return ExecutionResult(success=False, message=str(e))

        if not commands:
            return ExecutionResult(success=True, message=action.format_for_display())

        interval = DOUBLE_TAP_INTERVAL_MS / 1000 if isinstance(action, DoubleTap) else 0
        for index, command in enumerate(commands):
            if index and interval:
                self._sleep(interval)

            logger.debug(f"[CMD] {command}")
            result = self.command_executor.run(command)
            if not result.success:
                logger.warning(
                    f"[X] Command failed (exit={result.exit_code}): {command} "
                    f"stderr={result.stderr.strip()[:200]}"
                )
                return ExecutionResult(
                    success=False,
                    message=f"Command failed with exit code {result.exit_code}",
                    commands=commands[: index + 1],
                )

        if isinstance(action, ListApps):
            apps = _parse_packages(result.stdout)
            logger.info(f"[OK] Found {len(apps)} installed app(s)")
            return ExecutionResult(
                success=True,
                message=f"Found {len(apps)} installed app(s)",
                commands=commands,
                apps=apps,
            )

        logger.info(f"[OK] {action.format_for_display()}")
        return ExecutionResult(success=True, message=action.format_for_display(), commands=commands)

    def _execute_batch(self, batch: Batch, screen_width: int, screen_height: int) -> ExecutionResult:
        """逐步执行，任一步失败即停止"""
        executed: list[str] = []
        for index, step in enumerate(batch.steps):
            if index:
                self._sleep(batch.delay_ms / 1000)
            result = self.execute(step, screen_width, screen_height)
            executed.extend(result.commands)
            if not result.success:
                return ExecutionResult(
                    success=False,
                    message=f"Batch step {index + 1} failed: {result.message}",
                    commands=executed,
                )
        return ExecutionResult(success=True, message=batch.format_for_display(), commands=executed)


def _parse_packages(output: str) -> list[str]:
    """`pm list packages` 输出 -> 应用名称列表"""
    apps = []
    for line in output.splitlines():
        line = line.strip()
        if line.startswith("package:"):
            package = line[len("package:"):]
            apps.append(find_app_name(package) or package)
    return apps


__all__ = ["ActionExecutor", "ExecutionResult"]
