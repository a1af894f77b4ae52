#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
内核：对话上下文、任务状态、协作者协议

TaskCoordinator 位于 autoglm_agent.kernel.coordinator，
不在这里导出（它依赖 actions 包，而 actions 依赖本包的协议定义）。
"""

from autoglm_agent.kernel.context import ConversationContext
from autoglm_agent.kernel.protocols import (
    AppDetector,
    CommandExecutor,
    CommandResult,
    Screenshot,
    ScreenshotProvider,
)
from autoglm_agent.kernel.state import TaskExecutionState, TaskStatus, TaskStep

__all__ = [
    "AppDetector",
    "CommandExecutor",
    "CommandResult",
    "ConversationContext",
    "Screenshot",
    "ScreenshotProvider",
    "TaskExecutionState",
    "TaskStatus",
    "TaskStep",
]
