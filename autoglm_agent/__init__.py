#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
AutoGLM Agent - 基于视觉语言模型的 Android 手机自动化

模型根据截图输出 do(...)/finish(...) 动作，经解析、坐标映射后通过 ADB 执行。
"""

from autoglm_agent.config.settings import AgentConfig, ModelConfig, load_config
from autoglm_agent.kernel.coordinator import (
    InvalidTaskError,
    TaskAlreadyRunningError,
    TaskCoordinator,
)
from autoglm_agent.kernel.state import TaskExecutionState, TaskStatus
from autoglm_agent.model.client import ModelClient

__version__ = "0.1.0"

__all__ = [
    "AgentConfig",
    "InvalidTaskError",
    "ModelClient",
    "ModelConfig",
    "TaskAlreadyRunningError",
    "TaskCoordinator",
    "TaskExecutionState",
    "TaskStatus",
    "load_config",
]
