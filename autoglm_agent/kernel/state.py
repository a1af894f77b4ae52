#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""任务状态定义"""

from dataclasses import dataclass
from enum import Enum


class TaskStatus(Enum):
    """任务状态"""
    IDLE = "idle"             # 空闲
    RUNNING = "running"       # 执行中
    PAUSED = "paused"         # 已暂停
    COMPLETED = "completed"   # 已完成
    FAILED = "failed"         # 失败

    @property
    def is_active(self) -> bool:
        return self in (TaskStatus.RUNNING, TaskStatus.PAUSED)


@dataclass(frozen=True)
class TaskExecutionState:
    """
    任务执行状态快照

    不可变，每次变化都整体替换，观察者拿到的快照内部字段总是一致的。
    """
    status: TaskStatus = TaskStatus.IDLE
    step_number: int = 0
    thinking: str = ""
    current_action: str = ""
    result_message: str = ""
    task_description: str = ""


@dataclass(frozen=True)
class TaskStep:
    """单步执行记录"""
    step_number: int
    thinking: str
    action: str
