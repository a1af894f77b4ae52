#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""动作定义、解析、命令构建与执行"""

from autoglm_agent.actions.action_executor import ActionExecutor, ExecutionResult
from autoglm_agent.actions.commands import build_commands, swipe_duration_ms
from autoglm_agent.actions.parse import (
    ActionParseError,
    CoordinateOutOfRangeError,
    InvalidCoordinate,
    parse_action,
)
from autoglm_agent.actions.standard_actions import (
    Action,
    Back,
    Batch,
    CallApi,
    DoubleTap,
    Finish,
    Home,
    Interact,
    Launch,
    ListApps,
    LongPress,
    Note,
    Power,
    Swipe,
    TakeOver,
    Tap,
    Type,
    TypeName,
    VolumeDown,
    VolumeUp,
    Wait,
)

__all__ = [
    "Action",
    "ActionExecutor",
    "ActionParseError",
    "Back",
    "Batch",
    "CallApi",
    "CoordinateOutOfRangeError",
    "DoubleTap",
    "ExecutionResult",
    "Finish",
    "Home",
    "Interact",
    "InvalidCoordinate",
    "Launch",
    "ListApps",
    "LongPress",
    "Note",
    "Power",
    "Swipe",
    "TakeOver",
    "Tap",
    "Type",
    "TypeName",
    "VolumeDown",
    "VolumeUp",
    "Wait",
    "build_commands",
    "parse_action",
    "swipe_duration_ms",
]
