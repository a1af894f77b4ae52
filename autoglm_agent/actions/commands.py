#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
设备命令构建

把已校验的 Action 转换为精确的 `adb shell` 命令文本。
纯函数：相同输入总是得到逐字节相同的命令。

| 动作 | 命令 |
|------|------|
| Tap | input tap X Y |
| Swipe | input swipe SX SY EX EY D |
| LongPress | input swipe X Y X Y D（起止点相同） |
| DoubleTap | 两条 input tap X Y，执行器在中间等待 100ms |
| Back/Home/VolumeUp/VolumeDown/Power | input keyevent 4/3/24/25/26 |
| Type/TypeName | am broadcast -a ADB_INPUT_B64 --es msg <base64> |
| Launch | monkey -p <package> -c android.intent.category.LAUNCHER 1 |
| List_Apps | pm list packages -3 |
| Batch | 各步骤命令按顺序拼接 |
"""

import base64
import math
import shlex

from autoglm_agent.actions.standard_actions import (
    Action,
    Back,
    Batch,
    DoubleTap,
    Home,
    Launch,
    ListApps,
    LongPress,
    Power,
    Swipe,
    Tap,
    Type,
    TypeName,
    VolumeDown,
    VolumeUp,
)
from autoglm_agent.config.apps import resolve_package
from autoglm_agent.utils.coordinates import to_absolute

KEYCODE_BACK = 4
KEYCODE_HOME = 3
KEYCODE_VOLUME_UP = 24
KEYCODE_VOLUME_DOWN = 25
KEYCODE_POWER = 26

LIST_APPS_COMMAND = "pm list packages -3"

# 双击两次点击之间的间隔（毫秒），必须小于系统双击判定阈值 300ms
DOUBLE_TAP_INTERVAL_MS = 100

# 拟人化滑动时长：200ms 基础 + 每像素 0.3ms，限制在 [150, 1500]
SWIPE_BASE_MS = 200
SWIPE_MS_PER_PIXEL = 0.3
SWIPE_MIN_MS = 150
SWIPE_MAX_MS = 1500

_KEY_EVENTS = {
    Back: KEYCODE_BACK,
    Home: KEYCODE_HOME,
    VolumeUp: KEYCODE_VOLUME_UP,
    VolumeDown: KEYCODE_VOLUME_DOWN,
    Power: KEYCODE_POWER,
}


def swipe_duration_ms(start_x: int, start_y: int, end_x: int, end_y: int) -> int:
    """根据像素距离计算滑动时长"""
    distance = math.hypot(end_x - start_x, end_y - start_y)
    duration = int(SWIPE_BASE_MS + distance * SWIPE_MS_PER_PIXEL)
    return max(SWIPE_MIN_MS, min(duration, SWIPE_MAX_MS))


def tap_command(x: int, y: int) -> str:
    return f"input tap {x} {y}"


def swipe_command(start_x: int, start_y: int, end_x: int, end_y: int, duration_ms: int) -> str:
    return f"input swipe {start_x} {start_y} {end_x} {end_y} {duration_ms}"


def keyevent_command(keycode: int) -> str:
    return f"input keyevent {keycode}"


def type_command(text: str) -> str:
    """通过 ADB Keyboard 的 base64 广播输入文本，避免 shell 转义和中文问题"""
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return f"am broadcast -a ADB_INPUT_B64 --es msg {encoded}"


def launch_command(app: str) -> str:
    package = resolve_package(app)
    return f"monkey -p {shlex.quote(package)} -c android.intent.category.LAUNCHER 1"


def build_commands(action: Action, screen_width: int, screen_height: int) -> list[str]:
    """
    构建动作对应的 shell 命令列表

    Args:
        action: 已校验的动作
        screen_width: 屏幕宽度（像素）
        screen_height: 屏幕高度（像素）

    Returns:
        命令列表；Wait/Finish/TakeOver/Interact/Note/CallApi 没有设备命令，返回空列表

    Raises:
        UnknownAppError: Launch 的应用无法解析为包名
    """
    if isinstance(action, Tap):
        return [tap_command(*to_absolute(action.x, action.y, screen_width, screen_height))]

    if isinstance(action, DoubleTap):
        command = tap_command(*to_absolute(action.x, action.y, screen_width, screen_height))
        return [command, command]

    if isinstance(action, LongPress):
        x, y = to_absolute(action.x, action.y, screen_width, screen_height)
        return [swipe_command(x, y, x, y, action.duration_ms)]

    if isinstance(action, Swipe):
        sx, sy = to_absolute(action.start_x, action.start_y, screen_width, screen_height)
        ex, ey = to_absolute(action.end_x, action.end_y, screen_width, screen_height)
        duration = action.duration_ms
        if duration is None:
            duration = swipe_duration_ms(sx, sy, ex, ey)
        return [swipe_command(sx, sy, ex, ey, duration)]

    if isinstance(action, (Type, TypeName)):
        return [type_command(action.text)]

    if isinstance(action, Launch):
        return [launch_command(action.app)]

    if isinstance(action, ListApps):
        return [LIST_APPS_COMMAND]

    if isinstance(action, Batch):
        return [
            command
            for step in action.steps
            for command in build_commands(step, screen_width, screen_height)
        ]

    keycode = _KEY_EVENTS.get(type(action))
    if keycode is not None:
        return [keyevent_command(keycode)]

    return []
