#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
统一动作格式定义

每个动作变体是一个不可变的 Pydantic 模型，`Action` 是所有变体的联合类型。
坐标一律为归一化坐标（0-999），范围校验由解析器负责，
这样可以一次性收集所有越界字段，而不是遇到第一个就失败。

动作列表：
- Tap / DoubleTap / LongPress: element=[x, y]
- Swipe: start=[x, y], end=[x, y]
- Type / Type_Name: text
- Launch: app
- List_Apps: 列出已安装的第三方应用
- Back / Home / VolumeUp / VolumeDown / Power
- Wait: duration（秒）
- Take_over: 请求用户接管
- Note: 记录页面内容
- Interact: 请用户在若干选项中做选择
- Call_API: 交给模型自身处理的指令，不产生设备操作
- Batch: 一次执行多个设备动作，步骤之间间隔 delay 毫秒
- finish: message
"""

from typing import Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field


class _BaseAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    def format_for_display(self) -> str:
        return type(self).__name__


class Tap(_BaseAction):
    """点击；message 非空表示这是一次敏感操作（支付、删除等）"""
    x: int = Field(..., description="归一化X坐标 (0-999)")
    y: int = Field(..., description="归一化Y坐标 (0-999)")
    message: Optional[str] = None

    def format_for_display(self) -> str:
        return f"点击 ({self.x}, {self.y})"


class Swipe(_BaseAction):
    """
    滑动

    duration_ms 为空时由命令构建器根据滑动距离计算时长。
    """
    start_x: int
    start_y: int
    end_x: int
    end_y: int
    duration_ms: Optional[int] = Field(None, description="滑动时长（毫秒），为空时自动计算")

    def format_for_display(self) -> str:
        return f"滑动 从({self.start_x}, {self.start_y}) 到({self.end_x}, {self.end_y})"


class Type(_BaseAction):
    """在当前焦点输入框输入文本"""
    text: str = ""

    def format_for_display(self) -> str:
        return f"输入: {self.text}"


class TypeName(_BaseAction):
    """输入人名（与 Type 的执行方式相同）"""
    text: str = ""

    def format_for_display(self) -> str:
        return f"输入名称: {self.text}"


class Launch(_BaseAction):
    """启动应用，app 可以是应用名称或包名"""
    app: str

    def format_for_display(self) -> str:
        return f"启动 {self.app}"


class ListApps(_BaseAction):
    def format_for_display(self) -> str:
        return "列出已安装应用"


class Back(_BaseAction):
    def format_for_display(self) -> str:
        return "返回"


class Home(_BaseAction):
    def format_for_display(self) -> str:
        return "主页"


class VolumeUp(_BaseAction):
    def format_for_display(self) -> str:
        return "音量+"


class VolumeDown(_BaseAction):
    def format_for_display(self) -> str:
        return "音量-"


class Power(_BaseAction):
    def format_for_display(self) -> str:
        return "电源键"


class LongPress(_BaseAction):
    """长按，默认 3000ms"""
    x: int
    y: int
    duration_ms: int = 3000

    def format_for_display(self) -> str:
        return f"长按 ({self.x}, {self.y}) {self.duration_ms}ms"


class DoubleTap(_BaseAction):
    x: int
    y: int

    def format_for_display(self) -> str:
        return f"双击 ({self.x}, {self.y})"


class Wait(_BaseAction):
    """等待，单位秒"""
    duration_seconds: float

    def format_for_display(self) -> str:
        return f"等待 {self.duration_seconds:g}s"


class TakeOver(_BaseAction):
    """
    请求用户接管（登录、验证码等模型无法处理的场景）

    协调器收到后会暂停任务，用户处理完再恢复。
    """
    message: str = "User intervention required"

    def format_for_display(self) -> str:
        return f"请求接管: {self.message}"


class Note(_BaseAction):
    """记录当前页面内容，不产生设备操作"""
    message: str = ""

    def format_for_display(self) -> str:
        return f"记录: {self.message}"


class Interact(_BaseAction):
    """需要用户做选择，协调器会暂停任务等待恢复"""
    options: Optional[tuple[str, ...]] = None

    def format_for_display(self) -> str:
        if self.options:
            return "用户交互: " + " / ".join(self.options)
        return "用户交互"


class CallApi(_BaseAction):
    instruction: str = ""

    def format_for_display(self) -> str:
        return "API调用"


class Finish(_BaseAction):
    """任务完成"""
    message: str = ""

    def format_for_display(self) -> str:
        return f"完成: {self.message}"


# Batch 里允许出现的动作
BatchStep = Union[
    Tap,
    Swipe,
    Type,
    TypeName,
    Launch,
    Back,
    Home,
    VolumeUp,
    VolumeDown,
    Power,
    LongPress,
    DoubleTap,
    Wait,
]

BATCH_STEP_TYPES = get_args(BatchStep)


class Batch(_BaseAction):
    """按顺序执行多个设备动作，步骤之间等待 delay_ms"""
    steps: tuple[BatchStep, ...]
    delay_ms: int = 500

    def format_for_display(self) -> str:
        return f"批量操作: {len(self.steps)}步 (间隔{self.delay_ms}ms)"


Action = Union[
    Tap,
    Swipe,
    Type,
    TypeName,
    Launch,
    ListApps,
    Back,
    Home,
    VolumeUp,
    VolumeDown,
    Power,
    LongPress,
    DoubleTap,
    Wait,
    TakeOver,
    Interact,
    Note,
    CallApi,
    Batch,
    Finish,
]
