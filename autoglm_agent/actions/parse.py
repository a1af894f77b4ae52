#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
动作语法解析器

把模型输出的函数调用式文本解析成 Action 对象：

    do(action="Tap", element=[500, 300])
    do(action="Swipe", start=[500, 700], end=[500, 300])
    do(action="Type", text="hello (world)")
    do(action="Wait", duration="2 seconds")
    do(action="Batch", steps=[{"action": "Tap", "element": [500, 300]}, {"action": "Back"}], delay=300)
    finish(message="任务完成")

注意：
- 坐标使用归一化格式 (0-999)，越界的字段会全部收集后一起报告
- 参数按顶层逗号切分，引号和方括号内的逗号、括号不参与切分
- 动作名不区分大小写，容忍空格/下划线写法（"Long Press"、"Double Tap"）
"""

import json
import logging
import re
from typing import Any, NamedTuple, Optional

from autoglm_agent.actions.standard_actions import (
    BATCH_STEP_TYPES,
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
from autoglm_agent.model.response_parser import (
    clean_response,
    extract_finish_message,
    find_action_with_balanced_parens,
)

logger = logging.getLogger(__name__)

MIN_COORDINATE = 0
MAX_COORDINATE = 999
DEFAULT_LONG_PRESS_MS = 3000
DEFAULT_BATCH_DELAY_MS = 500

_DURATION_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*(seconds?|secs?|s|ms)?$", re.IGNORECASE)


class ActionParseError(ValueError):
    """动作文本无法识别、动作名未知或缺少必需参数"""


class InvalidCoordinate(NamedTuple):
    name: str
    value: int


class CoordinateOutOfRangeError(ValueError):
    """
    坐标越界

    Attributes:
        invalid_coordinates: 所有越界字段 (字段名, 值)
        original_action: 原始动作文本
    """

    def __init__(self, invalid_coordinates: list[InvalidCoordinate], original_action: str):
        self.invalid_coordinates = list(invalid_coordinates)
        self.original_action = original_action
        details = ", ".join(f"{c.name}={c.value}" for c in self.invalid_coordinates)
        super().__init__(f"Coordinates out of range: {details}")


# 归一化后的动作名 -> 规范名
_ACTION_ALIASES = {
    "tap": "Tap",
    "click": "Tap",
    "swipe": "Swipe",
    "type": "Type",
    "typename": "TypeName",
    "launch": "Launch",
    "back": "Back",
    "home": "Home",
    "volumeup": "VolumeUp",
    "volumedown": "VolumeDown",
    "power": "Power",
    "longpress": "LongPress",
    "doubletap": "DoubleTap",
    "wait": "Wait",
    "takeover": "TakeOver",
    "note": "Note",
    "listapps": "ListApps",
    "interact": "Interact",
    "callapi": "CallApi",
    "batch": "Batch",
}


def normalize_action_name(name: str) -> Optional[str]:
    """'Long Press' / 'long_press' / 'LongPress' -> 'LongPress'；未知返回 None"""
    key = re.sub(r"[\s_\-]+", "", name).lower()
    return _ACTION_ALIASES.get(key)


def split_params(args: str) -> dict[str, str]:
    """
    按顶层逗号切分参数列表

    引号内（支持转义）和方括号/圆括号/花括号内的逗号不切分。
    返回 {参数名: 原始值文本}，值保留引号，由调用方解码。
    """
    parts = []
    current = []
    depth = 0
    in_double = False
    in_single = False
    escaped = False

    for char in args:
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\" and (in_double or in_single):
            current.append(char)
            escaped = True
            continue
        if char == '"' and not in_single:
            in_double = not in_double
        elif char == "'" and not in_double:
            in_single = not in_single
        elif not in_double and not in_single:
            if char in "[({":
                depth += 1
            elif char in "])}":
                depth -= 1
            elif char == "," and depth == 0:
                parts.append("".join(current))
                current = []
                continue
        current.append(char)

    if "".join(current).strip():
        parts.append("".join(current))

    params = {}
    for part in parts:
        key, sep, value = part.partition("=")
        if not sep:
            raise ActionParseError(f"Malformed parameter: {part.strip()!r}")
        params[key.strip()] = value.strip()
    return params


def unquote(value: str) -> str:
    """去掉首尾引号并还原 \\" \\' \\\\ 转义；未加引号的值原样返回"""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        body = value[1:-1]
        result = []
        i = 0
        while i < len(body):
            char = body[i]
            if char == "\\" and i + 1 < len(body) and body[i + 1] in "\"'\\":
                result.append(body[i + 1])
                i += 2
                continue
            result.append(char)
            i += 1
        return "".join(result)
    return value


def _parse_point(raw: str, param: str, names: tuple[str, str]) -> list[tuple[str, int]]:
    text = raw.strip()
    if not (text.startswith("[") and text.endswith("]")):
        raise ActionParseError(f"Parameter '{param}' must be [x, y], got {raw!r}")
    items = [item.strip() for item in text[1:-1].split(",")]
    if len(items) != 2:
        raise ActionParseError(f"Parameter '{param}' must have exactly 2 values, got {raw!r}")
    try:
        values = [int(item) for item in items]
    except ValueError:
        raise ActionParseError(f"Parameter '{param}' has non-integer coordinates: {raw!r}") from None
    return list(zip(names, values))


def parse_duration_seconds(raw: str) -> float:
    """'2' / '2.5' / '2 seconds' -> 秒数"""
    match = _DURATION_PATTERN.match(unquote(raw).strip())
    if match is None:
        raise ActionParseError(f"Invalid duration: {raw!r}")
    value = float(match.group(1))
    unit = (match.group(2) or "").lower()
    return value / 1000 if unit == "ms" else value


def parse_duration_ms(raw: str) -> int:
    """长按/滑动时长：裸数字按毫秒处理，带 seconds 后缀时换算成毫秒"""
    match = _DURATION_PATTERN.match(unquote(raw).strip())
    if match is None:
        raise ActionParseError(f"Invalid duration: {raw!r}")
    value = float(match.group(1))
    unit = (match.group(2) or "ms").lower()
    return int(value) if unit == "ms" else int(value * 1000)


class _CoordinateCollector:
    """收集一次解析中的所有坐标，越界的统一在最后报告"""

    def __init__(self, params: dict[str, str]):
        self.params = params
        self.values: dict[str, int] = {}

    def point(self, param: str, names: tuple[str, str], action_name: str) -> None:
        raw = self.params.get(param)
        if raw is None:
            raise ActionParseError(f"Missing required parameter '{param}' for {action_name}")
        for name, value in _parse_point(raw, param, names):
            self.values[name] = value

    def check(self, original_action: str) -> dict[str, int]:
        invalid = [
            InvalidCoordinate(name, value)
            for name, value in self.values.items()
            if not MIN_COORDINATE <= value <= MAX_COORDINATE
        ]
        if invalid:
            raise CoordinateOutOfRangeError(invalid, original_action)
        return self.values


def _build_do_action(action_text: str, params: dict[str, str]) -> Action:
    raw_name = params.get("action")
    if raw_name is None:
        raise ActionParseError(f"Missing 'action' parameter: {action_text}")
    name = normalize_action_name(unquote(raw_name))
    if name is None:
        raise ActionParseError(f"Unknown action: {unquote(raw_name)}")

    def text_param(key: str, default: Optional[str] = None) -> Optional[str]:
        raw = params.get(key)
        return default if raw is None else unquote(raw)

    coords = _CoordinateCollector(params)

    if name in ("Tap", "DoubleTap", "LongPress"):
        coords.point("element", ("x", "y"), name)
        values = coords.check(action_text)
        if name == "Tap":
            return Tap(x=values["x"], y=values["y"], message=text_param("message"))
        if name == "DoubleTap":
            return DoubleTap(x=values["x"], y=values["y"])
        duration = params.get("duration")
        return LongPress(
            x=values["x"],
            y=values["y"],
            duration_ms=DEFAULT_LONG_PRESS_MS if duration is None else parse_duration_ms(duration),
        )

    if name == "Swipe":
        coords.point("start", ("startX", "startY"), name)
        coords.point("end", ("endX", "endY"), name)
        values = coords.check(action_text)
        duration = params.get("duration")
        return Swipe(
            start_x=values["startX"],
            start_y=values["startY"],
            end_x=values["endX"],
            end_y=values["endY"],
            duration_ms=None if duration is None else parse_duration_ms(duration),
        )

    if name == "Type":
        return Type(text=text_param("text", ""))
    if name == "TypeName":
        return TypeName(text=text_param("text", ""))

    if name == "Launch":
        app = text_param("app")
        if not app:
            raise ActionParseError("Missing required parameter 'app' for Launch")
        return Launch(app=app)

    if name == "Wait":
        duration = params.get("duration")
        if duration is None:
            raise ActionParseError("Missing required parameter 'duration' for Wait")
        return Wait(duration_seconds=parse_duration_seconds(duration))

    if name == "Batch":
        return _build_batch(action_text, params)

    if name == "ListApps":
        return ListApps()

    if name == "Interact":
        raw_options = params.get("options")
        return Interact(options=None if raw_options is None else _parse_options(raw_options))

    if name == "CallApi":
        return CallApi(instruction=text_param("instruction", ""))

    if name == "TakeOver":
        message = text_param("message")
        return TakeOver() if message is None else TakeOver(message=message)
    if name == "Note":
        return Note(message=text_param("message", ""))

    simple: dict[str, Any] = {
        "Back": Back,
        "Home": Home,
        "VolumeUp": VolumeUp,
        "VolumeDown": VolumeDown,
        "Power": Power,
    }
    return simple[name]()


def _raw_value(value: Any) -> str:
    """把 JSON 值还原成参数原文，供 _build_do_action 复用"""
    if isinstance(value, str):
        return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return json.dumps(value, ensure_ascii=False)


def _load_json_list(raw: str, param: str) -> list:
    try:
        value = json.loads(raw)
    except ValueError:
        raise ActionParseError(f"Parameter '{param}' is not a valid list: {raw[:200]!r}") from None
    if not isinstance(value, list):
        raise ActionParseError(f"Parameter '{param}' must be a list, got {raw[:200]!r}")
    return value


def _parse_options(raw: str) -> tuple[str, ...]:
    return tuple(str(option) for option in _load_json_list(raw, "options"))


def _build_batch(action_text: str, params: dict[str, str]) -> Batch:
    raw_steps = params.get("steps")
    if raw_steps is None:
        raise ActionParseError("Missing required parameter 'steps' for Batch")

    steps = []
    for index, item in enumerate(_load_json_list(raw_steps, "steps"), start=1):
        if not isinstance(item, dict):
            raise ActionParseError(f"Batch step {index} must be an object, got {item!r}")
        step = _build_do_action(action_text, {str(k): _raw_value(v) for k, v in item.items()})
        if not isinstance(step, BATCH_STEP_TYPES):
            raise ActionParseError(f"Action not allowed in Batch: {type(step).__name__}")
        steps.append(step)

    if not steps:
        raise ActionParseError(f"Empty steps in Batch action: {action_text}")

    delay = params.get("delay")
    return Batch(
        steps=tuple(steps),
        delay_ms=DEFAULT_BATCH_DELAY_MS if delay is None else parse_duration_ms(delay),
    )


def parse_action(text: str) -> Action:
    """
    解析一条动作调用

    Args:
        text: 模型输出的动作文本（可以带 <answer> 标签或前置思考文字）

    Returns:
        对应的 Action 对象

    Raises:
        ActionParseError: 文本无法识别、动作名未知、缺少参数
        CoordinateOutOfRangeError: 任一坐标不在 [0, 999]，携带所有越界字段
    """
    content = clean_response(text)

    candidates = [
        found
        for found in (
            find_action_with_balanced_parens(content, "do"),
            find_action_with_balanced_parens(content, "finish"),
        )
        if found is not None
    ]
    if not candidates:
        raise ActionParseError(f"Unrecognized action: {text!r}")

    _, action_text = min(candidates, key=lambda item: item[0])
    action_text = action_text.strip()

    if action_text.startswith("finish"):
        return Finish(message=extract_finish_message(action_text) or "")

    args = action_text[action_text.index("(") + 1:-1]
    params = split_params(args)
    action = _build_do_action(action_text, params)
    logger.debug(f"Parsed action: {action!r}")
    return action


__all__ = [
    "ActionParseError",
    "CoordinateOutOfRangeError",
    "InvalidCoordinate",
    "MAX_COORDINATE",
    "MIN_COORDINATE",
    "normalize_action_name",
    "parse_action",
    "parse_duration_ms",
    "parse_duration_seconds",
    "split_params",
    "unquote",
]
