#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
模型响应解析器

把模型的原始输出拆分为「思考过程」和「动作调用」两部分：

    <think>需要先打开微信</think><answer>do(action="Launch", app="微信")</answer>
    -> thinking = "需要先打开微信"
    -> action   = 'do(action="Launch", app="微信")'

动作定位使用手写的括号配对扫描（深度计数 + 引号状态 + 转义标记），
不能用正则匹配，因为 text/message 参数里可能合法地包含括号和引号。
"""

import logging
import re
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

_TAG_PATTERNS = (
    re.compile(r"<think>\s*"),
    re.compile(r"\s*</think>"),
    re.compile(r"<answer>\s*"),
    re.compile(r"\s*</answer>"),
)

_MESSAGE_START = re.compile(r"message\s*=\s*([\"'])")


def clean_response(raw: str) -> str:
    """去掉 <think>/<answer> 标签并去除首尾空白"""
    content = raw or ""
    for pattern in _TAG_PATTERNS:
        content = pattern.sub("", content)
    return content.strip()


def find_balanced_end(content: str, open_paren_index: int) -> Optional[int]:
    """
    从左括号开始向后扫描，返回与之配对的右括号之后的位置

    只有引号之外的括号计入深度；反斜杠会让下一个字符失去特殊含义。

    Args:
        content: 待扫描文本
        open_paren_index: 左括号所在位置

    Returns:
        配对右括号的下一个索引；括号不平衡时返回 None
    """
    depth = 1
    i = open_paren_index + 1
    in_double = False
    in_single = False
    escaped = False

    while i < len(content) and depth > 0:
        char = content[i]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            if not in_single:
                in_double = not in_double
        elif char == "'":
            if not in_double:
                in_single = not in_single
        elif char == "(":
            if not in_double and not in_single:
                depth += 1
        elif char == ")":
            if not in_double and not in_single:
                depth -= 1
        i += 1

    return i if depth == 0 else None


def find_action_with_balanced_parens(content: str, action_name: str) -> Optional[Tuple[int, str]]:
    """
    查找 `action_name(...)` 形式的调用，括号必须配对

    Args:
        content: 清理后的模型输出
        action_name: "do" 或 "finish"

    Returns:
        (起始位置, 匹配文本)；未找到或括号不平衡时返回 None
    """
    start_pattern = re.compile(rf"(?<![A-Za-z0-9_]){re.escape(action_name)}\s*\(")
    match = start_pattern.search(content)
    if match is None:
        return None

    end = find_balanced_end(content, match.end() - 1)
    if end is None:
        logger.debug(f"Unbalanced parentheses after '{action_name}(' at {match.start()}")
        return None
    return match.start(), content[match.start():end]


def split_thinking_and_action(raw: str) -> Tuple[str, str]:
    """
    拆分思考过程与动作

    do 与 finish 分别查找，同时存在时取位置更靠前的那个，
    保持模型输出的原始顺序。

    Returns:
        (thinking, action)；找不到动作时 action 为空字符串
    """
    content = clean_response(raw)

    candidates = [
        found
        for found in (
            find_action_with_balanced_parens(content, "do"),
            find_action_with_balanced_parens(content, "finish"),
        )
        if found is not None
    ]
    if not candidates:
        return content, ""

    start, action = min(candidates, key=lambda item: item[0])
    return content[:start].strip(), action.strip()


def is_finish_action(action: str) -> bool:
    return action.startswith("finish(") or action.startswith("finish (")


def is_do_action(action: str) -> bool:
    return action.startswith("do(") or action.startswith("do (")


def extract_finish_message(action: str) -> Optional[str]:
    """
    从 finish(...) 中提取 message 参数

    找到 `message=` 后面的引号，逐字符复制直到遇到未转义的同类引号。
    字符串没有闭合时返回已收集的内容（为空则返回 None）。
    """
    if not is_finish_action(action):
        return None

    match = _MESSAGE_START.search(action)
    if match is None:
        return None

    quote = match.group(1)
    collected = []
    escaped = False
    for char in action[match.end():]:
        if escaped:
            collected.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == quote:
            return "".join(collected)
        else:
            collected.append(char)

    return "".join(collected) or None

