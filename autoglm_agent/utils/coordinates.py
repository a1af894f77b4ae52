#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
坐标转换

模型输出的是归一化坐标（0-1000 网格，与屏幕分辨率无关），
执行前需要换算成设备的绝对像素坐标。

换算使用截断整除：
    abs = rel * dimension // 1000
0 映射为 0，1000 恰好映射为屏幕尺寸，且在每个轴上单调不减。
"""

RELATIVE_MAX = 1000


def to_absolute_x(rel_x: int, screen_width: int) -> int:
    """归一化X坐标 -> 绝对像素"""
    return rel_x * screen_width // RELATIVE_MAX


def to_absolute_y(rel_y: int, screen_height: int) -> int:
    """归一化Y坐标 -> 绝对像素"""
    return rel_y * screen_height // RELATIVE_MAX


def to_absolute(rel_x: int, rel_y: int, screen_width: int, screen_height: int) -> tuple[int, int]:
    """
    将归一化坐标转换为绝对像素坐标

    Args:
        rel_x: 归一化X坐标 (0-1000)
        rel_y: 归一化Y坐标 (0-1000)
        screen_width: 屏幕宽度（像素）
        screen_height: 屏幕高度（像素）

    Returns:
        (x, y) 绝对像素坐标
    """
    return to_absolute_x(rel_x, screen_width), to_absolute_y(rel_y, screen_height)

