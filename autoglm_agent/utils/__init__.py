#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""通用工具"""

from autoglm_agent.utils.coordinates import (
    RELATIVE_MAX,
    to_absolute,
    to_absolute_x,
    to_absolute_y,
)

__all__ = [
    "RELATIVE_MAX",
    "to_absolute",
    "to_absolute_x",
    "to_absolute_y",
]
