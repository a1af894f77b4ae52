#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
运行配置

优先级（从低到高）：
1. dataclass 默认值
2. YAML 配置文件（model: / agent: 两个小节）
3. 环境变量 AUTOGLM_*

示例 config.yaml:

    model:
      base_url: https://open.bigmodel.cn/api/paas/v4
      api_key: your-key
      model_name: autoglm-phone
    agent:
      max_steps: 50
      device_id: emulator-5554
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from autoglm_agent.config.prompts import get_system_prompt

logger = logging.getLogger(__name__)


@dataclass
class ModelConfig:
    """Configuration for the AI model."""

    base_url: str = "https://open.bigmodel.cn/api/paas/v4"
    api_key: str = "EMPTY"
    model_name: str = "autoglm-phone"
    max_tokens: int = 3000
    temperature: float = 0.0
    top_p: float = 0.85
    frequency_penalty: float = 0.2
    timeout_seconds: float = 120.0


@dataclass
class AgentConfig:
    """Configuration for the task coordinator."""

    max_steps: int = 100
    device_id: Optional[str] = None
    system_prompt: str = field(default_factory=get_system_prompt)
    verbose: bool = True
    log_level: str = "INFO"


# 环境变量 -> (小节, 字段)
_ENV_OVERRIDES = {
    "AUTOGLM_BASE_URL": ("model", "base_url"),
    "AUTOGLM_API_KEY": ("model", "api_key"),
    "AUTOGLM_MODEL": ("model", "model_name"),
    "AUTOGLM_MAX_STEPS": ("agent", "max_steps"),
    "AUTOGLM_DEVICE_ID": ("agent", "device_id"),
    "AUTOGLM_LOG_LEVEL": ("agent", "log_level"),
}


def _apply(target: Any, values: dict[str, Any], section: str) -> None:
    known = {f.name: f for f in fields(target)}
    for key, value in values.items():
        if key not in known:
            logger.warning(f"[WARN] Unknown config key ignored: {section}.{key}")
            continue
        current = getattr(target, key)
        if isinstance(current, bool):
            value = value if isinstance(value, bool) else str(value).lower() in ("1", "true", "yes")
        elif isinstance(current, int) and not isinstance(current, bool):
            value = int(value)
        elif isinstance(current, float):
            value = float(value)
        setattr(target, key, value)


def load_config(path: Optional[str] = None) -> tuple[ModelConfig, AgentConfig]:
    """
    加载配置

    Args:
        path: YAML 配置文件路径（可选）

    Returns:
        (ModelConfig, AgentConfig)

    Raises:
        FileNotFoundError: 指定的配置文件不存在
        yaml.YAMLError: 配置文件格式错误
    """
    model_config = ModelConfig()
    agent_config = AgentConfig()

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        _apply(model_config, data.get("model") or {}, "model")
        _apply(agent_config, data.get("agent") or {}, "agent")
        logger.info(f"[OK] Loaded config from {config_path}")

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            target = model_config if section == "model" else agent_config
            _apply(target, {key: value}, section)

    return model_config, agent_config
