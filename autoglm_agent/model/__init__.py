#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""模型客户端与响应解析"""

from autoglm_agent.model.client import (
    ConnectionFailedError,
    ConnectionTestResult,
    ModelClient,
    ModelResponse,
    NetworkError,
    RequestTimeoutError,
    ResponseParseError,
    ServerError,
)
from autoglm_agent.model.messages import (
    AssistantMessage,
    ChatMessage,
    MessageBuilder,
    SystemMessage,
    UserMessage,
)
from autoglm_agent.model.response_parser import (
    extract_finish_message,
    is_do_action,
    is_finish_action,
    split_thinking_and_action,
)

__all__ = [
    "AssistantMessage",
    "ChatMessage",
    "ConnectionFailedError",
    "ConnectionTestResult",
    "MessageBuilder",
    "ModelClient",
    "ModelResponse",
    "NetworkError",
    "RequestTimeoutError",
    "ResponseParseError",
    "ServerError",
    "SystemMessage",
    "UserMessage",
    "extract_finish_message",
    "is_do_action",
    "is_finish_action",
    "split_thinking_and_action",
]
