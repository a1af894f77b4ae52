#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
对话上下文

有序的消息列表，第一条永远是唯一的 System 消息。
追加新的 User 消息时，之前所有 User 消息的截图都会被清掉（文字保留），
上下文里始终只保留最新的一张截图，长任务的内存占用不会随步数增长。

只由协调器的工作线程修改，不加锁。
"""

import dataclasses
import logging
from typing import Optional

from autoglm_agent.model.messages import (
    AssistantMessage,
    ChatMessage,
    SystemMessage,
    UserMessage,
)

logger = logging.getLogger(__name__)


class ConversationContext:
    """
    对话上下文

    Args:
        system_prompt: 系统提示词
    """

    def __init__(self, system_prompt: str):
        self._system_prompt = system_prompt
        self._messages: list[ChatMessage] = [SystemMessage(system_prompt)]

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def add_user_message(self, text: str, image_base64: Optional[str] = None) -> None:
        """追加 User 消息，并清除之前所有 User 消息中的截图"""
        stripped = 0
        for index, message in enumerate(self._messages):
            if isinstance(message, UserMessage) and message.image_base64 is not None:
                self._messages[index] = dataclasses.replace(message, image_base64=None)
                stripped += 1
        if stripped:
            logger.debug(f"Stripped {stripped} old screenshot(s) from context")
        self._messages.append(UserMessage(text, image_base64))

    def add_assistant_message(self, content: str) -> None:
        self._messages.append(AssistantMessage(content))

    def _remove_last(self, message_type: type) -> bool:
        for index in range(len(self._messages) - 1, 0, -1):
            if isinstance(self._messages[index], message_type):
                del self._messages[index]
                return True
        return False

    def remove_last_user_message(self) -> bool:
        """删除最近一条 User 消息（从尾部查找），用于步骤重试"""
        return self._remove_last(UserMessage)

    def remove_last_assistant_message(self) -> bool:
        """删除最近一条 Assistant 消息"""
        return self._remove_last(AssistantMessage)

    def reset(self) -> None:
        """重置为只包含 System 消息"""
        self._messages = [SystemMessage(self._system_prompt)]

    @property
    def messages(self) -> list[ChatMessage]:
        """消息列表副本"""
        return list(self._messages)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    @property
    def user_message_count(self) -> int:
        return sum(1 for m in self._messages if isinstance(m, UserMessage))

    @property
    def assistant_message_count(self) -> int:
        return sum(1 for m in self._messages if isinstance(m, AssistantMessage))

    @property
    def last_message(self) -> ChatMessage:
        return self._messages[-1]

    @property
    def is_empty(self) -> bool:
        """除 System 消息外没有其他消息"""
        return len(self._messages) == 1

    def __len__(self) -> int:
        return len(self._messages)
