#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""对话消息类型与 OpenAI 格式转换"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union


@dataclass(frozen=True)
class SystemMessage:
    content: str


@dataclass(frozen=True)
class UserMessage:
    text: str
    image_base64: Optional[str] = None


@dataclass(frozen=True)
class AssistantMessage:
    content: str


ChatMessage = Union[SystemMessage, UserMessage, AssistantMessage]


def detect_image_mime(image_base64: str) -> str:
    """根据 base64 前缀判断图片类型，无法识别时按 png 处理"""
    if image_base64.startswith("/9j/"):
        return "image/jpeg"
    if image_base64.startswith("iVBORw"):
        return "image/png"
    if image_base64.startswith("R0lGOD"):
        return "image/gif"
    if image_base64.startswith("UklGR"):
        return "image/webp"
    return "image/png"


class MessageBuilder:
    """Helper class for building conversation messages."""

    @staticmethod
    def build_screen_info(current_app: str, **extra_info) -> str:
        """
        Build screen info string for the model.

        Args:
            current_app: Current app name.
            **extra_info: Additional info to include.

        Returns:
            JSON string with screen info.
        """
        info = {"current_app": current_app, **extra_info}
        return json.dumps(info, ensure_ascii=False)

    @staticmethod
    def build_user_text(task: str, screen_info: str, is_first: bool) -> str:
        """首步带任务描述，后续步骤只带屏幕信息"""
        if is_first:
            return f"{task}\n\n{screen_info}"
        return f"** Screen Info **\n\n{screen_info}"

    @staticmethod
    def build_assistant_content(thinking: str, action: str) -> str:
        return f"<think>{thinking}</think><answer>{action}</answer>"

    @staticmethod
    def image_content(image_base64: str) -> dict[str, Any]:
        mime = detect_image_mime(image_base64)
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{mime};base64,{image_base64}"},
        }

    @staticmethod
    def to_openai(
        messages: list[ChatMessage],
        image_base64: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        转换为 OpenAI chat 格式

        Args:
            messages: 对话消息
            image_base64: 额外附加到最后一条 User 消息的图片（可选）

        Returns:
            [{"role": ..., "content": ...}]；带图片的 User 消息 content 为数组
        """
        last_user_index = max(
            (i for i, m in enumerate(messages) if isinstance(m, UserMessage)),
            default=-1,
        )

        result = []
        for index, message in enumerate(messages):
            if isinstance(message, SystemMessage):
                result.append({"role": "system", "content": message.content})
            elif isinstance(message, AssistantMessage):
                result.append({"role": "assistant", "content": message.content})
            else:
                image = message.image_base64
                if index == last_user_index and image_base64:
                    image = image_base64
                if image:
                    content: Any = [
                        {"type": "text", "text": message.text},
                        MessageBuilder.image_content(image),
                    ]
                else:
                    content = message.text
                result.append({"role": "user", "content": content})
        return result
