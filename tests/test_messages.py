import json

import pytest

from autoglm_agent.model.messages import (
    AssistantMessage,
    MessageBuilder,
    SystemMessage,
    UserMessage,
    detect_image_mime,
)


@pytest.mark.parametrize(
    "prefix,mime",
    [
        ("/9j/4AAQ", "image/jpeg"),
        ("iVBORw0KGgo", "image/png"),
        ("R0lGODlh", "image/gif"),
        ("UklGRiQ", "image/webp"),
        ("AAAA", "image/png"),
    ],
)
def test_detect_image_mime(prefix, mime):
    assert detect_image_mime(prefix) == mime


def test_to_openai_formats_roles_and_images():
    messages = [
        SystemMessage("sys"),
        UserMessage("first", image_base64=None),
        AssistantMessage("reply"),
        UserMessage("second", image_base64="/9j/abc"),
    ]
    result = MessageBuilder.to_openai(messages)

    assert result[0] == {"role": "system", "content": "sys"}
    assert result[1] == {"role": "user", "content": "first"}
    assert result[2] == {"role": "assistant", "content": "reply"}
    assert result[3] == {
        "role": "user",
        "content": [
            {"type": "text", "text": "second"},
            {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,/9j/abc"}},
        ],
    }


def test_extra_image_attaches_to_last_user_only():
    messages = [SystemMessage("s"), UserMessage("a"), AssistantMessage("r"), UserMessage("b")]
    result = MessageBuilder.to_openai(messages, image_base64="iVBORwxyz")
    assert result[1]["content"] == "a"
    assert result[3]["content"][1]["image_url"]["url"] == "data:image/png;base64,iVBORwxyz"


def test_user_text_first_and_later_steps():
    info = MessageBuilder.build_screen_info("微信")
    assert json.loads(info) == {"current_app": "微信"}
    assert MessageBuilder.build_user_text("发消息", info, is_first=True) == f"发消息\n\n{info}"
    assert MessageBuilder.build_user_text("发消息", info, is_first=False) == f"** Screen Info **\n\n{info}"


def test_assistant_content():
    assert (
        MessageBuilder.build_assistant_content("t", 'do(action="Back")')
        == '<think>t</think><answer>do(action="Back")</answer>'
    )
