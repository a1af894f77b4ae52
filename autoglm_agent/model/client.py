#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
流式模型客户端（OpenAI 兼容 /chat/completions）

- 使用 httpx 发起 SSE 流式请求，逐行累积 delta.content
- 记录首 token 耗时（TTFT）和总耗时
- 同一时间只允许一个请求在途；HTTP 交换在独立的流线程里进行，
  cancel() 立即唤醒调用方并关闭连接，等待响应头期间同样生效
- 失败统一抛出 NetworkError 的四个子类之一，不在这一层重试
"""

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx
import openai
from openai import OpenAI

from autoglm_agent.config.settings import ModelConfig
from autoglm_agent.logging_config import (
    log_network_error,
    log_network_request,
    log_network_response,
)
from autoglm_agent.model.messages import ChatMessage, MessageBuilder
from autoglm_agent.model.response_parser import split_thinking_and_action

logger = logging.getLogger(__name__)


class NetworkError(Exception):
    """模型请求失败"""


class ConnectionFailedError(NetworkError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Connection failed: {reason}")


class RequestTimeoutError(NetworkError):
    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(f"Request timed out after {timeout_ms}ms")


class ServerError(NetworkError):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Server error {status_code}: {message}")


class ResponseParseError(NetworkError):
    def __init__(self, raw_response: str):
        self.raw_response = raw_response
        super().__init__(f"Failed to parse response: {raw_response}")


@dataclass
class ModelResponse:
    """Response from the AI model."""

    thinking: str
    action: str
    raw_content: str
    time_to_first_token_ms: Optional[int] = None
    total_time_ms: Optional[int] = None


@dataclass(frozen=True)
class ConnectionTestResult:
    """连接测试结果"""

    kind: str  # success / auth_error / model_not_found / server_error / timeout / connection_error
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    message: str = ""

    @property
    def success(self) -> bool:
        return self.kind == "success"


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return str(data["message"])
    text = response.text.strip()
    return text[:200] if text else (response.reason_phrase or "Server error")


class _StreamHandle:
    """
    单个在途请求的状态

    HTTP 交换运行在独立的流线程里，调用方只等待 done。
    cancel() 直接唤醒调用方，连接建立或等待响应头期间也能立即返回；
    被放弃的流线程拿到响应后发现已取消，会自行关闭并退出。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.cancelled = threading.Event()
        self.done = threading.Event()
        self.response: Optional[httpx.Response] = None
        self.result: Optional[ModelResponse] = None
        self.error: Optional[BaseException] = None

    def attach(self, response: httpx.Response) -> bool:
        """登记响应；已取消时返回 False"""
        with self._lock:
            if self.cancelled.is_set():
                return False
            self.response = response
            return True

    def cancel(self) -> None:
        with self._lock:
            self.cancelled.set()
            response = self.response
        self.done.set()
        if response is not None:
            try:
                response.close()
            except (httpx.HTTPError, httpx.StreamError, OSError, RuntimeError) as e:
                logger.debug(f"Error while closing cancelled stream: {e}")


class ModelClient:
    """
    Client for streaming requests to OpenAI-compatible vision-language models.

    Args:
        config: Model configuration.
        http_client: Optional pre-configured httpx client (tests inject a MockTransport).
    """

    def __init__(self, config: ModelConfig | None = None, http_client: httpx.Client | None = None):
        self.config = config or ModelConfig()
        self._http = http_client or httpx.Client(
            timeout=httpx.Timeout(self.config.timeout_seconds, connect=10.0)
        )
        self._lock = threading.Lock()
        self._active: Optional[_StreamHandle] = None

    @property
    def is_request_in_flight(self) -> bool:
        with self._lock:
            return self._active is not None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }

    def build_request_body(
        self,
        messages: list[ChatMessage],
        image_base64: str | None = None,
    ) -> dict[str, Any]:
        return {
            "model": self.config.model_name,
            "messages": MessageBuilder.to_openai(messages, image_base64),
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "frequency_penalty": self.config.frequency_penalty,
            "stream": True,
        }

    def request(
        self,
        messages: list[ChatMessage],
        image_base64: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ModelResponse:
        """
        Send a streaming request to the model.

        Args:
            messages: Conversation messages.
            image_base64: Optional image attached to the last user message.
            cancel_event: Optional caller-owned cancel token. If it is already set
                when the request registers, the request fails without touching
                the network.

        Returns:
            ModelResponse containing thinking, action and timing metrics.

        Raises:
            ConnectionFailedError: Transport failure, cancellation, or another request in flight.
            RequestTimeoutError: The request exceeded the configured timeout.
            ServerError: Non-2xx response.
            ResponseParseError: The stream closed without any content.
        """
        handle = _StreamHandle()
        with self._lock:
            if self._active is not None:
                raise ConnectionFailedError("Another request is already in flight")
            self._active = handle

        url = f"{self.config.base_url.rstrip('/')}/chat/completions"
        start = time.monotonic()

        try:
            if cancel_event is not None and cancel_event.is_set():
                handle.cancelled.set()
                raise ConnectionFailedError("Request cancelled")

            body = self.build_request_body(messages, image_base64)
            log_network_request(logger, "POST", url, len(messages))
            return self._run_stream(handle, url, body, start)
        except NetworkError as e:
            if handle.cancelled.is_set():
                logger.info("[CANCEL] Model request cancelled")
            else:
                log_network_error(logger, url, e, _elapsed_ms(start))
            raise
        except Exception as e:
            if handle.cancelled.is_set():
                logger.info("[CANCEL] Model request cancelled")
                raise ConnectionFailedError("Request cancelled") from e
            if isinstance(e, httpx.TimeoutException):
                error: NetworkError = RequestTimeoutError(int(self.config.timeout_seconds * 1000))
            elif isinstance(e, (httpx.TransportError, httpx.StreamError)):
                error = ConnectionFailedError(str(e) or type(e).__name__)
            else:
                raise
            log_network_error(logger, url, error, _elapsed_ms(start))
            raise error from e
        finally:
            with self._lock:
                if self._active is handle:
                    self._active = None

    def _run_stream(
        self,
        handle: _StreamHandle,
        url: str,
        body: dict[str, Any],
        start: float,
    ) -> ModelResponse:
        def work():
            try:
                handle.result = self._stream(handle, url, body, start)
            except Exception as e:
                handle.error = e
            finally:
                handle.done.set()

        threading.Thread(target=work, name="model-stream", daemon=True).start()
        handle.done.wait()

        if handle.cancelled.is_set():
            raise ConnectionFailedError("Request cancelled")
        if handle.error is not None:
            raise handle.error
        return handle.result

    def _stream(
        self,
        handle: _StreamHandle,
        url: str,
        body: dict[str, Any],
        start: float,
    ) -> ModelResponse:
        parts: list[str] = []
        ttft_ms: Optional[int] = None

        with self._http.stream("POST", url, json=body, headers=self._headers()) as response:
            if not handle.attach(response):
                raise ConnectionFailedError("Request cancelled")

            if not response.is_success:
                response.read()
                raise ServerError(response.status_code, _extract_error_message(response))

            for line in response.iter_lines():
                if handle.cancelled.is_set():
                    raise ConnectionFailedError("Request cancelled")

                line = line.strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break

                try:
                    chunk = json.loads(data)
                    content = chunk["choices"][0]["delta"].get("content")
                except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
                    logger.debug(f"Skipping malformed chunk ({e}): {data[:100]}")
                    continue

                if content is not None:
                    if ttft_ms is None:
                        ttft_ms = _elapsed_ms(start)
                        logger.debug(f"[TTFT] {ttft_ms}ms")
                    parts.append(content)

        raw_content = "".join(parts)
        if not raw_content:
            raise ResponseParseError("Empty response")

        total_ms = _elapsed_ms(start)
        thinking, action = split_thinking_and_action(raw_content)
        log_network_response(logger, url, response.status_code, total_ms, len(raw_content), ttft_ms)
        return ModelResponse(
            thinking=thinking,
            action=action,
            raw_content=raw_content,
            time_to_first_token_ms=ttft_ms,
            total_time_ms=total_ms,
        )

    def cancel(self) -> None:
        """取消在途请求；没有在途请求时什么也不做"""
        with self._lock:
            handle = self._active
        if handle is not None:
            handle.cancel()

    def test_connection(self) -> ConnectionTestResult:
        """
        测试模型服务连通性（非流式、max_tokens=10）

        Returns:
            ConnectionTestResult
        """
        client = OpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key,
            timeout=self.config.timeout_seconds,
            max_retries=0,
            http_client=self._http,
        )
        start = time.monotonic()
        try:
            client.chat.completions.create(
                model=self.config.model_name,
                messages=[{"role": "user", "content": "Hi"}],
                max_tokens=10,
                stream=False,
            )
        except openai.AuthenticationError as e:
            return ConnectionTestResult("auth_error", status_code=401, message=str(e))
        except openai.NotFoundError as e:
            return ConnectionTestResult("model_not_found", status_code=404, message=str(e))
        except openai.APITimeoutError as e:
            return ConnectionTestResult("timeout", message=str(e))
        except openai.APIConnectionError as e:
            return ConnectionTestResult("connection_error", message=str(e))
        except openai.APIStatusError as e:
            return ConnectionTestResult("server_error", status_code=e.status_code, message=e.message)

        latency = _elapsed_ms(start)
        logger.info(f"[OK] Model connection test passed ({latency}ms)")
        return ConnectionTestResult("success", latency_ms=latency)

    def close(self) -> None:
        self._http.close()
