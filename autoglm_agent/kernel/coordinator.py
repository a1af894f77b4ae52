#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
任务执行协调器

驱动「截图 → 构建提示 → 流式请求模型 → 拆分 → 解析 → 执行 → 记录」循环，
并负责任务生命周期：

    IDLE ──start──> RUNNING ──pause──> PAUSED ──resume──> RUNNING
    RUNNING/PAUSED ──cancel──> IDLE
    RUNNING ──finish──> COMPLETED
    RUNNING ──error / max steps──> FAILED

并发模型：
- 公共操作（start/pause/resume/cancel）只在锁内检查并切换状态，立即返回
- 步骤循环运行在独立的工作线程中
- 每次启动分配一个代号（generation），取消会递增代号，
  过期的工作线程不会再修改状态
- 新的工作线程先 join 上一个线程，再重置上下文，上下文始终只有一个写者
- 取消会立即中断在途的模型请求；暂停不会，只在步骤边界生效
"""

import dataclasses
import logging
import threading
from typing import Any, Callable, Optional

from autoglm_agent.actions.action_executor import ActionExecutor
from autoglm_agent.actions.parse import (
    ActionParseError,
    CoordinateOutOfRangeError,
    parse_action,
)
from autoglm_agent.actions.standard_actions import (
    CallApi,
    Finish,
    Interact,
    ListApps,
    Note,
    TakeOver,
)
from autoglm_agent.config.settings import AgentConfig
from autoglm_agent.kernel.context import ConversationContext
from autoglm_agent.kernel.protocols import AppDetector, CommandExecutor, ScreenshotProvider
from autoglm_agent.kernel.state import TaskExecutionState, TaskStatus, TaskStep
from autoglm_agent.model.client import ModelClient, NetworkError
from autoglm_agent.model.messages import MessageBuilder
from autoglm_agent.model.response_parser import extract_finish_message

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "任务已取消"

StateObserver = Callable[[TaskExecutionState], None]


class TaskAlreadyRunningError(RuntimeError):
    """已有任务在执行（RUNNING 或 PAUSED）"""


class InvalidTaskError(ValueError):
    """任务描述为空"""


class _TaskCancelled(Exception):
    """工作线程所属的任务已被取消或替换"""


def _interact_message(action: Interact) -> str:
    if action.options:
        return "请选择: " + " / ".join(action.options)
    return "需要用户交互"


class TaskCoordinator:
    """
    任务执行协调器

    进程内只应构造一个实例，并注入到所有调用方（CLI、定时触发器等）。

    Args:
        model_client: 流式模型客户端
        screenshot_provider: 截图协作者
        command_executor: 命令执行协作者
        agent_config: Agent 配置
        app_detector: 返回当前前台应用名称（可选）
    """

    def __init__(
        self,
        model_client: ModelClient,
        screenshot_provider: ScreenshotProvider,
        command_executor: CommandExecutor,
        agent_config: AgentConfig | None = None,
        app_detector: AppDetector | None = None,
    ):
        self.model_client = model_client
        self.screenshot_provider = screenshot_provider
        self.command_executor = command_executor
        self.config = agent_config or AgentConfig()
        self.app_detector = app_detector

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._state = TaskExecutionState()
        self._steps: list[TaskStep] = []
        self._generation = 0
        self._worker: Optional[threading.Thread] = None
        # 当前任务的取消令牌，随模型请求一起传入客户端
        self._cancel_event = threading.Event()
        self._observers: list[StateObserver] = []

        # 状态版本号，观察者只会收到比上一次更新的快照
        self._version = 0
        self._published_version = 0
        self._publish_lock = threading.RLock()

        # 只由工作线程访问
        self._context = ConversationContext(self.config.system_prompt)

    # ------------------------------------------------------------------
    # 观察者
    # ------------------------------------------------------------------

    def add_observer(self, observer: StateObserver) -> None:
        with self._lock:
            self._observers.append(observer)

    def remove_observer(self, observer: StateObserver) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def _commit(self) -> tuple[TaskExecutionState, int]:
        """在锁内调用：为当前状态分配版本号"""
        self._version += 1
        return self._state, self._version

    def _publish(self, snapshot: TaskExecutionState, version: int) -> None:
        with self._publish_lock:
            if version <= self._published_version:
                return
            self._published_version = version
            with self._lock:
                observers = list(self._observers)
            for observer in observers:
                try:
                    observer(snapshot)
                except Exception as e:
                    logger.error(f"[X] State observer raised: {e}", exc_info=True)

    @property
    def state(self) -> TaskExecutionState:
        with self._lock:
            return self._state

    @property
    def steps(self) -> list[TaskStep]:
        with self._lock:
            return list(self._steps)

    def is_task_running(self) -> bool:
        """RUNNING 或 PAUSED"""
        with self._lock:
            return self._state.status.is_active

    # ------------------------------------------------------------------
    # 公共操作
    # ------------------------------------------------------------------

    def start_task(self, description: str) -> None:
        """
        启动任务，立即返回

        Raises:
            InvalidTaskError: 描述为空或只有空白
            TaskAlreadyRunningError: 已有任务在 RUNNING/PAUSED
        """
        if description is None or not description.strip():
            raise InvalidTaskError("Task description must not be blank")
        task = description.strip()

        with self._lock:
            if self._state.status.is_active:
                raise TaskAlreadyRunningError(
                    f"A task is already {self._state.status.value}: {self._state.task_description}"
                )
            self._generation += 1
            generation = self._generation
            self._cancel_event = threading.Event()
            cancel_event = self._cancel_event
            self._steps = []
            self._state = TaskExecutionState(status=TaskStatus.RUNNING, task_description=task)
            published = self._commit()

            previous = self._worker
            started = threading.Event()
            self._worker = threading.Thread(
                target=self._run,
                args=(generation, task, previous, started, cancel_event),
                name=f"task-worker-{generation}",
                daemon=True,
            )
            self._worker.start()

        logger.info(f"[NEW] Task started: {task}")
        self._publish(*published)
        started.set()

    def pause_task(self) -> bool:
        """暂停任务，在下一个步骤边界生效（不中断在途的模型请求）"""
        with self._lock:
            if self._state.status != TaskStatus.RUNNING:
                return False
            self._state = dataclasses.replace(self._state, status=TaskStatus.PAUSED)
            published = self._commit()

        logger.info("[PAUSE] Task paused")
        self._publish(*published)
        return True

    def resume_task(self) -> bool:
        """恢复任务；未完成的对话轮次会被丢弃并重试该步骤"""
        with self._lock:
            if self._state.status != TaskStatus.PAUSED:
                return False
            self._state = dataclasses.replace(self._state, status=TaskStatus.RUNNING)
            published = self._commit()
            self._cond.notify_all()

        logger.info("[RESUME] Task resumed")
        self._publish(*published)
        return True

    def cancel_task(self) -> bool:
        """取消任务：立即中断在途模型请求，工作线程在下一次检查时退出"""
        with self._lock:
            if not self._state.status.is_active:
                return False
            self._generation += 1
            self._state = dataclasses.replace(
                self._state,
                status=TaskStatus.IDLE,
                result_message=CANCELLED_MESSAGE,
            )
            published = self._commit()
            # 先置位令牌再取消在途请求，尚未发出的请求会看到令牌
            self._cancel_event.set()
            self.model_client.cancel()
            self._cond.notify_all()

        logger.info("[CANCEL] Task cancelled")
        self._publish(*published)
        return True

    def reset_task(self) -> bool:
        """把已结束的任务状态重置为 IDLE"""
        with self._lock:
            if self._state.status.is_active:
                return False
            self._state = TaskExecutionState()
            self._steps = []
            published = self._commit()

        self._publish(*published)
        return True

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """等待当前工作线程退出，返回是否已退出"""
        with self._lock:
            worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    # ------------------------------------------------------------------
    # 工作线程
    # ------------------------------------------------------------------

    def _record_step(self, generation: int, step: TaskStep) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._steps.append(step)
            self._state = dataclasses.replace(
                self._state,
                step_number=step.step_number,
                thinking=step.thinking,
                current_action=step.action,
            )
            published = self._commit()
        self._publish(*published)

    def _finish(self, generation: int, status: TaskStatus, message: str) -> None:
        with self._lock:
            if generation != self._generation or not self._state.status.is_active:
                return
            self._state = dataclasses.replace(self._state, status=status, result_message=message)
            published = self._commit()
        self._publish(*published)

    def _checkpoint(self, generation: int) -> bool:
        """
        阻塞直到任务处于 RUNNING

        Returns:
            期间是否经历过暂停

        Raises:
            _TaskCancelled: 任务已被取消或替换
        """
        paused = False
        with self._cond:
            while True:
                if generation != self._generation:
                    raise _TaskCancelled()
                status = self._state.status
                if status == TaskStatus.RUNNING:
                    return paused
                if status != TaskStatus.PAUSED:
                    raise _TaskCancelled()
                paused = True
                self._cond.wait()

    def _ensure_current(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                raise _TaskCancelled()

    def _sleep(self, generation: int, seconds: float) -> None:
        """
        可被取消唤醒的等待

        Raises:
            _TaskCancelled: 等待期间任务被取消
        """
        with self._cond:
            if self._cond.wait_for(lambda: generation != self._generation, timeout=seconds):
                raise _TaskCancelled()

    def _run(
        self,
        generation: int,
        task: str,
        previous: Optional[threading.Thread],
        started: threading.Event,
        cancel_event: threading.Event,
    ) -> None:
        # RUNNING 快照先于工作线程的任何快照发布
        started.wait()
        if previous is not None and previous.is_alive():
            previous.join()
        self._context.reset()

        executor = ActionExecutor(
            self.command_executor,
            sleep=lambda seconds: self._sleep(generation, seconds),
        )

        try:
            self._loop(generation, task, executor, cancel_event)
        except _TaskCancelled:
            logger.info(f"Task worker {generation} stopped")
        except (ActionParseError, CoordinateOutOfRangeError, NetworkError) as e:
            logger.error(f"[X] Task failed: {e}")
            self._finish(generation, TaskStatus.FAILED, str(e))
        except Exception as e:
            logger.error(f"[X] Unexpected error in task worker: {e}", exc_info=True)
            self._finish(generation, TaskStatus.FAILED, str(e) or type(e).__name__)

    def _loop(
        self,
        generation: int,
        task: str,
        executor: ActionExecutor,
        cancel_event: threading.Event,
    ) -> None:
        step_number = 0
        # 上一步动作产生的附加信息，随下一张截图一起发给模型
        extra_info: dict[str, Any] = {}

        while True:
            self._checkpoint(generation)

            if step_number >= self.config.max_steps:
                logger.warning(f"[X] Max steps reached: {self.config.max_steps}")
                self._finish(
                    generation,
                    TaskStatus.FAILED,
                    f"Max steps reached: {self.config.max_steps}",
                )
                return

            screenshot = self.screenshot_provider.capture()
            if screenshot.is_sensitive:
                logger.warning("Screenshot unavailable, using fallback image")
            current_app = self.app_detector() if self.app_detector else "Unknown"
            # 截图和应用检测耗时较长，期间可能已被取消
            self._ensure_current(generation)

            screen_info = MessageBuilder.build_screen_info(current_app, **extra_info)
            text = MessageBuilder.build_user_text(
                task,
                screen_info,
                is_first=self._context.user_message_count == 0,
            )
            self._context.add_user_message(text, screenshot.base64_data)

            try:
                response = self.model_client.request(
                    self._context.messages,
                    cancel_event=cancel_event,
                )
            except NetworkError:
                if cancel_event.is_set():
                    raise _TaskCancelled() from None
                raise

            if self._checkpoint(generation):
                # 请求期间被暂停：丢弃这一轮，恢复后重试该步骤
                self._context.remove_last_user_message()
                logger.info("Discarded unfinished turn after resume, retrying step")
                continue

            if not response.action:
                raise ActionParseError(
                    f"No action found in model response: {response.raw_content[:200]}"
                )
            action = parse_action(response.action)
            display = action.format_for_display()

            if self.config.verbose:
                logger.info("=" * 50)
                logger.info(f"Step {step_number + 1}: {display}")
                if response.thinking:
                    logger.info(f"Thinking: {response.thinking[:200]}")

            if not isinstance(action, Finish):
                result = executor.execute(action, screenshot.width, screenshot.height)
                if not result.success:
                    logger.warning(f"Action did not succeed: {result.message}")
                extra_info = {"installed_apps": result.apps} if isinstance(action, ListApps) else {}

            self._context.add_assistant_message(
                MessageBuilder.build_assistant_content(response.thinking, response.action)
            )
            step_number += 1
            self._record_step(generation, TaskStep(step_number, response.thinking, display))

            if isinstance(action, Finish):
                message = extract_finish_message(response.action) or action.message
                logger.info(f"[OK] Task completed: {message}")
                self._finish(generation, TaskStatus.COMPLETED, message)
                return

            if isinstance(action, Note):
                logger.info(f"Note: {action.message}")
            elif isinstance(action, CallApi):
                logger.info(f"Call API: {action.instruction}")
            elif isinstance(action, TakeOver):
                self._request_takeover(generation, action.message)
            elif isinstance(action, Interact):
                self._request_takeover(generation, _interact_message(action))

    def _request_takeover(self, generation: int, message: str) -> None:
        """请求用户接管：切换到 PAUSED，等待 resume"""
        with self._lock:
            if generation != self._generation or self._state.status != TaskStatus.RUNNING:
                return
            self._state = dataclasses.replace(
                self._state,
                status=TaskStatus.PAUSED,
                result_message=message,
            )
            published = self._commit()
        logger.info(f"[TAKEOVER] {message}")
        self._publish(*published)


__all__ = [
    "CANCELLED_MESSAGE",
    "InvalidTaskError",
    "TaskAlreadyRunningError",
    "TaskCoordinator",
]
