#!/usr/bin/env python3
# Copyright (C) 2025 PhoneAgent Contributors
# Licensed under AGPL-3.0

"""
命令行入口

    python -m autoglm_agent "打开微信给张三发消息" --device-id emulator-5554
    python -m autoglm_agent --test-connection
"""

import argparse
import logging
import sys

from autoglm_agent.adb import (
    AdbScreenshotProvider,
    AdbShellExecutor,
    check_device_connected,
    get_current_app,
)
from autoglm_agent.config.settings import load_config
from autoglm_agent.kernel.coordinator import TaskCoordinator
from autoglm_agent.kernel.state import TaskExecutionState, TaskStatus
from autoglm_agent.logging_config import setup_logging
from autoglm_agent.model.client import ModelClient

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AutoGLM phone agent")
    parser.add_argument("task", nargs="?", help="natural-language task")
    parser.add_argument("--config", default=None, help="path to config yaml")
    parser.add_argument("--device-id", default=None, help="adb device serial")
    parser.add_argument("--max-steps", type=int, default=None)
    parser.add_argument("--log-level", default=None)
    parser.add_argument("--log-dir", default="logs")
    parser.add_argument("--test-connection", action="store_true", help="check the model endpoint and exit")
    return parser


def _print_state(state: TaskExecutionState) -> None:
    if state.status == TaskStatus.RUNNING and state.current_action:
        print(f"[{state.status.value}] step {state.step_number}: {state.current_action}")
    elif state.result_message:
        print(f"[{state.status.value}] {state.result_message}")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    model_config, agent_config = load_config(args.config)
    if args.device_id:
        agent_config.device_id = args.device_id
    if args.max_steps is not None:
        agent_config.max_steps = args.max_steps
    if args.log_level:
        agent_config.log_level = args.log_level

    if not args.task and not args.test_connection:
        print("error: a task is required unless --test-connection is given", file=sys.stderr)
        return 2

    setup_logging(log_level=agent_config.log_level, log_dir=args.log_dir)
    model_client = ModelClient(model_config)

    if args.test_connection:
        try:
            result = model_client.test_connection()
        finally:
            model_client.close()
        if result.success:
            print(f"[OK] {model_config.base_url} ({result.latency_ms}ms)")
            return 0
        print(f"[X] {result.kind} {result.status_code or ''} {result.message}".rstrip())
        return 1

    device_id = agent_config.device_id
    if not check_device_connected(device_id):
        print(f"[X] Device not connected: {device_id or 'default'}", file=sys.stderr)
        model_client.close()
        return 1

    coordinator = TaskCoordinator(
        model_client=model_client,
        screenshot_provider=AdbScreenshotProvider(device_id),
        command_executor=AdbShellExecutor(device_id),
        agent_config=agent_config,
        app_detector=lambda: get_current_app(device_id),
    )
    coordinator.add_observer(_print_state)

    coordinator.start_task(args.task)
    try:
        while not coordinator.wait_until_idle(timeout=0.5):
            pass
    except KeyboardInterrupt:
        coordinator.cancel_task()
        coordinator.wait_until_idle(timeout=10)
    finally:
        model_client.close()

    final = coordinator.state
    logger.info(f"Task finished: {final.status.value} - {final.result_message}")
    return 0 if final.status == TaskStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
