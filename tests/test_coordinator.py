import threading

import pytest

from autoglm_agent.config.settings import AgentConfig
from autoglm_agent.kernel.coordinator import (
    CANCELLED_MESSAGE,
    InvalidTaskError,
    TaskAlreadyRunningError,
    TaskCoordinator,
)
from autoglm_agent.kernel.protocols import CommandResult
from autoglm_agent.kernel.state import TaskStatus
from autoglm_agent.model.client import ServerError
from autoglm_agent.model.messages import SystemMessage, UserMessage
from fakes import (
    FakeModelClient,
    Gate,
    RecordingExecutor,
    SlowScreenshots,
    StaticScreenshots,
    wait_until,
)


def make_coordinator(script, max_steps=10, executor=None, app_detector=None, screenshots=None, model=None):
    model = model or FakeModelClient(script)
    executor = executor or RecordingExecutor()
    coordinator = TaskCoordinator(
        model_client=model,
        screenshot_provider=screenshots or StaticScreenshots(),
        command_executor=executor,
        agent_config=AgentConfig(max_steps=max_steps, system_prompt="sys", verbose=False),
        app_detector=app_detector,
    )
    return coordinator, model, executor


def test_runs_until_finish():
    coordinator, model, executor = make_coordinator(
        [
            '<think>点一下</think><answer>do(action="Tap", element=[500,500])</answer>',
            '<think>好了</think><answer>finish(message="已完成")</answer>',
        ],
        app_detector=lambda: "微信",
    )

    coordinator.start_task("  打开设置  ")
    assert coordinator.wait_until_idle(timeout=5)

    state = coordinator.state
    assert state.status == TaskStatus.COMPLETED
    assert state.result_message == "已完成"
    assert state.step_number == 2
    assert state.task_description == "打开设置"
    assert executor.commands == ["input tap 540 1200"]
    assert [s.thinking for s in coordinator.steps] == ["点一下", "好了"]
    assert coordinator.steps[0].action == "点击 (500, 500)"

    first_call, second_call = model.calls
    assert first_call[0] == SystemMessage("sys")
    assert first_call[1].text.startswith("打开设置\n\n")
    assert '"current_app": "微信"' in first_call[1].text
    # 第二次请求时，旧截图已被清除，只保留最新一张
    users = [m for m in second_call if isinstance(m, UserMessage)]
    assert users[0].image_base64 is None
    assert users[1].image_base64 == "iVBORw2"
    assert users[1].text.startswith("** Screen Info **")
    assert second_call[2].content == '<think>点一下</think><answer>do(action="Tap", element=[500,500])</answer>'


@pytest.mark.parametrize("description", ["", "   ", "\n\t"])
def test_blank_task_is_rejected(description):
    coordinator, _, _ = make_coordinator([])
    with pytest.raises(InvalidTaskError):
        coordinator.start_task(description)
    assert coordinator.state.status == TaskStatus.IDLE


@pytest.mark.parametrize("n", [2, 8])
def test_concurrent_start_has_single_winner(n):
    gate = Gate()
    coordinator, model, _ = make_coordinator([gate])
    barrier = threading.Barrier(n)
    outcomes = []
    lock = threading.Lock()

    def attempt(i):
        barrier.wait()
        try:
            coordinator.start_task(f"task {i}")
            result = "ok"
        except TaskAlreadyRunningError:
            result = "busy"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert outcomes.count("ok") == 1
    assert outcomes.count("busy") == n - 1
    assert coordinator.state.status == TaskStatus.RUNNING

    assert coordinator.cancel_task()
    assert coordinator.wait_until_idle(timeout=5)


def test_start_while_paused_is_rejected():
    gate = Gate()
    coordinator, _, _ = make_coordinator([gate])
    coordinator.start_task("a")
    assert gate.entered.wait(5)
    assert coordinator.pause_task()
    with pytest.raises(TaskAlreadyRunningError):
        coordinator.start_task("b")
    coordinator.cancel_task()
    assert coordinator.wait_until_idle(timeout=5)


def test_parse_error_fails_task():
    coordinator, _, executor = make_coordinator(["I have no idea what to do"])
    coordinator.start_task("task")
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.state.status == TaskStatus.FAILED
    assert "No action found" in coordinator.state.result_message
    assert executor.commands == []


def test_coordinate_error_fails_task():
    coordinator, _, executor = make_coordinator(['do(action="Tap", element=[1500,2000])'])
    coordinator.start_task("task")
    assert coordinator.wait_until_idle(timeout=5)
    state = coordinator.state
    assert state.status == TaskStatus.FAILED
    assert state.result_message == "Coordinates out of range: x=1500, y=2000"
    assert executor.commands == []


def test_network_error_fails_task():
    coordinator, _, _ = make_coordinator([ServerError(502, "bad gateway")])
    coordinator.start_task("task")
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.state.status == TaskStatus.FAILED
    assert "bad gateway" in coordinator.state.result_message


def test_collaborator_exception_fails_task():
    class BrokenExecutor(RecordingExecutor):
        def run(self, command):
            raise RuntimeError("device offline")

    coordinator, _, _ = make_coordinator(['do(action="Back")'], executor=BrokenExecutor())
    coordinator.start_task("task")
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.state.status == TaskStatus.FAILED
    assert coordinator.state.result_message == "device offline"


def test_max_steps_fails_task():
    coordinator, _, executor = make_coordinator([], max_steps=2)
    coordinator.start_task("loop forever")
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.state.status == TaskStatus.FAILED
    assert coordinator.state.result_message == "Max steps reached: 2"
    assert executor.commands == ["input keyevent 4", "input keyevent 4"]


def test_pause_does_not_interrupt_model_and_resume_retries_step():
    gate = Gate(then='do(action="Back")')
    coordinator, model, executor = make_coordinator([gate, 'finish(message="ok")'])

    coordinator.start_task("task")
    assert gate.entered.wait(5)
    assert coordinator.pause_task()
    assert coordinator.state.status == TaskStatus.PAUSED
    assert model.cancel_count == 0

    gate.release.set()
    # 模型返回后处于暂停状态，动作不会执行
    assert not wait_until(lambda: executor.commands, timeout=0.3)
    assert len(model.calls) == 1

    assert coordinator.resume_task()
    assert coordinator.wait_until_idle(timeout=5)

    assert coordinator.state.status == TaskStatus.COMPLETED
    assert executor.commands == []
    retried = model.calls[1]
    assert len(retried) == 2
    assert retried[1].text.startswith("task\n\n")


def test_cancel_interrupts_model_call():
    gate = Gate()
    coordinator, model, _ = make_coordinator([gate])
    snapshots = []
    coordinator.add_observer(snapshots.append)

    coordinator.start_task("task")
    assert gate.entered.wait(5)
    assert coordinator.cancel_task() is True
    assert model.cancel_count == 1
    assert coordinator.wait_until_idle(timeout=5)

    state = coordinator.state
    assert state.status == TaskStatus.IDLE
    assert state.result_message == CANCELLED_MESSAGE
    assert snapshots[-1].status == TaskStatus.IDLE
    assert all(s.status != TaskStatus.FAILED for s in snapshots)


def test_cancel_while_paused():
    gate = Gate()
    coordinator, _, _ = make_coordinator([gate])
    coordinator.start_task("task")
    assert gate.entered.wait(5)
    coordinator.pause_task()
    gate.release.set()
    assert coordinator.cancel_task()
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.state.status == TaskStatus.IDLE


def test_cancel_wakes_wait_action():
    coordinator, model, _ = make_coordinator(['do(action="Wait", duration="30 seconds")'])
    coordinator.start_task("task")
    assert wait_until(lambda: len(model.calls) == 1)
    # Wait 在执行器里阻塞，取消后应立刻返回
    assert coordinator.cancel_task()
    assert coordinator.wait_until_idle(timeout=2)
    assert coordinator.state.status == TaskStatus.IDLE


def test_take_over_pauses_until_resumed():
    coordinator, _, _ = make_coordinator(
        ['do(action="Take_over", message="请登录")', 'finish(message="done")']
    )
    coordinator.start_task("task")
    assert wait_until(lambda: coordinator.state.status == TaskStatus.PAUSED)
    assert coordinator.state.result_message == "请登录"
    assert coordinator.state.step_number == 1

    assert coordinator.resume_task()
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.state.status == TaskStatus.COMPLETED
    assert coordinator.state.step_number == 2


def test_restart_after_completion_resets_context():
    coordinator, model, _ = make_coordinator(['finish(message="one")', 'finish(message="two")'])
    coordinator.start_task("first")
    assert coordinator.wait_until_idle(timeout=5)
    coordinator.start_task("second")
    assert coordinator.wait_until_idle(timeout=5)

    assert coordinator.state.result_message == "two"
    assert len(model.calls[1]) == 2
    assert model.calls[1][1].text.startswith("second")


def test_state_operations_in_wrong_states():
    coordinator, _, _ = make_coordinator([])
    assert coordinator.pause_task() is False
    assert coordinator.resume_task() is False
    assert coordinator.cancel_task() is False
    assert coordinator.is_task_running() is False


def test_reset_after_failure():
    coordinator, _, _ = make_coordinator(["nothing"])
    coordinator.start_task("task")
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.reset_task()
    assert coordinator.state.status == TaskStatus.IDLE
    assert coordinator.state.result_message == ""
    assert coordinator.steps == []


def test_observer_errors_do_not_break_worker():
    coordinator, _, _ = make_coordinator(['finish(message="ok")'])
    received = []

    def broken(state):
        raise RuntimeError("observer bug")

    coordinator.add_observer(broken)
    coordinator.add_observer(received.append)
    coordinator.start_task("task")
    assert coordinator.wait_until_idle(timeout=5)

    assert coordinator.state.status == TaskStatus.COMPLETED
    assert received[0].status == TaskStatus.RUNNING
    assert received[-1].status == TaskStatus.COMPLETED
    for snapshot in received:
        if snapshot.status == TaskStatus.COMPLETED:
            assert snapshot.result_message == "ok"


def test_cancel_during_screenshot_skips_model_call():
    screenshots = SlowScreenshots()
    coordinator, model, _ = make_coordinator([], screenshots=screenshots)

    coordinator.start_task("task")
    assert screenshots.entered.wait(5)
    assert coordinator.cancel_task()
    screenshots.release.set()

    assert coordinator.wait_until_idle(timeout=1)
    assert model.calls == []
    assert coordinator.state.status == TaskStatus.IDLE
    assert coordinator.state.result_message == CANCELLED_MESSAGE


def test_cancel_during_app_detection_skips_model_call():
    entered = threading.Event()
    release = threading.Event()

    def slow_detector():
        entered.set()
        release.wait(5)
        return "微信"

    coordinator, model, _ = make_coordinator([], app_detector=slow_detector)
    coordinator.start_task("task")
    assert entered.wait(5)
    coordinator.cancel_task()
    release.set()

    assert coordinator.wait_until_idle(timeout=1)
    assert model.calls == []


def test_cancel_just_before_request_is_not_lost():
    class LateModel(FakeModelClient):
        """请求登记之前先阻塞，模拟取消落在检查与发请求之间"""

        def __init__(self, script=()):
            super().__init__(script)
            self.entered = threading.Event()
            self.release = threading.Event()

        def request(self, messages, image_base64=None, cancel_event=None):
            self.entered.set()
            self.release.wait(5)
            return super().request(messages, image_base64, cancel_event=cancel_event)

    model = LateModel()
    coordinator, _, executor = make_coordinator([], model=model)
    coordinator.start_task("task")
    assert model.entered.wait(5)
    coordinator.cancel_task()
    model.release.set()

    assert coordinator.wait_until_idle(timeout=1)
    assert model.calls == []
    assert executor.commands == []
    assert coordinator.state.status == TaskStatus.IDLE


def test_new_task_starts_promptly_after_cancel_during_capture():
    screenshots = SlowScreenshots()
    coordinator, model, _ = make_coordinator(['finish(message="第二个")'], screenshots=screenshots)

    coordinator.start_task("first")
    assert screenshots.entered.wait(5)
    coordinator.cancel_task()
    screenshots.release.set()
    coordinator.start_task("second")

    assert coordinator.wait_until_idle(timeout=2)
    assert coordinator.state.status == TaskStatus.COMPLETED
    assert coordinator.state.result_message == "第二个"
    assert len(model.calls) == 1
    assert model.calls[0][1].text.startswith("second")


def test_cancel_stops_batch_between_steps():
    batch = (
        'do(action="Batch", steps=[{"action": "Tap", "element": [500, 500]}, '
        '{"action": "Back"}], delay=5000)'
    )
    coordinator, _, executor = make_coordinator([batch])
    coordinator.start_task("task")
    assert wait_until(lambda: executor.commands == ["input tap 540 1200"])

    coordinator.cancel_task()
    assert coordinator.wait_until_idle(timeout=2)
    assert executor.commands == ["input tap 540 1200"]


def test_batch_runs_all_steps_in_one_step():
    batch = (
        'do(action="Batch", steps=[{"action": "Tap", "element": [500, 500]}, '
        '{"action": "Back"}], delay=0)'
    )
    coordinator, _, executor = make_coordinator([batch, 'finish(message="ok")'])
    coordinator.start_task("task")
    assert coordinator.wait_until_idle(timeout=5)

    assert executor.commands == ["input tap 540 1200", "input keyevent 4"]
    assert coordinator.steps[0].action == "批量操作: 2步 (间隔0ms)"
    assert coordinator.state.step_number == 2


def test_list_apps_result_reaches_next_screen_info():
    class PackageExecutor(RecordingExecutor):
        def run(self, command):
            super().run(command)
            return CommandResult(stdout="package:com.tencent.mm\npackage:com.example.notes\n")

    coordinator, model, executor = make_coordinator(
        ['do(action="List_Apps")', 'finish(message="ok")'],
        executor=PackageExecutor(),
    )
    coordinator.start_task("有哪些应用")
    assert coordinator.wait_until_idle(timeout=5)

    assert executor.commands == ["pm list packages -3"]
    second_user = model.calls[1][-1]
    assert '"installed_apps": ["微信", "com.example.notes"]' in second_user.text


def test_interact_pauses_with_options():
    coordinator, _, _ = make_coordinator(
        ['do(action="Interact", options=["张三", "李四"])', 'finish(message="done")']
    )
    coordinator.start_task("task")
    assert wait_until(lambda: coordinator.state.status == TaskStatus.PAUSED)
    assert coordinator.state.result_message == "请选择: 张三 / 李四"

    assert coordinator.resume_task()
    assert coordinator.wait_until_idle(timeout=5)
    assert coordinator.state.status == TaskStatus.COMPLETED


def test_cancel_while_command_runs_skips_next_step():
    class SlowExecutor(RecordingExecutor):
        def __init__(self):
            super().__init__()
            self.entered = threading.Event()
            self.release = threading.Event()

        def run(self, command):
            self.entered.set()
            self.release.wait(5)
            return super().run(command)

    executor = SlowExecutor()
    coordinator, model, _ = make_coordinator(['do(action="Back")', 'do(action="Home")'], executor=executor)
    coordinator.start_task("task")
    assert executor.entered.wait(5)
    coordinator.cancel_task()
    executor.release.set()

    assert coordinator.wait_until_idle(timeout=1)
    assert len(model.calls) == 1
    assert executor.commands == ["input keyevent 4"]
    assert coordinator.state.status == TaskStatus.IDLE
