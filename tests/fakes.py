import threading
import time

from autoglm_agent.kernel.protocols import CommandResult, Screenshot
from autoglm_agent.model.client import ConnectionFailedError, ModelResponse
from autoglm_agent.model.response_parser import split_thinking_and_action


class RecordingExecutor:
    """记录收到的命令，可按命令前缀返回指定退出码"""

    def __init__(self, exit_codes=None):
        self.commands = []
        self.exit_codes = exit_codes or {}
        self._lock = threading.Lock()

    def run(self, command):
        with self._lock:
            self.commands.append(command)
        for prefix, code in self.exit_codes.items():
            if command.startswith(prefix):
                return CommandResult(stdout="", stderr="boom", exit_code=code)
        return CommandResult(stdout="ok")


class StaticScreenshots:
    def __init__(self, width=1080, height=2400):
        self.width = width
        self.height = height
        self.count = 0

    def capture(self):
        self.count += 1
        return Screenshot(base64_data=f"iVBORw{self.count}", width=self.width, height=self.height)


class SlowScreenshots(StaticScreenshots):
    """截图期间阻塞，直到测试放行"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = threading.Event()
        self.release = threading.Event()

    def capture(self):
        self.entered.set()
        self.release.wait(5)
        return super().capture()


class Gate:
    """让假模型请求阻塞，直到测试放行或被取消"""

    def __init__(self, then='do(action="Back")'):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.then = then


class FakeModelClient:
    """
    按脚本返回模型输出；脚本项可以是文本、异常或 Gate

    和真实客户端一样，cancel() 只作用于在途请求，没有在途请求时什么也不做；
    请求登记后若 cancel_event 已置位则直接失败。
    """

    def __init__(self, script=()):
        self.script = list(script)
        self.calls = []
        self.cancel_count = 0
        self.closed = False
        self._lock = threading.Lock()
        self._in_flight = None

    def request(self, messages, image_base64=None, cancel_event=None):
        cancelled = threading.Event()
        with self._lock:
            self._in_flight = cancelled
        try:
            if cancel_event is not None and cancel_event.is_set():
                raise ConnectionFailedError("Request cancelled")
            self.calls.append(list(messages))
            item = self.script.pop(0) if self.script else 'do(action="Back")'

            if isinstance(item, Gate):
                item.entered.set()
                while not item.release.wait(0.01):
                    if cancelled.is_set():
                        raise ConnectionFailedError("Request cancelled")
                item = item.then

            if isinstance(item, Exception):
                raise item

            thinking, action = split_thinking_and_action(item)
            return ModelResponse(thinking=thinking, action=action, raw_content=item)
        finally:
            with self._lock:
                self._in_flight = None

    def cancel(self):
        with self._lock:
            self.cancel_count += 1
            if self._in_flight is not None:
                self._in_flight.set()

    def close(self):
        self.closed = True

def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()
