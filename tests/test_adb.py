import base64
import subprocess
from io import BytesIO

import pytest
from PIL import Image

from autoglm_agent.adb import device, screenshot
from autoglm_agent.adb.device import (
    HOME_SCREEN,
    AdbShellExecutor,
    check_device_connected,
    get_adb_prefix,
    get_current_app,
)
from autoglm_agent.adb.screenshot import create_fallback_screenshot, get_screenshot


def completed(args, stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


def png_bytes(image):
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def test_adb_prefix():
    assert get_adb_prefix(None) == ["adb"]
    assert get_adb_prefix("emulator-5554") == ["adb", "-s", "emulator-5554"]


def test_shell_executor_splits_command(monkeypatch):
    calls = []

    def fake_run(args, **kwargs):
        calls.append(args)
        return completed(args, stdout="Success", returncode=0)

    monkeypatch.setattr(device.subprocess, "run", fake_run)
    result = AdbShellExecutor("abc").run("monkey -p com.tencent.mm -c android.intent.category.LAUNCHER 1")

    assert result.success
    assert result.stdout == "Success"
    assert calls[0][:4] == ["adb", "-s", "abc", "shell"]
    assert calls[0][4:7] == ["monkey", "-p", "com.tencent.mm"]


def test_shell_executor_reports_exit_code(monkeypatch):
    monkeypatch.setattr(
        device.subprocess, "run", lambda args, **kw: completed(args, stderr="error: closed", returncode=1)
    )
    result = AdbShellExecutor().run("input keyevent 4")
    assert not result.success
    assert result.exit_code == 1
    assert result.stderr == "error: closed"


def test_shell_executor_timeout(monkeypatch):
    def fake_run(args, **kwargs):
        raise subprocess.TimeoutExpired(args, kwargs["timeout"])

    monkeypatch.setattr(device.subprocess, "run", fake_run)
    with pytest.raises(RuntimeError, match="timeout"):
        AdbShellExecutor(timeout=1).run("input tap 1 1")


@pytest.mark.parametrize(
    "dumpsys, expected",
    [
        (
            "  mCurrentFocus=Window{1f2e u0 com.tencent.mm/com.tencent.mm.ui.LauncherUI}\n",
            "微信",
        ),
        (
            "  mFocusedApp=ActivityRecord{9a u0 com.example.notes/.MainActivity t12}\n",
            "com.example.notes",
        ),
        ("  mCurrentFocus=null\n", HOME_SCREEN),
    ],
)
def test_get_current_app(monkeypatch, dumpsys, expected):
    monkeypatch.setattr(device.subprocess, "run", lambda args, **kw: completed(args, stdout=dumpsys))
    assert get_current_app() == expected


def test_check_device_connected(monkeypatch):
    monkeypatch.setattr(device.subprocess, "run", lambda args, **kw: completed(args, stdout="device\n"))
    assert check_device_connected()

    monkeypatch.setattr(device.subprocess, "run", lambda args, **kw: completed(args, stdout="offline\n"))
    assert not check_device_connected()


def test_screenshot_success(monkeypatch):
    data = png_bytes(Image.linear_gradient("L").convert("RGB").resize((300, 600)))
    monkeypatch.setattr(screenshot.subprocess, "run", lambda args, **kw: completed(args, stdout=data))

    shot = get_screenshot("abc")

    assert (shot.width, shot.height) == (300, 600)
    assert not shot.is_sensitive
    assert base64.b64decode(shot.base64_data) == data


def test_black_screenshot_is_sensitive(monkeypatch):
    data = png_bytes(Image.new("RGB", (720, 1280), color="black"))
    monkeypatch.setattr(screenshot.subprocess, "run", lambda args, **kw: completed(args, stdout=data))

    shot = get_screenshot()

    assert shot.is_sensitive
    assert (shot.width, shot.height) == (1080, 2400)


def test_failed_screencap_falls_back(monkeypatch):
    monkeypatch.setattr(
        screenshot.subprocess,
        "run",
        lambda args, **kw: completed(args, stdout=b"", stderr=b"device offline", returncode=1),
    )
    assert get_screenshot().is_sensitive


def test_fallback_screenshot_is_png():
    shot = create_fallback_screenshot(100, 200)
    image = Image.open(BytesIO(base64.b64decode(shot.base64_data)))
    assert image.size == (100, 200)
    assert shot.is_sensitive
