import pytest

from fakes import RecordingExecutor, StaticScreenshots


@pytest.fixture
def recording_executor():
    return RecordingExecutor()


@pytest.fixture
def screenshots():
    return StaticScreenshots()
