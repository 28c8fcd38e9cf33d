from __future__ import annotations

import subprocess
from typing import Any

import pytest

from dp2client.config import LinkConfig
from dp2client.errors import ConnectivityError, StartupError
from dp2client.fake import FakePipelineApi
from dp2client.launcher import (
    LOCAL_SERVICE_OPTIONS,
    OPTIONS_ENV_VAR,
    ServiceLauncher,
    append_service_options,
    exec_line,
    service_environment,
)
from dp2client.link import PipelineLink
from dp2client.models import Alive


@pytest.mark.parametrize(
    "current, expected",
    [
        (None, LOCAL_SERVICE_OPTIONS),
        ("", LOCAL_SERVICE_OPTIONS),
        ("-Xmx1G", "-Xmx1G " + LOCAL_SERVICE_OPTIONS),
        ('"-Xmx1G -Dfoo=bar"', "-Xmx1G -Dfoo=bar " + LOCAL_SERVICE_OPTIONS),
        ("'-Xmx1G'", "-Xmx1G " + LOCAL_SERVICE_OPTIONS),
        ('""', LOCAL_SERVICE_OPTIONS),
    ],
)
def test_append_service_options(current: str | None, expected: str) -> None:
    assert append_service_options(current) == expected


def test_service_environment_does_not_touch_base() -> None:
    base = {"JAVA_OPTS": "-Xmx1G", "HOME": "/home/user"}
    env = service_environment(base)
    assert env[OPTIONS_ENV_VAR] == "-Xmx1G " + LOCAL_SERVICE_OPTIONS
    assert env["HOME"] == "/home/user"
    assert base["JAVA_OPTS"] == "-Xmx1G"


def test_exec_line_per_platform() -> None:
    config = LinkConfig(exec_line_nix="/opt/pipeline2/bin/pipeline2 remote", exec_line_win="C:\\p2\\pipeline2.bat")
    assert exec_line(config, "linux") == ["/opt/pipeline2/bin/pipeline2", "remote"]
    assert exec_line(config, "win32") == ["C:\\p2\\pipeline2.bat"]
    with pytest.raises(StartupError):
        exec_line(LinkConfig(exec_line_nix=" "), "linux")


class _FakeProcess:
    def __init__(self, returncode: int | None) -> None:
        self.returncode = returncode
        self.pid = 4242
        self.terminated = False

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True


def _popen_returning(process: _FakeProcess, seen: dict[str, Any]):
    def popen(argv: list[str], **kwargs: Any) -> _FakeProcess:
        seen["argv"] = argv
        seen["env"] = kwargs["env"]
        return process

    return popen


def test_launch_waits_until_alive(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JAVA_OPTS", '"-Xmx2G"')
    answers: list[Any] = [ConnectivityError("down"), ConnectivityError("down"), Alive("1.9", True, False)]

    def alive() -> Alive:
        answer = answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    seen: dict[str, Any] = {}
    launcher = ServiceLauncher(
        LinkConfig(exec_line_nix="pipeline2", exec_line_win="pipeline2", ws_timeup=5),
        alive,
        poll_interval=0.0,
        popen=_popen_returning(_FakeProcess(None), seen),
    )

    assert launcher.launch().version == "1.9"
    assert seen["argv"] == ["pipeline2"]
    assert seen["env"]["JAVA_OPTS"] == "-Xmx2G " + LOCAL_SERVICE_OPTIONS
    assert answers == []


def test_launch_fails_when_process_exits() -> None:
    def alive() -> Alive:
        raise ConnectivityError("down")

    launcher = ServiceLauncher(
        LinkConfig(exec_line_nix="pipeline2", exec_line_win="pipeline2"),
        alive,
        poll_interval=0.0,
        popen=_popen_returning(_FakeProcess(1), {}),
    )
    with pytest.raises(StartupError, match="exited with status 1"):
        launcher.launch()


def test_launch_times_out() -> None:
    calls: list[int] = []

    def alive() -> Alive:
        calls.append(1)
        raise ConnectivityError("down")

    process = _FakeProcess(None)
    launcher = ServiceLauncher(
        LinkConfig(exec_line_nix="pipeline2", exec_line_win="pipeline2", ws_timeup=0),
        alive,
        poll_interval=0.0,
        popen=_popen_returning(process, {}),
    )
    with pytest.raises(StartupError, match="not available after 0 seconds"):
        launcher.launch()
    assert calls == [1]
    assert process.terminated


def test_launch_reports_bad_executable() -> None:
    def popen(argv: list[str], **kwargs: Any) -> subprocess.Popen:
        raise FileNotFoundError(2, "No such file or directory", argv[0])

    launcher = ServiceLauncher(
        LinkConfig(exec_line_nix="missing", exec_line_win="missing"),
        lambda: Alive("x", False, False),
        popen=popen,
    )
    with pytest.raises(StartupError, match="could not launch missing"):
        launcher.launch()


def test_bring_up_launches_local_service(monkeypatch: pytest.MonkeyPatch) -> None:
    api = FakePipelineApi(version="1.9", fail=True)
    launched: list[bool] = []

    def fake_launch(self: ServiceLauncher) -> Alive:
        launched.append(True)
        api.fail = False
        return self.alive()

    monkeypatch.setattr(ServiceLauncher, "launch", fake_launch)
    link = PipelineLink(LinkConfig(starting=True), api=api)

    session = link.bring_up()

    assert launched == [True]
    assert session.version == "1.9"
    assert api.calls == ["alive", "alive"]


def test_bring_up_without_starting_does_not_launch(monkeypatch: pytest.MonkeyPatch) -> None:
    def fail_launch(self: ServiceLauncher) -> Alive:
        raise AssertionError("launch should not be called")

    monkeypatch.setattr(ServiceLauncher, "launch", fail_launch)
    link = PipelineLink(LinkConfig(starting=False), api=FakePipelineApi(fail=True))
    with pytest.raises(ConnectivityError):
        link.bring_up()
