import logging
import sys

import anyio
import pytest

from mcpio.bridge.models import (
    BridgeConfig,
    BridgeReport,
    ServerSpec,
    ServerStatus,
    SetupStage,
)
from mcpio.bridge.runtime import ServerRuntime
from mcpio.bridge.supervisor import Supervisor

from integration_test_utils import RecordingConsole, child_command, read_log_lines

pytestmark = [pytest.mark.anyio, pytest.mark.posix_only]


@pytest.fixture
def console() -> RecordingConsole:
    return RecordingConsole()


@pytest.fixture
def supervisor(tmp_path, console) -> Supervisor:
    return Supervisor(BridgeConfig(base_dir=tmp_path), console)


async def test_runs_all_servers_and_reports_in_order(tmp_path, supervisor, console):
    specs = [
        ServerSpec(name="first", command=child_command("emit", "3")),
        ServerSpec(name="second", command=child_command("exit", "4")),
    ]
    with anyio.fail_after(30):
        report = await supervisor.run(specs)

    assert isinstance(report, BridgeReport)
    assert [r.name for r in report.results] == ["first", "second"]
    assert [r.exit_code for r in report.results] == [0, 4]
    assert report.failed == []
    assert len(report.started) == 2
    assert sorted(name for name, _, _ in console.files) == ["first", "second"]
    assert len(read_log_lines(tmp_path / ".mcpio" / "first.out.log")) == 6


async def test_failed_server_does_not_affect_others(tmp_path, supervisor, console, caplog):
    specs = [
        ServerSpec(name="broken", command=[str(tmp_path / "missing-binary")]),
        ServerSpec(name="fine", command=child_command("emit", "1")),
    ]
    with anyio.fail_after(30):
        report = await supervisor.run(specs)

    broken, fine = report.results
    assert broken.status == ServerStatus.SETUP_FAILED
    assert broken.stage == SetupStage.SPAWN
    assert fine.status == ServerStatus.COMPLETED
    assert report.failed == [broken]
    assert report.started == [fine]
    assert [name for name, _, _ in console.files] == ["fine"]
    assert "broken: start failed" in caplog.text


async def test_servers_run_concurrently(tmp_path, supervisor, console):
    # Each child only exits once the other has produced output; sequential
    # execution would never finish.
    first_marker = tmp_path / "first.ready"
    second_marker = tmp_path / "second.ready"
    code = (
        "import os, sys, time\n"
        "open(sys.argv[1], 'w').close()\n"
        "while not os.path.exists(sys.argv[2]):\n"
        "    time.sleep(0.02)\n"
        "print('done', flush=True)\n"
    )
    specs = [
        ServerSpec(name="a", command=[sys.executable, "-c", code, str(first_marker), str(second_marker)]),
        ServerSpec(name="b", command=[sys.executable, "-c", code, str(second_marker), str(first_marker)]),
    ]
    with anyio.fail_after(30):
        report = await supervisor.run(specs)
    assert [r.exit_code for r in report.results] == [0, 0]


async def test_unexpected_runtime_error_becomes_error_result(supervisor, mocker):
    mocker.patch.object(ServerRuntime, "run", side_effect=RuntimeError("kaboom"))
    report = await supervisor.run([ServerSpec(name="x", command=["cat"])])

    (result,) = report.results
    assert result.status == ServerStatus.ERROR
    assert result.error_message == "kaboom"
    assert report.failed == [result]


def test_warns_on_sanitized_name_collision(supervisor, caplog):
    specs = [
        ServerSpec(name="svc 1", command=["cat"]),
        ServerSpec(name="svc/1", command=["cat"]),
        ServerSpec(name="svc-1", command=["cat"]),
    ]
    with caplog.at_level(logging.WARNING):
        runtimes = supervisor.build_runtimes(specs)

    assert [r.name for r in runtimes] == ["svc_1", "svc_1", "svc-1"]
    assert runtimes[0].paths.fifo_path == runtimes[1].paths.fifo_path
    assert "'svc 1', 'svc/1' all map to 'svc_1'" in caplog.text
    assert "svc-1" not in caplog.text


def test_no_warning_without_collision(supervisor, caplog):
    with caplog.at_level(logging.WARNING):
        supervisor.build_runtimes(
            [ServerSpec(name="a", command=["cat"]), ServerSpec(name="b", command=["cat"])]
        )
    assert caplog.records == []


async def test_colliding_servers_share_files_and_complete(tmp_path, supervisor, console):
    specs = [
        ServerSpec(name="svc 1", command=child_command("emit", "2")),
        ServerSpec(name="svc/1", command=child_command("emit", "2")),
    ]
    with anyio.fail_after(30):
        report = await supervisor.run(specs)

    assert [r.name for r in report.results] == ["svc_1", "svc_1"]
    assert [r.status for r in report.results] == [ServerStatus.COMPLETED] * 2
    assert [r.exit_code for r in report.results] == [0, 0]
    assert [name for name, _, _ in console.files] == ["svc_1", "svc_1"]

    io_dir = tmp_path / ".mcpio"
    assert sorted(read_log_lines(io_dir / "svc_1.out.log")) == sorted(
        ["out 0", "out 1", "err 0", "err 1"] * 2
    )
    assert not (io_dir / "svc_1.in.fifo").exists()
