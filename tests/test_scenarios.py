"""End-to-end launches: description in, log lines and process lifecycle out."""

from __future__ import annotations

import sys

from launchcore.actions import (
    DeclareArgument,
    ExecuteProcess,
    LogInfo,
    OpaqueFunction,
    RegisterEventHandler,
    Shutdown,
)
from launchcore.domain import ActionState, EventType
from launchcore.services.context import LaunchContext
from launchcore.services.handlers import OnAllProcessesExited, OnProcessExit, OnProcessStart


def test_argument_override_and_default_in_log_line(launch, user_log):
    _, code = launch(
        DeclareArgument("who"),
        DeclareArgument("where", default="home"),
        LogInfo(["$who is at $where"]),
        args={"who": "ana"},
    )
    assert code == 0
    assert user_log == ["ana is at home"]


def test_process_exit_runs_on_exit_then_shuts_down(launch, user_log):
    ctx = LaunchContext({"duration": "0.2"})
    events = []
    ctx.bus.subscribe("", lambda ev: events.append(ev.type))
    proc = ExecuteProcess(["sleep", "$duration"], on_exit=[LogInfo("done"), Shutdown()])
    executor, code = launch(DeclareArgument("duration", default="10"), proc, context=ctx)

    assert code == 0
    assert user_log == ["done"]
    assert events.index(EventType.PROCESS_EXITED) < events.index(EventType.SHUTDOWN)
    run = [r for r in executor.runs if r.action is proc][0]
    assert run.state is ActionState.COMPLETED
    assert run.process.returncode == 0
    assert executor.shutting_down


def test_sleep_zero_exits_cleanly_and_on_exit_runs_once_after_the_event(launch):
    order = []
    ctx = LaunchContext()
    ctx.bus.subscribe(EventType.PROCESS_EXITED, lambda ev: order.append(("exited", ev.payload["returncode"])))
    proc = ExecuteProcess(["sleep", "0"], on_exit=[OpaqueFunction(lambda c: order.append(("on_exit", None)))])
    _, code = launch(proc, context=ctx)
    assert code == 0
    assert order == [("exited", 0), ("on_exit", None)]


def test_on_exit_targets_only_its_own_process(launch, user_log):
    fast = ExecuteProcess([sys.executable, "-c", "pass"], name="fast", on_exit=[LogInfo("fast exited")])
    slow = ExecuteProcess([sys.executable, "-c", "import time; time.sleep(0.3)"], name="slow", on_exit=[LogInfo("slow exited")])
    launch(fast, slow)
    assert user_log == ["fast exited", "slow exited"]


def test_nonzero_exit_is_not_an_engine_failure(launch, user_log):
    proc = ExecuteProcess([sys.executable, "-c", "import sys; sys.exit(4)"])
    executor, code = launch(
        RegisterEventHandler(OnProcessExit(target_action=proc, on_exit=lambda ev, c: [LogInfo(f"rc={ev.payload['returncode']}")])),
        proc,
    )
    assert code == 0
    assert executor.failures == []
    assert user_log == ["rc=4"]


def test_process_start_handler(launch, user_log):
    proc = ExecuteProcess([sys.executable, "-c", "pass"], name="worker")
    launch(
        RegisterEventHandler(OnProcessStart(target_action=proc, on_start=lambda ev, c: [LogInfo(f"started {ev.payload['name']}")])),
        proc,
    )
    assert user_log == ["started worker"]


def test_spawn_failure_fails_the_action(launch, user_log):
    proc = ExecuteProcess(["/nonexistent/launchcore-binary"], on_exit=[LogInfo("never")])
    executor, code = launch(proc)
    assert code == 0
    assert [r.state for r in executor.runs if r.action is proc] == [ActionState.FAILED]
    assert user_log == []
    assert len(executor.handlers) == 0


def test_watch_several_processes(launch, user_log):
    a = ExecuteProcess([sys.executable, "-c", "pass"], name="a")
    b = ExecuteProcess([sys.executable, "-c", "import time; time.sleep(0.2)"], name="b")
    launch(RegisterEventHandler(OnAllProcessesExited([a, b], [LogInfo("all down")])), a, b)
    assert user_log == ["all down"]


def test_shutdown_terminates_long_running_process(launch, user_log):
    import time

    from launchcore.actions import TimerAction

    proc = ExecuteProcess(["sleep", "30"], on_exit=[LogInfo("stopped")])
    started = time.monotonic()
    executor, code = launch(proc, TimerAction(0.2, [Shutdown(reason="test")]))
    assert code == 0
    assert time.monotonic() - started < 5.0
    run = [r for r in executor.runs if r.action is proc][0]
    assert run.process.signal == 15
    assert user_log == ["stopped"]


def test_shutdown_in_the_same_turn_stops_a_process_that_is_still_starting(launch, user_log):
    import time

    proc = ExecuteProcess(["sleep", "30"], on_exit=[LogInfo("stopped")])
    started = time.monotonic()
    executor, code = launch(proc, Shutdown(reason="now"))
    assert code == 0
    # SIGTERM, а не ожидание grace-периода с последующим SIGKILL
    assert time.monotonic() - started < 4.0
    run = [r for r in executor.runs if r.action is proc][0]
    assert run.state is ActionState.COMPLETED
    assert run.process.signal == 15
    assert user_log == ["stopped"]
