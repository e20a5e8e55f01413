# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_dispatcher.py

"""
Tests for the Dispatcher: lookup, environment resolution, pager setup,
handler invocation and exit statuses.
"""

import os
from pathlib import Path

import pytest

from ctrl.config.manager import UserConfig
from ctrl.core.capabilities import Capabilities
from ctrl.core.dispatcher import DispatchState, ExitCode
from ctrl.core.pager import PagerController, PagerDecision, PagerGate, PagerPolicy
from ctrl.system.exceptions import ExecutionFailure
from tests.fixtures.handlers import RecordingHandler
from tests.fixtures.shell import shell_env

REQUIRED = Capabilities(requires_control_dir=True)
GENTLE = Capabilities(requires_control_dir_gently=True)


class RecordingPager(PagerController):
    """PagerController that remembers requests and stops."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.requests = []
        self.stops = []

    def request_pager(self, command, default):
        self.requests.append((command, default))
        return super().request_pager(command, default)

    def stop(self, interrupted=False):
        self.stops.append(interrupted)
        return super().stop(interrupted=interrupted)


@pytest.fixture
def recording_pagers():
    """pager_factory that builds RecordingPagers and keeps them for inspection."""
    created = []

    def factory(gate, config):
        pager = RecordingPager(gate, config, environ={})
        created.append(pager)
        return pager

    factory.created = created
    return factory


@pytest.fixture
def chdir_calls(monkeypatch):
    """Record every os.chdir made by the dispatcher."""
    calls = []
    real_chdir = os.chdir

    def spy(path):
        calls.append(Path(path))
        real_chdir(path)

    class _OsProxy:
        """Stands in for the dispatcher's ``os`` so only its chdir calls are seen."""

        chdir = staticmethod(spy)

        def __getattr__(self, name):
            return getattr(os, name)

    monkeypatch.setattr("ctrl.core.dispatcher.os", _OsProxy())
    return calls


class TestConcreteScenarios:
    def test_paged_command_in_subdirectory(self, work_tree, tmp_path, monkeypatch,
                                           make_dispatcher, chdir_calls,
                                           terminal_stdout, stdout_is_tty):
        """Required control dir + pager, run from root/sub/dir."""
        paged = tmp_path / "paged.out"
        seen = {}

        def body(args, prefix, session):
            seen["pager_active"] = session.pager.active
            print("first line")
            print("second line")

        handler = RecordingHandler(status=3, action=body)
        monkeypatch.chdir(work_tree / "sub" / "dir")
        dispatcher = make_dispatcher(
            {"x": (handler, Capabilities(requires_control_dir=True, uses_pager=True))},
            pager_factory=lambda gate, config: PagerController(
                gate, config, environ=shell_env(CTRL_PAGER=f"cat > '{paged}'"), isatty=stdout_is_tty
            ),
        )

        result = dispatcher.dispatch("x", ["--flag"])

        assert chdir_calls == [work_tree.resolve()]
        assert handler.calls[0]["cwd"] == work_tree.resolve()
        assert handler.calls[0]["prefix"] == "sub/dir"
        assert handler.calls[0]["args"] == ["--flag"]
        assert seen["pager_active"] is True
        assert result.exit_code == 3
        assert result.state is DispatchState.SUCCEEDED
        assert paged.read_text() == "first line\nsecond line\n"
        assert (tmp_path / "terminal.out").read_text() == ""

    def test_required_control_dir_missing(self, empty_dir, monkeypatch, make_dispatcher,
                                          chdir_calls, capsys):
        handler = RecordingHandler()
        monkeypatch.chdir(empty_dir)
        dispatcher = make_dispatcher({"y": (handler, REQUIRED)})

        result = dispatcher.dispatch("y")

        assert not handler.called
        assert chdir_calls == []
        assert Path.cwd() == empty_dir.resolve()
        assert result.exit_code == ExitCode.CONTROL_DIR_NOT_FOUND == 128
        assert result.state is DispatchState.CONTROL_DIR_FAILED
        assert "not a ctrl repository" in capsys.readouterr().err

    def test_delayed_pager_config_is_left_to_handler(self, work_tree, monkeypatch,
                                                     make_dispatcher, recording_pagers):
        user = UserConfig(pager={"z": True})
        handler = RecordingHandler()
        monkeypatch.chdir(work_tree)
        dispatcher = make_dispatcher(
            {"z": (handler, Capabilities(requires_control_dir=True, delays_pager_config=True))},
            user_config=user,
            pager_factory=recording_pagers,
        )

        dispatcher.dispatch("z")

        assert recording_pagers.created[0].requests == []
        assert dispatcher.gate.decision is PagerDecision.UNDECIDED

    def test_delayed_pager_config_handler_can_enable(self, make_dispatcher, recording_pagers):
        handler = RecordingHandler(
            action=lambda args, prefix, session: session.request_pager(PagerPolicy.ON)
        )
        dispatcher = make_dispatcher(
            {"z": (handler, Capabilities(delays_pager_config=True))},
            pager_factory=recording_pagers,
        )

        dispatcher.dispatch("z")

        assert recording_pagers.created[0].requests == [("z", PagerPolicy.ON)]
        assert dispatcher.gate.decision is PagerDecision.ENABLED


class TestResolution:
    def test_gentle_runs_without_control_dir(self, empty_dir, monkeypatch, make_dispatcher):
        handler = RecordingHandler()
        monkeypatch.chdir(empty_dir)
        dispatcher = make_dispatcher({"g": (handler, GENTLE)})

        result = dispatcher.dispatch("g")

        assert result.exit_code == 0
        session = handler.calls[0]["session"]
        assert session.context.control_dir is None
        assert handler.calls[0]["prefix"] == ""
        assert handler.calls[0]["cwd"] == empty_dir.resolve()

    def test_gentle_uses_control_dir_when_present(self, work_tree, monkeypatch, make_dispatcher):
        handler = RecordingHandler()
        monkeypatch.chdir(work_tree / "sub")
        dispatcher = make_dispatcher({"g": (handler, GENTLE)})

        dispatcher.dispatch("g")

        assert handler.calls[0]["prefix"] == "sub"
        assert handler.calls[0]["cwd"] == work_tree.resolve()

    def test_no_discovery_without_flags(self, work_tree, monkeypatch, make_dispatcher, chdir_calls):
        handler = RecordingHandler()
        monkeypatch.chdir(work_tree / "sub")
        dispatcher = make_dispatcher({"plain": (handler, Capabilities())})

        dispatcher.dispatch("plain")

        assert chdir_calls == []
        assert handler.calls[0]["session"].context.found is False
        assert handler.calls[0]["prefix"] == ""

    @pytest.mark.parametrize("relative", ["", "a", "a/b", "a/b/c"])
    def test_prefix_and_chdir_by_depth(self, work_tree, monkeypatch, make_dispatcher,
                                       chdir_calls, relative):
        start = work_tree / relative
        start.mkdir(parents=True, exist_ok=True)
        handler = RecordingHandler()
        monkeypatch.chdir(start)
        dispatcher = make_dispatcher({"cmd": (handler, REQUIRED)})

        dispatcher.dispatch("cmd")

        assert handler.calls[0]["prefix"] == relative
        assert handler.calls[0]["cwd"] == work_tree.resolve()
        assert chdir_calls == ([work_tree.resolve()] if relative else [])

    def test_bare_repo_with_work_tree_requirement(self, bare_repo, monkeypatch, make_dispatcher, capsys):
        handler = RecordingHandler()
        monkeypatch.chdir(bare_repo)
        caps = Capabilities(requires_control_dir=True, requires_work_tree=True)
        dispatcher = make_dispatcher({"wt": (handler, caps)})

        result = dispatcher.dispatch("wt")

        assert not handler.called
        assert result.exit_code == ExitCode.WORK_TREE_REQUIRED
        assert result.state is DispatchState.WORK_TREE_FAILED
        assert "must be run in a work tree" in capsys.readouterr().err

    def test_inside_control_dir_refuses_work_tree_commands(self, work_tree, monkeypatch,
                                                          make_dispatcher, chdir_calls):
        handler = RecordingHandler()
        monkeypatch.chdir(work_tree / ".ctrl")
        caps = Capabilities(requires_control_dir=True, requires_work_tree=True)
        dispatcher = make_dispatcher({"wt": (handler, caps)})

        result = dispatcher.dispatch("wt")

        assert not handler.called
        assert chdir_calls == []
        assert result.exit_code == ExitCode.WORK_TREE_REQUIRED

    def test_inside_control_dir_runs_without_prefix(self, work_tree, monkeypatch,
                                                    make_dispatcher, chdir_calls):
        handler = RecordingHandler()
        monkeypatch.chdir(work_tree / ".ctrl")
        dispatcher = make_dispatcher({"g": (handler, GENTLE)})

        result = dispatcher.dispatch("g")

        assert result.exit_code == 0
        assert chdir_calls == []
        assert handler.calls[0]["prefix"] == ""
        assert handler.calls[0]["session"].context.inside_control_dir

    def test_bare_repo_without_work_tree_requirement(self, bare_repo, monkeypatch,
                                                     make_dispatcher, chdir_calls):
        handler = RecordingHandler()
        monkeypatch.chdir(bare_repo)
        dispatcher = make_dispatcher({"log": (handler, REQUIRED)})

        result = dispatcher.dispatch("log")

        assert result.exit_code == 0
        assert chdir_calls == []
        assert handler.calls[0]["session"].context.is_bare

    def test_unknown_command(self, make_dispatcher, capsys):
        dispatcher = make_dispatcher({"known": (RecordingHandler(), Capabilities())})

        result = dispatcher.dispatch("unknown")

        assert result.exit_code == ExitCode.USAGE
        assert result.state is DispatchState.COMMAND_NOT_FOUND
        assert "'unknown' is not a ctrl command" in capsys.readouterr().err

    def test_super_prefix_rejected(self, make_dispatcher, capsys):
        handler = RecordingHandler()
        dispatcher = make_dispatcher({"plain": (handler, Capabilities())})

        result = dispatcher.dispatch("plain", super_prefix="outer/")

        assert not handler.called
        assert result.exit_code == ExitCode.USAGE
        assert result.state is DispatchState.SUPER_PREFIX_REJECTED
        assert "doesn't support --super-prefix" in capsys.readouterr().err

    def test_super_prefix_passed_through(self, work_tree, monkeypatch, make_dispatcher):
        handler = RecordingHandler()
        monkeypatch.chdir(work_tree / "sub")
        caps = Capabilities(requires_control_dir=True, supports_super_prefix=True)
        dispatcher = make_dispatcher({"sp": (handler, caps)})

        dispatcher.dispatch("sp", super_prefix="outer/mod/")

        context = handler.calls[0]["session"].context
        assert handler.calls[0]["prefix"] == "sub"
        assert context.super_prefix == "outer/mod/"
        assert context.display_prefix == "outer/mod/sub"

    def test_trace_follows_state_machine(self, make_dispatcher):
        dispatcher = make_dispatcher({"ok": (RecordingHandler(), Capabilities())})

        result = dispatcher.dispatch("ok")

        assert result.trace == (
            DispatchState.IDLE,
            DispatchState.RESOLVING,
            DispatchState.READY,
            DispatchState.INVOKING,
            DispatchState.SUCCEEDED,
            DispatchState.REPORTING,
            DispatchState.DONE,
        )


class TestHandlerOutcome:
    def test_nonzero_status_passes_through(self, make_dispatcher):
        dispatcher = make_dispatcher({"cmd": (RecordingHandler(status=7), Capabilities())})
        assert dispatcher.run("cmd") == 7

    def test_none_status_is_success(self, make_dispatcher):
        dispatcher = make_dispatcher({"cmd": (RecordingHandler(status=None), Capabilities())})
        assert dispatcher.run("cmd") == 0

    def test_non_integer_status_is_failure(self, make_dispatcher, capsys):
        dispatcher = make_dispatcher({"cmd": (RecordingHandler(status="ok"), Capabilities())})

        result = dispatcher.dispatch("cmd")

        assert result.exit_code == ExitCode.EXECUTION_FAILED
        assert isinstance(result.error, TypeError)
        assert "handler returned" in capsys.readouterr().err

    def test_execution_failure(self, make_dispatcher, capsys):
        def fail(args, prefix, session):
            raise ExecutionFailure("bad revision 'HEAD~9'")

        dispatcher = make_dispatcher({"cmd": (fail, Capabilities())})

        result = dispatcher.dispatch("cmd")

        assert result.exit_code == ExitCode.EXECUTION_FAILED == 125
        assert result.state is DispatchState.HANDLER_FAILED
        assert "fatal: bad revision 'HEAD~9'" in capsys.readouterr().err

    def test_unexpected_exception(self, make_dispatcher, capsys):
        def crash(args, prefix, session):
            raise RuntimeError("boom")

        dispatcher = make_dispatcher({"cmd": (crash, Capabilities())})

        result = dispatcher.dispatch("cmd")

        assert result.exit_code == ExitCode.EXECUTION_FAILED
        assert "cmd: boom" in capsys.readouterr().err

    def test_broken_pipe_is_quiet(self, make_dispatcher, capsys):
        def reader_gone(args, prefix, session):
            raise BrokenPipeError()

        dispatcher = make_dispatcher({"cmd": (reader_gone, Capabilities())})

        result = dispatcher.dispatch("cmd")

        assert result.exit_code == ExitCode.BROKEN_PIPE == 141
        assert "fatal" not in capsys.readouterr().err

    def test_keyboard_interrupt_stops_pager_and_propagates(self, make_dispatcher, recording_pagers):
        def interrupted(args, prefix, session):
            raise KeyboardInterrupt

        dispatcher = make_dispatcher(
            {"cmd": (interrupted, Capabilities())}, pager_factory=recording_pagers
        )

        with pytest.raises(KeyboardInterrupt):
            dispatcher.dispatch("cmd")

        assert recording_pagers.created[0].stops[0] is True

    def test_pager_stopped_after_success(self, make_dispatcher, recording_pagers):
        dispatcher = make_dispatcher(
            {"cmd": (RecordingHandler(), Capabilities())}, pager_factory=recording_pagers
        )

        dispatcher.dispatch("cmd")

        assert recording_pagers.created[0].stops == [False]

    def test_session_exposes_registry_and_config(self, make_dispatcher):
        handler = RecordingHandler()
        dispatcher = make_dispatcher({"cmd": (handler, Capabilities())})

        dispatcher.dispatch("cmd")

        session = handler.calls[0]["session"]
        assert session.command == "cmd"
        assert session.registry is dispatcher.registry
        assert session.config.control_dir is None


class TestPagerDefaults:
    def test_uses_pager_enables_by_default(self, make_dispatcher, recording_pagers):
        dispatcher = make_dispatcher(
            {"log": (RecordingHandler(), Capabilities(uses_pager=True))},
            pager_factory=recording_pagers,
        )

        dispatcher.dispatch("log")

        assert recording_pagers.created[0].requests == [("log", PagerPolicy.ON)]
        assert dispatcher.gate.decision is PagerDecision.ENABLED

    def test_config_can_disable_default_pager(self, make_dispatcher):
        dispatcher = make_dispatcher(
            {"log": (RecordingHandler(), Capabilities(uses_pager=True))},
            user_config=UserConfig(pager={"log": False}),
        )

        dispatcher.dispatch("log")

        assert dispatcher.gate.decision is PagerDecision.DISABLED

    def test_discovering_command_punts_without_config(self, work_tree, monkeypatch,
                                                      make_dispatcher, recording_pagers):
        monkeypatch.chdir(work_tree)
        dispatcher = make_dispatcher(
            {"status": (RecordingHandler(), REQUIRED)}, pager_factory=recording_pagers
        )

        dispatcher.dispatch("status")

        assert recording_pagers.created[0].requests == [("status", PagerPolicy.PUNT)]
        assert dispatcher.gate.decision is PagerDecision.UNDECIDED

    def test_project_config_enables_pager_for_discovering_command(self, work_tree, monkeypatch,
                                                                  make_dispatcher):
        (work_tree / ".ctrl" / "config.yml").write_text("pager:\n  status: true\n")
        monkeypatch.chdir(work_tree)
        dispatcher = make_dispatcher({"status": (RecordingHandler(), REQUIRED)})

        dispatcher.dispatch("status")

        assert dispatcher.gate.decision is PagerDecision.ENABLED

    def test_command_line_override_wins(self, make_dispatcher):
        gate = PagerGate()
        gate.override(False)
        dispatcher = make_dispatcher(
            {"log": (RecordingHandler(), Capabilities(uses_pager=True))}, gate=gate
        )

        dispatcher.dispatch("log")

        assert gate.decision is PagerDecision.DISABLED

    def test_first_pager_request_wins(self, make_dispatcher):
        decisions = []

        def ask_twice(args, prefix, session):
            decisions.append(session.request_pager(PagerPolicy.OFF))
            decisions.append(session.request_pager(PagerPolicy.ON, name="other"))

        dispatcher = make_dispatcher({"cmd": (ask_twice, Capabilities(delays_pager_config=True))})

        dispatcher.dispatch("cmd")

        assert decisions == [PagerDecision.DISABLED, PagerDecision.DISABLED]
        assert dispatcher.gate.decision is PagerDecision.DISABLED
