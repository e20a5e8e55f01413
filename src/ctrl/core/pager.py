# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/core/pager.py

"""
Output paging.

The decision to page is made once per process (PagerGate). Whoever decides
first wins: a --paginate/--no-pager flag, the dispatcher's default for the
command, or a handler that delays its pager config. Once the decision is
"enabled" and stdout is a terminal, PagerController starts the pager and
points the process's stdout (and stderr, when it is a terminal) at it.
"""

import os
import signal
import subprocess
import sys
import threading
from enum import Enum, IntEnum
from typing import IO, Callable, MutableMapping, Optional

from loguru import logger

from ctrl.config.manager import ConfigStack, parse_maybe_bool
from ctrl.system.exceptions import ConfigError, PagerError

DEFAULT_PAGER = "less"
PAGER_IN_USE_ENV = "CTRL_PAGER_IN_USE"
PAGER_ENV_DEFAULTS = {"LESS": "FRX", "LV": "-c"}

_FORWARDED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP", "SIGQUIT") if hasattr(signal, name)
)


class PagerDecision(Enum):
    UNDECIDED = "undecided"
    ENABLED = "enabled"
    DISABLED = "disabled"


class PagerPolicy(IntEnum):
    """Default used when pager.<cmd> is not configured."""
    PUNT = -1  # leave undecided so the caller can try another name
    OFF = 0
    ON = 1


class PagerGate:
    """Process-wide, set-once pager decision."""

    def __init__(self):
        self._decision = PagerDecision.UNDECIDED
        self._lock = threading.Lock()

    @property
    def decision(self) -> PagerDecision:
        return self._decision

    @property
    def decided(self) -> bool:
        return self._decision is not PagerDecision.UNDECIDED

    def decide(self, decision: PagerDecision) -> bool:
        """Set the decision if nobody has yet. Returns True if this call set it."""
        if decision is PagerDecision.UNDECIDED:
            raise ValueError("cannot decide to stay undecided")
        with self._lock:
            if self._decision is not PagerDecision.UNDECIDED:
                return False
            self._decision = decision
            return True

    def override(self, paginate: Optional[bool]) -> bool:
        """Apply a --paginate (True) / --no-pager (False) flag; None leaves it alone."""
        if paginate is None:
            return False
        return self.decide(PagerDecision.ENABLED if paginate else PagerDecision.DISABLED)


def resolve_pager_program(
    override: Optional[str] = None,
    core_pager: Optional[str] = None,
    environ: Optional[MutableMapping[str, str]] = None,
) -> Optional[str]:
    """Pick the pager program: first non-empty of override, $CTRL_PAGER,
    core.pager, $PAGER, then `less`. Returns None when that choice is `cat`."""
    environ = os.environ if environ is None else environ
    candidates = (override, environ.get("CTRL_PAGER"), core_pager, environ.get("PAGER"), DEFAULT_PAGER)
    program = next(c.strip() for c in candidates if c and c.strip())
    if program == "cat":
        return None
    return program


def _stream_isatty(stream: IO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


def _flush_quietly(stream: IO) -> None:
    """Flush a stream whose reader may already be gone; discard what cannot be written."""
    try:
        stream.flush()
    except BrokenPipeError:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            os.dup2(devnull, stream.fileno())
            try:
                stream.flush()
            except OSError:
                pass
        finally:
            os.close(devnull)
    except (OSError, ValueError):
        pass


class PagerController:
    """Starts, feeds and reaps the pager subprocess."""

    def __init__(
        self,
        gate: PagerGate,
        config: Optional[ConfigStack] = None,
        environ: Optional[MutableMapping[str, str]] = None,
        program_override: Optional[str] = None,
        isatty: Callable[[IO], bool] = _stream_isatty,
    ):
        self.gate = gate
        self.config = config if config is not None else ConfigStack()
        self.environ = os.environ if environ is None else environ
        self.program_override = program_override
        self._isatty = isatty
        self._command_program: Optional[str] = None
        self._process: Optional[subprocess.Popen] = None
        self._saved_fds: dict[int, int] = {}
        self._previous_handlers: dict[int, object] = {}
        self._previous_in_use: Optional[str] = None

    @property
    def active(self) -> bool:
        return self._process is not None

    def in_use(self) -> bool:
        """True if this process or a parent ctrl process is already paging."""
        return self.active or bool(parse_maybe_bool(self.environ.get(PAGER_IN_USE_ENV)))

    def request_pager(self, command: str, default: PagerPolicy) -> PagerDecision:
        """Decide from pager.<command> (or `default`) whether to page, then act on it.

        Does nothing once the decision has been made elsewhere.
        """
        if self.gate.decided or self.in_use():
            logger.debug(f"Pager request for {command} ignored: already {self.gate.decision.value}")
            return self.gate.decision

        try:
            setting = self.config.pager_setting(command)
        except ConfigError as e:
            logger.warning(f"Ignoring pager.{command}: {e}")
            setting = None

        if isinstance(setting, str):
            self._command_program = setting
            wanted = True
        elif isinstance(setting, bool):
            wanted = setting
        elif default is PagerPolicy.PUNT:
            logger.debug(f"pager.{command} not set, leaving pager decision open")
            return self.gate.decision
        else:
            wanted = default is PagerPolicy.ON

        self.gate.decide(PagerDecision.ENABLED if wanted else PagerDecision.DISABLED)
        logger.debug(f"Pager for {command}: {self.gate.decision.value}")
        self.commit()
        return self.gate.decision

    def commit(self) -> None:
        """Start the pager if the decision is enabled and none is running."""
        if self.gate.decision is PagerDecision.ENABLED and not self.in_use():
            self.start()

    def _core_pager(self) -> Optional[str]:
        try:
            return self.config.core_pager
        except ConfigError as e:
            logger.warning(f"Ignoring core.pager: {e}")
            return None

    def start(self) -> bool:
        """Spawn the pager and redirect output into it. Returns True if paging."""
        if self.active:
            return True
        if not self._isatty(sys.stdout):
            logger.debug("stdout is not a terminal, not paging")
            return False

        program = resolve_pager_program(
            self.program_override, self._command_program or self._core_pager(), self.environ
        )
        if program is None:
            logger.debug("Pager is 'cat', not paging")
            return False

        try:
            self._spawn(program)
        except PagerError as e:
            # Output falls back to the original streams.
            logger.warning(str(e))
            self._restore_fds()
            if self._process is not None:
                self._process.stdin.close()
                self._process.wait()
                self._process = None
            return False
        return True

    def _pager_env(self) -> dict[str, str]:
        env = dict(self.environ)
        for key, value in PAGER_ENV_DEFAULTS.items():
            env.setdefault(key, value)
        env[PAGER_IN_USE_ENV] = "true"
        return env

    def _spawn(self, program: str) -> None:
        _flush_quietly(sys.stdout)
        _flush_quietly(sys.stderr)

        try:
            self._process = subprocess.Popen(program, shell=True, stdin=subprocess.PIPE, env=self._pager_env())
            pipe_fd = self._process.stdin.fileno()

            targets = [sys.stdout.fileno()]
            if self._isatty(sys.stderr):
                targets.append(sys.stderr.fileno())
            for fd in targets:
                self._saved_fds[fd] = os.dup(fd)
                os.dup2(pipe_fd, fd)
        except (OSError, ValueError) as e:
            raise PagerError(f"Unable to start pager '{program}': {e}", program) from e

        self._previous_in_use = self.environ.get(PAGER_IN_USE_ENV)
        self.environ[PAGER_IN_USE_ENV] = "true"
        self._install_signal_handlers()
        logger.debug(f"Started pager '{program}' (pid {self._process.pid})")

    def _restore_fds(self) -> None:
        for fd, saved in self._saved_fds.items():
            os.dup2(saved, fd)
            os.close(saved)
        self._saved_fds.clear()

    def stop(self, interrupted: bool = False) -> Optional[int]:
        """Close the pipe and wait for the pager to drain and exit.

        With interrupted=True the pager gets a short grace period and is then
        terminated. Returns the pager's exit status, or None if none was running.
        """
        if self._process is None:
            return None
        process, self._process = self._process, None

        _flush_quietly(sys.stdout)
        _flush_quietly(sys.stderr)
        self._restore_fds()
        try:
            process.stdin.close()
        except OSError:
            pass

        self._restore_signal_handlers()
        if self._previous_in_use is None:
            self.environ.pop(PAGER_IN_USE_ENV, None)
        else:
            self.environ[PAGER_IN_USE_ENV] = self._previous_in_use

        if interrupted:
            try:
                process.wait(timeout=1)
            except subprocess.TimeoutExpired:
                process.terminate()
                process.wait()
        else:
            process.wait()
        logger.debug(f"Pager exited with status {process.returncode}")
        return process.returncode

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in _FORWARDED_SIGNALS:
            self._previous_handlers[signum] = signal.signal(signum, self._on_signal)

    def _restore_signal_handlers(self) -> None:
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def _on_signal(self, signum, frame) -> None:
        self.stop(interrupted=True)
        signal.raise_signal(signum)
