# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.02
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/ctrl/core/dispatcher.py

"""
Command dispatcher.

One dispatch per process: look the command up, resolve the control
directory as its capabilities demand, chdir to the work tree, settle the
pager, call the handler and turn the outcome into an exit status.

    Idle -> Resolving -> (ControlDirFailed | WorkTreeFailed | Ready)
         -> Invoking -> (Succeeded | HandlerFailed) -> Reporting -> Done

Every failure detected while resolving is reported before any handler runs.
"""

import os
import sys
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Callable, MutableMapping, Optional, Sequence

from loguru import logger
from rich.console import Console

from ctrl.config.manager import ConfigStack
from ctrl.core.discovery import ExecutionContext, RepositoryLocator
from ctrl.core.pager import PagerController, PagerDecision, PagerGate, PagerPolicy
from ctrl.core.registry import CommandEntry, CommandRegistry
from ctrl.system.display import display_fatal, display_unknown_command
from ctrl.system.exceptions import (
    ControlDirectoryNotFound,
    ExecutionFailure,
    UnknownCommand,
    UnsupportedSuperPrefix,
    WorkTreeRequired,
)


class ExitCode(IntEnum):
    """Fixed exit statuses for outcomes the dispatcher decides itself."""
    OK = 0
    EXECUTION_FAILED = 125
    WORK_TREE_REQUIRED = 126
    CONTROL_DIR_NOT_FOUND = 128
    USAGE = 129
    BROKEN_PIPE = 141


class DispatchState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    COMMAND_NOT_FOUND = "command-not-found"
    SUPER_PREFIX_REJECTED = "super-prefix-rejected"
    CONTROL_DIR_FAILED = "control-dir-failed"
    WORK_TREE_FAILED = "work-tree-failed"
    READY = "ready"
    INVOKING = "invoking"
    SUCCEEDED = "succeeded"
    HANDLER_FAILED = "handler-failed"
    REPORTING = "reporting"
    DONE = "done"


@dataclass
class Session:
    """Everything a handler may consult besides its arguments."""
    command: str
    context: ExecutionContext
    config: ConfigStack
    pager: PagerController
    registry: Optional[CommandRegistry] = None

    def request_pager(self, default: PagerPolicy, name: Optional[str] = None) -> PagerDecision:
        """Ask for a pager under pager.<name> (default: this command's name)."""
        return self.pager.request_pager(name or self.command, default)


@dataclass(frozen=True)
class DispatchResult:
    command: str
    state: DispatchState
    exit_code: int
    context: Optional[ExecutionContext] = None
    error: Optional[BaseException] = None
    trace: tuple[DispatchState, ...] = field(default_factory=tuple)


class Dispatcher:
    """Runs registered commands inside the environment they declare."""

    def __init__(
        self,
        registry: CommandRegistry,
        gate: Optional[PagerGate] = None,
        locator: Optional[RepositoryLocator] = None,
        console: Optional[Console] = None,
        config_factory: Callable[[Optional[Path]], ConfigStack] = ConfigStack,
        pager_factory: Optional[Callable[[PagerGate, ConfigStack], PagerController]] = None,
        environ: Optional[MutableMapping[str, str]] = None,
    ):
        self.registry = registry
        self.gate = gate if gate is not None else PagerGate()
        self.environ = os.environ if environ is None else environ
        self.locator = locator if locator is not None else RepositoryLocator(self.environ)
        self.console = console if console is not None else Console(stderr=True)
        self.config_factory = config_factory
        self.pager_factory = pager_factory or (
            lambda gate, config: PagerController(gate, config, environ=self.environ)
        )

    def run(self, name: str, args: Sequence[str] = (), super_prefix: Optional[str] = None) -> int:
        """Dispatch and return the process exit status."""
        return self.dispatch(name, args, super_prefix=super_prefix).exit_code

    def dispatch(
        self, name: str, args: Sequence[str] = (), super_prefix: Optional[str] = None
    ) -> DispatchResult:
        trace = [DispatchState.IDLE]

        def enter(state: DispatchState) -> None:
            logger.debug(f"dispatch {name}: {trace[-1].value} -> {state.value}")
            trace.append(state)

        def finish(state: DispatchState, exit_code: int, context=None, error=None) -> DispatchResult:
            enter(DispatchState.REPORTING)
            enter(DispatchState.DONE)
            return DispatchResult(name, state, int(exit_code), context, error, tuple(trace))

        enter(DispatchState.RESOLVING)
        try:
            entry = self.registry.lookup(name)
        except UnknownCommand as e:
            enter(DispatchState.COMMAND_NOT_FOUND)
            display_unknown_command(self.console, name)
            return finish(DispatchState.COMMAND_NOT_FOUND, ExitCode.USAGE, error=e)

        if super_prefix and not entry.capabilities.supports_super_prefix:
            error = UnsupportedSuperPrefix(name)
            enter(DispatchState.SUPER_PREFIX_REJECTED)
            display_fatal(self.console, str(error))
            return finish(DispatchState.SUPER_PREFIX_REJECTED, ExitCode.USAGE, error=error)

        try:
            context = self._resolve(entry)
        except ControlDirectoryNotFound as e:
            enter(DispatchState.CONTROL_DIR_FAILED)
            display_fatal(self.console, str(e))
            return finish(DispatchState.CONTROL_DIR_FAILED, ExitCode.CONTROL_DIR_NOT_FOUND, error=e)
        except WorkTreeRequired as e:
            enter(DispatchState.WORK_TREE_FAILED)
            display_fatal(self.console, str(e))
            return finish(DispatchState.WORK_TREE_FAILED, ExitCode.WORK_TREE_REQUIRED, error=e)

        if entry.capabilities.supports_super_prefix:
            context = context.with_super_prefix(super_prefix)
        enter(DispatchState.READY)

        self._enter_work_tree(context)
        session = self._prepare_session(entry, context)

        enter(DispatchState.INVOKING)
        error: Optional[BaseException] = None
        try:
            status = self._invoke(entry, args, context, session)
            state = DispatchState.SUCCEEDED
        except BrokenPipeError as e:
            # The reader went away (usually the user quit the pager).
            error, state, status = e, DispatchState.HANDLER_FAILED, ExitCode.BROKEN_PIPE
        except ExecutionFailure as e:
            error, state, status = e, DispatchState.HANDLER_FAILED, ExitCode.EXECUTION_FAILED
        except Exception as e:
            logger.opt(exception=e).debug(f"{name} raised {type(e).__name__}")
            error, state, status = e, DispatchState.HANDLER_FAILED, ExitCode.EXECUTION_FAILED
        except KeyboardInterrupt:
            session.pager.stop(interrupted=True)
            raise
        finally:
            session.pager.stop()
        enter(state)

        if isinstance(error, ExecutionFailure):
            display_fatal(self.console, str(error))
        elif error is not None and not isinstance(error, BrokenPipeError):
            display_fatal(self.console, f"{name}: {error}")
        return finish(state, status, context=context, error=error)

    def _resolve(self, entry: CommandEntry) -> ExecutionContext:
        caps = entry.capabilities
        if not caps.discovers:
            return ExecutionContext()

        try:
            context = self.locator.locate(Path.cwd())
        except ControlDirectoryNotFound as e:
            if caps.requires_control_dir:
                raise
            logger.debug(f"{entry.name}: no control directory ({e}), continuing without one")
            return ExecutionContext()

        if caps.needs_work_tree and context.work_tree is None:
            raise WorkTreeRequired(context.control_dir)
        return context

    def _enter_work_tree(self, context: ExecutionContext) -> None:
        if context.work_tree is None:
            return
        if Path.cwd().resolve() != context.work_tree:
            logger.debug(f"chdir to work tree {context.work_tree}")
            os.chdir(context.work_tree)

    def _prepare_session(self, entry: CommandEntry, context: ExecutionContext) -> Session:
        config = self.config_factory(context.control_dir)
        pager = self.pager_factory(self.gate, config)
        caps = entry.capabilities

        if not caps.delays_pager_config and (caps.uses_pager or caps.discovers):
            default = PagerPolicy.ON if caps.uses_pager else PagerPolicy.PUNT
            pager.request_pager(entry.name, default)
        # Honour a --paginate decision even for commands that delay their config.
        pager.commit()

        return Session(
            command=entry.name, context=context, config=config, pager=pager, registry=self.registry
        )

    def _invoke(
        self, entry: CommandEntry, args: Sequence[str], context: ExecutionContext, session: Session
    ) -> int:
        status = entry.handler(list(args), context.prefix, session)
        if status is None:
            status = 0
        if not isinstance(status, int):
            raise TypeError(f"handler returned {status!r}, expected an integer status")
        sys.stdout.flush()
        return int(status)
