"""Capability-checked adapter around an external diagram renderer CLI."""

from __future__ import annotations

import hashlib
import logging
import shutil
import subprocess
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Union

from .errors import ExternalToolFailure, ExternalToolUnavailable

__all__ = [
    "RendererState",
    "RenderSuccess",
    "RenderFailure",
    "RenderOutcome",
    "ExternalRenderer",
    "DEFAULT_RENDER_COMMAND",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_RENDER_COMMAND: tuple[str, ...] = ("mmdr", "-e", "svg")
_INSTALL_HINT = "Install: cargo install mermaid-rs-renderer"

Runner = Callable[..., "subprocess.CompletedProcess[str]"]
Probe = Callable[[str], Optional[str]]


class RendererState(Enum):
    """Availability of the renderer executable on PATH."""

    UNCHECKED = "unchecked"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(slots=True, frozen=True)
class RenderSuccess:
    markup: str
    ok: bool = True


@dataclass(slots=True, frozen=True)
class RenderFailure:
    """A failed invocation; the diagnostic is logged and otherwise discarded."""

    diagnostic: str
    transient: bool = True
    ok: bool = False

    def as_error(self) -> ExternalToolFailure:
        return ExternalToolFailure(diagnostic=self.diagnostic, details={"transient": self.transient})


RenderOutcome = Union[RenderSuccess, RenderFailure]


class ExternalRenderer:
    """Run ``command`` with diagram source on stdin and read markup from stdout.

    The availability probe runs once and is cached; :meth:`configure` resets
    it. A missing executable is the ``UNAVAILABLE`` state (warned about once),
    while a failing invocation is a per-call :class:`RenderFailure`.
    """

    def __init__(
        self,
        command: Sequence[str] = DEFAULT_RENDER_COMMAND,
        *,
        timeout: float = 10.0,
        cache_size: int = 64,
        runner: Runner | None = None,
        probe: Probe | None = None,
        warn: Callable[[str], None] | None = None,
    ) -> None:
        self._runner: Runner = runner or subprocess.run
        self._probe: Probe = probe or shutil.which
        self._warn = warn or LOGGER.warning
        self._cache: OrderedDict[str, str] = OrderedDict()
        self._command: tuple[str, ...] = ()
        self._timeout = timeout
        self._cache_size = cache_size
        self._state = RendererState.UNCHECKED
        self.configure(command, timeout=timeout)

    @property
    def state(self) -> RendererState:
        return self._state

    @property
    def command(self) -> tuple[str, ...]:
        return self._command

    def configure(self, command: Sequence[str] | None = None, *, timeout: float | None = None) -> None:
        """Apply a new command/timeout and force a fresh availability probe."""

        if command is not None:
            if not command:
                raise ValueError("Renderer command must not be empty")
            self._command = tuple(command)
        if timeout is not None:
            self._timeout = timeout
        self._state = RendererState.UNCHECKED
        self._cache.clear()

    def is_available(self) -> bool:
        if self._state is RendererState.UNCHECKED:
            executable = self._command[0]
            if self._probe(executable):
                self._state = RendererState.AVAILABLE
            else:
                self._state = RendererState.UNAVAILABLE
                self._warn(
                    f"mermaid_renderer='external' but `{executable}` was not found in PATH. "
                    f"{_INSTALL_HINT}. Falling back to browser-side mermaid.js."
                )
        return self._state is RendererState.AVAILABLE

    def ensure_available(self) -> None:
        """Raise :class:`ExternalToolUnavailable` when the executable is missing."""

        if not self.is_available():
            raise ExternalToolUnavailable(
                message=f"`{self._command[0]}` was not found in PATH",
                command=self._command[0],
            )

    def render(self, source: str) -> RenderOutcome:
        """Render one diagram synchronously; never raises."""

        if not self.is_available():
            return RenderFailure(diagnostic=f"{self._command[0]} unavailable", transient=False)

        key = hashlib.sha1(source.encode("utf-8")).hexdigest()
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return RenderSuccess(markup=cached)

        try:
            result = self._runner(
                list(self._command),
                input=source,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            LOGGER.debug("Renderer timed out after %.1fs", self._timeout)
            return RenderFailure(diagnostic=f"timed out after {self._timeout}s")
        except OSError as exc:
            LOGGER.debug("Renderer could not be launched: %s", exc)
            return RenderFailure(diagnostic=str(exc))

        if result.returncode != 0:
            diagnostic = (result.stderr or result.stdout or "").strip()
            LOGGER.debug("Renderer exited with %s: %s", result.returncode, diagnostic)
            return RenderFailure(diagnostic=diagnostic or f"exit status {result.returncode}")

        markup = result.stdout
        self._remember(key, markup)
        return RenderSuccess(markup=markup)

    def _remember(self, key: str, markup: str) -> None:
        if self._cache_size <= 0:
            return
        self._cache[key] = markup
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)
