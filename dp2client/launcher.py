from __future__ import annotations

"""Launching a local pipeline web service.

The service is started as a single background process. Before launching, a
fixed set of runtime options is appended to the `JAVA_OPTS` variable the
service's start script reads.
"""

import os
import shlex
import subprocess
import sys
import time
from typing import Callable, Mapping

from .config import LinkConfig
from .errors import ConnectivityError, StartupError
from .models import Alive

OPTIONS_ENV_VAR = "JAVA_OPTS"
LOCAL_SERVICE_OPTIONS = (
    "-Dorg.daisy.pipeline.ws.localfs=true "
    "-Dorg.daisy.pipeline.ws.authentication=false "
    "-Dcom.sun.management.jmxremote"
)


def append_service_options(current: str | None, options: str = LOCAL_SERVICE_OPTIONS) -> str:
    """Return `current` with `options` appended, dropping surrounding quotes."""
    value = (current or "").strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1].strip()
    if not value:
        return options
    return value + " " + options


def service_environment(base: Mapping[str, str] | None = None) -> dict[str, str]:
    """Copy of `base` (default: os.environ) prepared for the local service."""
    env = dict(os.environ if base is None else base)
    env[OPTIONS_ENV_VAR] = append_service_options(env.get(OPTIONS_ENV_VAR))
    return env


def exec_line(config: LinkConfig, platform: str | None = None) -> list[str]:
    """Command vector used to start the service on the current platform."""
    platform = platform or sys.platform
    if platform.startswith("win"):
        line = config.exec_line_win
        argv = shlex.split(line, posix=False)
    else:
        line = config.exec_line_nix
        argv = shlex.split(line)
    if not argv:
        raise StartupError("no exec line configured to start the pipeline web service")
    return argv


class ServiceLauncher:
    """Starts a local web service and waits until it answers `alive`."""

    def __init__(
        self,
        config: LinkConfig,
        alive: Callable[[], Alive],
        *,
        poll_interval: float = 1.0,
        log: Callable[[str], None] | None = None,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.config = config
        self.alive = alive
        self.poll_interval = poll_interval
        self.log = log or (lambda message: None)
        self.popen = popen

    def launch(self) -> Alive:
        """Launch the service and return the first successful `alive` answer."""
        argv = exec_line(self.config)
        self.log("starting local pipeline: %s" % " ".join(argv))
        try:
            process = self.popen(
                argv,
                env=service_environment(),
                stdin=subprocess.DEVNULL,
                stdout=None if self.config.debug else subprocess.DEVNULL,
                stderr=None if self.config.debug else subprocess.DEVNULL,
            )
        except OSError as exc:
            raise StartupError(f"could not launch {argv[0]}: {exc}") from exc

        deadline = time.monotonic() + max(0, self.config.ws_timeup)
        while True:
            returncode = process.poll()
            if returncode is not None and returncode != 0:
                raise StartupError(
                    f"pipeline exited with status {returncode} before becoming available"
                )
            try:
                return self.alive()
            except ConnectivityError:
                pass
            if time.monotonic() >= deadline:
                self.log("stopping unresponsive pipeline process %s" % process.pid)
                process.terminate()
                raise StartupError(
                    "pipeline web service was not available after %d seconds" % self.config.ws_timeup
                )
            self.log("waiting for the pipeline web service...")
            time.sleep(self.poll_interval)
