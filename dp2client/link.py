from __future__ import annotations

"""Link between the command layer and the pipeline web service.

This module contains:
- `LinkSession`, the state captured when the web service is brought up
- the `PipelineLink` facade for bootstrap, job, queue and message operations
"""

import sys
import threading
from dataclasses import dataclass, field
from typing import TextIO

from .auth import ClientCredentials, load_client_credentials
from .builder import RequestTranslator
from .config import LinkConfig
from .errors import AuthenticationError, ConnectivityError, ValidationError
from .launcher import ServiceLauncher
from .models import Job, JobRequest, QueueEntry, Script, WireJobRequest
from .stream import DEFAULT_POLL_INTERVAL, MessageStream, stream_messages
from .wire import PipelineApi, PipelineWsClient


@dataclass(frozen=True)
class LinkSession:
    """Web service facts captured once at bootstrap."""

    version: str
    authentication: bool
    fs_allow: bool
    credentials: ClientCredentials = field(default_factory=ClientCredentials)
    config: LinkConfig = field(default_factory=LinkConfig)


class PipelineLink:
    """Facade used by the command layer to talk to the pipeline web service."""

    def __init__(
        self,
        config: LinkConfig | None = None,
        *,
        api: PipelineApi | None = None,
        verbose: bool | None = None,
        verbose_stream: TextIO | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        """Create a link; `api` defaults to a live client for `config.url`."""
        self.config = config or LinkConfig()
        self.verbose = self.config.debug if verbose is None else verbose
        self.verbose_stream = verbose_stream
        self.poll_interval = poll_interval
        self.api: PipelineApi = api or PipelineWsClient(
            self.config.url,
            timeout_seconds=self.config.timeout_seconds,
            verbose=self.verbose,
            verbose_stream=verbose_stream,
        )
        self.session: LinkSession | None = None

    def _verbose_log(self, message: str) -> None:
        """Emit verbose diagnostic lines when `verbose=True`."""
        if not self.verbose:
            return
        stream = self.verbose_stream if self.verbose_stream is not None else sys.stderr
        try:
            stream.write(f"[dp2] {message}\n")
            stream.flush()
        except Exception:
            pass

    # -- bootstrap ---------------------------------------------------------

    def bring_up(self) -> LinkSession:
        """Make sure the web service is alive and capture its session facts.

        When the service cannot be reached and `config.starting` is set, a
        local instance is launched first. Connectivity errors propagate and
        leave `self.session` unset.
        """
        try:
            alive = self.api.alive()
        except ConnectivityError:
            if not self.config.starting:
                raise
            self._verbose_log("web service unreachable, launching a local instance")
            launcher = ServiceLauncher(self.config, self.api.alive, log=self._verbose_log)
            alive = launcher.launch()

        self.session = LinkSession(
            version=alive.version,
            authentication=alive.authentication,
            fs_allow=alive.local_fs,
            config=self.config,
        )
        self._verbose_log(
            "pipeline %s is up (authentication=%s, local=%s)"
            % (alive.version, alive.authentication, alive.local_fs)
        )
        return self.session

    def check_credentials(self) -> ClientCredentials:
        """Validate configured credentials against the session requirements."""
        session = self._session_or_raise()
        credentials = load_client_credentials(
            client_key=self.config.client_key,
            client_secret=self.config.client_secret,
        )
        if session.authentication and credentials.empty:
            raise AuthenticationError(
                "the web service requires authentication; set client_key and client_secret"
            )
        return credentials

    def init(self) -> LinkSession:
        """Bring the web service up and configure authentication if needed."""
        session = self.bring_up()
        if not session.authentication:
            return session

        credentials = self.check_credentials()
        self.api.set_credentials(credentials.client_key, credentials.client_secret)
        self.session = LinkSession(
            version=session.version,
            authentication=session.authentication,
            fs_allow=session.fs_allow,
            credentials=credentials,
            config=session.config,
        )
        return self.session

    def _session_or_raise(self) -> LinkSession:
        if self.session is None:
            raise ConnectivityError("the link has not been brought up")
        return self.session

    def is_local(self) -> bool:
        """True when the web service shares this machine's file system."""
        return self.session is not None and self.session.fs_allow

    @property
    def version(self) -> str | None:
        return self.session.version if self.session is not None else None

    @property
    def authentication(self) -> bool:
        return self.session is not None and self.session.authentication

    # -- scripts and jobs --------------------------------------------------

    def scripts(self) -> list[Script]:
        """Full descriptors for every script registered in the web service."""
        return [self.api.script(summary.id) for summary in self.api.scripts()]

    def script(self, script_id: str) -> Script:
        return self.api.script(script_id)

    def translate(self, request: JobRequest) -> WireJobRequest:
        """Translate `request` against the descriptor of its script."""
        return RequestTranslator.translate(request, self.api.script(request.script))

    def execute(self, request: JobRequest) -> Job:
        """Submit `request` and return the created job."""
        wire = self.translate(request)
        job = self.api.submit_job(wire)
        self._verbose_log(f"job {job.id} submitted for script {request.script}")
        return job

    def job(self, job_id: str) -> Job:
        return self.api.job(job_id)

    def jobs(self) -> list[Job]:
        return self.api.jobs()

    def delete(self, job_id: str) -> bool:
        return self.api.delete_job(job_id)

    def results(self, job_id: str) -> bytes:
        """Zipped results of a finished job."""
        return self.api.results(job_id)

    def log(self, job_id: str) -> bytes:
        return self.api.log(job_id)

    def halt(self, key: str) -> None:
        """Stop the web service using its admin key."""
        self.api.halt(key)

    def stream_messages(
        self,
        job_id: str,
        *,
        interval: float | None = None,
        cancel: threading.Event | None = None,
    ) -> MessageStream:
        """Live stream of `job_id` messages until the job ends."""
        return stream_messages(
            self.api.job,
            job_id,
            interval=self.poll_interval if interval is None else interval,
            cancel=cancel,
        )

    # -- execution queue ---------------------------------------------------

    def queue(self) -> list[QueueEntry]:
        """Execution queue in the order and with the priorities set remotely."""
        return self.api.queue()

    def move_up(self, job_id: str) -> list[QueueEntry]:
        return self.api.move_up(_require_job_id(job_id))

    def move_down(self, job_id: str) -> list[QueueEntry]:
        return self.api.move_down(_require_job_id(job_id))


def _require_job_id(job_id: str) -> str:
    if not job_id or not job_id.strip():
        raise ValidationError("a job id is required")
    return job_id.strip()


def new_link(config: LinkConfig, **kwargs: object) -> PipelineLink:
    """Create a link for `config` and run its bootstrap."""
    link = PipelineLink(config, **kwargs)  # type: ignore[arg-type]
    link.init()
    return link
