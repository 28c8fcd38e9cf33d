from __future__ import annotations

"""In-memory implementation of the remote API used for tests and dry runs."""

from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from .errors import ConnectivityError, RemoteError
from .models import (
    Alive,
    Job,
    JobStatus,
    QueueEntry,
    Script,
    ScriptSummary,
    WireJobRequest,
)


@dataclass
class FakePipelineApi:
    """Scripted stand-in for `PipelineWsClient`.

    `job_snapshots` maps a job id to the successive snapshots returned by
    `job()`; the last snapshot is repeated once the list is exhausted.
    Setting `fail` makes every call raise `ConnectivityError`.
    """

    version: str = "test"
    local_fs: bool = True
    authentication: bool = False
    fail: bool = False
    script_list: list[Script] = field(default_factory=list)
    job_snapshots: dict[str, list[Job]] = field(default_factory=dict)
    queue_entries: list[QueueEntry] = field(default_factory=list)
    results_payload: bytes = b""
    log_payload: bytes = b""
    client_key: str = ""
    client_secret: str = ""
    calls: list[str] = field(default_factory=list)
    submitted: list[WireJobRequest] = field(default_factory=list)

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if self.fail:
            raise ConnectivityError(f"fake web service is down ({name})")

    @property
    def last_call(self) -> str | None:
        return self.calls[-1] if self.calls else None

    def alive(self) -> Alive:
        self._call("alive")
        return Alive(version=self.version, local_fs=self.local_fs, authentication=self.authentication)

    def scripts(self) -> list[ScriptSummary]:
        self._call("scripts")
        return [
            ScriptSummary(id=script.id, href=script.href, nicename=script.nicename,
                          description=script.description)
            for script in self.script_list
        ]

    def script(self, script_id: str) -> Script:
        self._call("script")
        for script in self.script_list:
            if script.id == script_id:
                return script
        raise RemoteError(f"script {script_id} not found", status_code=404)

    def job(self, job_id: str) -> Job:
        self._call("job")
        snapshots = self.job_snapshots.get(job_id)
        if not snapshots:
            raise RemoteError(f"job {job_id} not found", status_code=404)
        if len(snapshots) > 1:
            return snapshots.pop(0)
        return snapshots[0]

    def jobs(self) -> list[Job]:
        self._call("jobs")
        return [snapshots[-1] for snapshots in self.job_snapshots.values() if snapshots]

    def submit_job(self, request: WireJobRequest) -> Job:
        self._call("submit_job")
        self.submitted.append(request)
        job = Job(
            id="job-%d" % len(self.submitted),
            status=JobStatus.IDLE,
            nicename=request.nicename,
            priority=request.priority or "medium",
        )
        self.job_snapshots[job.id] = [job]
        return job

    def delete_job(self, job_id: str) -> bool:
        self._call("delete_job")
        return self.job_snapshots.pop(job_id, None) is not None

    def results(self, job_id: str) -> bytes:
        self._call("results")
        return self.results_payload

    def log(self, job_id: str) -> bytes:
        self._call("log")
        return self.log_payload

    def halt(self, key: str) -> None:
        self._call("halt")

    def queue(self) -> list[QueueEntry]:
        self._call("queue")
        return [replace(entry) for entry in self.queue_entries]

    def move_up(self, job_id: str) -> list[QueueEntry]:
        self._call("moveup")
        return self._move(job_id, -1)

    def move_down(self, job_id: str) -> list[QueueEntry]:
        self._call("movedown")
        return self._move(job_id, 1)

    def _move(self, job_id: str, offset: int) -> list[QueueEntry]:
        ids = [entry.id for entry in self.queue_entries]
        if job_id not in ids:
            raise RemoteError(f"job {job_id} is not queued", status_code=404)
        index = ids.index(job_id)
        target = min(max(index + offset, 0), len(ids) - 1)
        entry = self.queue_entries.pop(index)
        self.queue_entries.insert(target, entry)
        return [replace(item) for item in self.queue_entries]

    def set_credentials(self, client_key: str, client_secret: str) -> None:
        self.client_key = client_key
        self.client_secret = client_secret


def job_snapshots(job_id: str, steps: Iterable[tuple[JobStatus, list]]) -> list[Job]:
    """Build a list of successive snapshots for `FakePipelineApi.job_snapshots`."""
    return [Job(id=job_id, status=status, messages=list(messages)) for status, messages in steps]
