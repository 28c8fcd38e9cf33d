from __future__ import annotations

"""Live streaming of job messages.

A `MessageStream` polls a job on a background thread and hands every new
message to the consumer through a queue. The stream ends once the job
reaches a terminal status, after the messages of that final poll, or right
after a single error element when polling fails.
"""

import queue
import threading
from dataclasses import dataclass
from typing import Callable, Iterator

from .models import Job, Message

DEFAULT_POLL_INTERVAL = 1.0

_END = object()


@dataclass(frozen=True)
class StreamedMessage:
    """Element of a message stream: either a job message or the error that ended it."""

    message: Message | None = None
    error: Exception | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class MessageStream:
    """Iterable over the messages of one job, produced by a polling thread.

    `watermark` is the highest sequence number delivered so far, -1 before
    the first message (the web service numbers messages from 0).

    The stream cannot be rewound; start a new one to read the messages again.
    Calling `cancel()` (or setting the `cancel` event given at creation) stops
    the polling thread at its next poll boundary and ends the iteration.
    """

    def __init__(
        self,
        fetch_job: Callable[[str], Job],
        job_id: str,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        cancel: threading.Event | None = None,
    ) -> None:
        self.job_id = job_id
        self.interval = interval
        self.watermark = -1
        self._fetch_job = fetch_job
        self._cancel = cancel if cancel is not None else threading.Event()
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._finished = False
        self._thread = threading.Thread(
            target=self._poll_loop, name=f"dp2-messages-{job_id}", daemon=True
        )

    def start(self) -> "MessageStream":
        self._thread.start()
        return self

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Ask the polling thread to stop; pending elements are discarded."""
        self._cancel.set()
        # Wake a consumer blocked on the queue.
        self._queue.put(_END)

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def __enter__(self) -> "MessageStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    def __iter__(self) -> Iterator[StreamedMessage]:
        while not self._finished:
            element = self._queue.get()
            if element is _END or self.cancelled:
                self._finished = True
                return
            yield element  # type: ignore[misc]

    def _poll_loop(self) -> None:
        try:
            while not self.cancelled:
                try:
                    job = self._fetch_job(self.job_id)
                except Exception as exc:
                    self._queue.put(StreamedMessage(error=exc))
                    return

                for message in sorted(job.messages, key=lambda item: item.sequence):
                    if message.sequence <= self.watermark:
                        continue
                    self._queue.put(StreamedMessage(message=message))
                    self.watermark = message.sequence

                if job.status.terminal:
                    return
                self._cancel.wait(self.interval)
        finally:
            self._queue.put(_END)


def stream_messages(
    fetch_job: Callable[[str], Job],
    job_id: str,
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    cancel: threading.Event | None = None,
) -> MessageStream:
    """Start polling `job_id` and return the live stream of its messages."""
    return MessageStream(fetch_job, job_id, interval=interval, cancel=cancel).start()
