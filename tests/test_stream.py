from __future__ import annotations

import threading

import pytest

from dp2client.errors import ConnectivityError
from dp2client.fake import FakePipelineApi, job_snapshots
from dp2client.link import PipelineLink
from dp2client.models import Job, JobStatus, Message
from dp2client.stream import MessageStream, stream_messages


def _messages(*sequences: int) -> list[Message]:
    return [Message(sequence=seq, level="INFO", content=f"Message {seq}") for seq in sequences]


def _drain(stream: MessageStream) -> list:
    elements = list(stream)
    stream.join(timeout=5.0)
    return elements


def test_messages_are_emitted_once_in_order() -> None:
    api = FakePipelineApi(
        job_snapshots={
            "jobId": job_snapshots(
                "jobId",
                [
                    (JobStatus.RUNNING, _messages(1, 2)),
                    (JobStatus.DONE, _messages(1, 2, 3, 4)),
                ],
            )
        }
    )
    link = PipelineLink(api=api, poll_interval=0.01)

    elements = _drain(link.stream_messages("jobId"))

    assert [element.message.content for element in elements] == [
        "Message 1",
        "Message 2",
        "Message 3",
        "Message 4",
    ]
    assert not any(element.is_error for element in elements)
    assert api.calls == ["job", "job"]


def test_growing_log_is_delivered_without_gaps_or_duplicates() -> None:
    api = FakePipelineApi(
        job_snapshots={
            "jobId": job_snapshots(
                "jobId",
                [
                    (JobStatus.IDLE, []),
                    (JobStatus.RUNNING, _messages(1)),
                    (JobStatus.RUNNING, _messages(1)),
                    (JobStatus.RUNNING, list(reversed(_messages(1, 2, 3)))),
                    (JobStatus.RUNNING, _messages(1, 2, 3, 4, 5)),
                    (JobStatus.ERROR, _messages(1, 2, 3, 4, 5, 6)),
                ],
            )
        }
    )
    stream = stream_messages(api.job, "jobId", interval=0.01)

    elements = _drain(stream)

    assert [element.message.sequence for element in elements] == [1, 2, 3, 4, 5, 6]
    assert stream.watermark == 6
    assert len(api.calls) == 6


def test_terminal_first_poll_still_delivers_messages() -> None:
    api = FakePipelineApi(
        job_snapshots={"jobId": job_snapshots("jobId", [(JobStatus.DONE, _messages(7, 8))])}
    )
    elements = _drain(stream_messages(api.job, "jobId", interval=0.01))
    assert [element.message.sequence for element in elements] == [7, 8]
    assert api.calls == ["job"]


def test_transport_error_yields_single_error_element() -> None:
    api = FakePipelineApi(fail=True)
    stream = stream_messages(api.job, "jobId", interval=0.01)

    elements = _drain(stream)

    assert len(elements) == 1
    assert elements[0].is_error
    assert elements[0].message is None
    assert isinstance(elements[0].error, ConnectivityError)
    assert not stream.alive


def test_error_after_messages_ends_stream() -> None:
    calls = {"count": 0}

    def fetch(job_id: str) -> Job:
        calls["count"] += 1
        if calls["count"] == 1:
            return Job(id=job_id, status=JobStatus.RUNNING, messages=_messages(1))
        raise ConnectivityError("connection refused")

    elements = _drain(stream_messages(fetch, "jobId", interval=0.01))

    assert [element.is_error for element in elements] == [False, True]
    assert elements[0].message.sequence == 1
    assert calls["count"] == 2


def test_cancel_stops_polling_thread() -> None:
    api = FakePipelineApi(
        job_snapshots={"jobId": job_snapshots("jobId", [(JobStatus.RUNNING, _messages(1))])}
    )
    stream = stream_messages(api.job, "jobId", interval=0.01)

    iterator = iter(stream)
    first = next(iterator)
    assert first.message.sequence == 1

    stream.cancel()
    stream.join(timeout=5.0)

    assert not stream.alive
    assert list(iterator) == []


def test_external_cancel_event() -> None:
    api = FakePipelineApi(
        job_snapshots={"jobId": job_snapshots("jobId", [(JobStatus.RUNNING, [])])}
    )
    cancel = threading.Event()
    link = PipelineLink(api=api, poll_interval=0.01)
    stream = link.stream_messages("jobId", cancel=cancel)

    cancel.set()
    stream.join(timeout=5.0)

    assert not stream.alive
    assert list(stream) == []


def test_context_manager_cancels_on_exit() -> None:
    api = FakePipelineApi(
        job_snapshots={"jobId": job_snapshots("jobId", [(JobStatus.RUNNING, _messages(1, 2))])}
    )
    with stream_messages(api.job, "jobId", interval=0.01) as stream:
        for element in stream:
            assert element.message.sequence == 1
            break
    stream.join(timeout=5.0)
    assert stream.cancelled
    assert not stream.alive


def test_new_stream_starts_from_fresh_watermark() -> None:
    api = FakePipelineApi(
        job_snapshots={"jobId": job_snapshots("jobId", [(JobStatus.DONE, _messages(1, 2))])}
    )
    first = _drain(stream_messages(api.job, "jobId", interval=0.01))
    second = _drain(stream_messages(api.job, "jobId", interval=0.01))
    assert [element.message.sequence for element in first] == [1, 2]
    assert [element.message.sequence for element in second] == [1, 2]


@pytest.mark.parametrize("job_id", ["a", "b"])
def test_concurrent_streams_are_independent(job_id: str) -> None:
    api = FakePipelineApi(
        job_snapshots={
            "a": job_snapshots("a", [(JobStatus.DONE, _messages(1))]),
            "b": job_snapshots("b", [(JobStatus.DONE, _messages(5, 6))]),
        }
    )
    other = "b" if job_id == "a" else "a"
    stream = stream_messages(api.job, job_id, interval=0.01)
    other_stream = stream_messages(api.job, other, interval=0.01)

    expected = {"a": [1], "b": [5, 6]}
    assert [element.message.sequence for element in _drain(stream)] == expected[job_id]
    assert [element.message.sequence for element in _drain(other_stream)] == expected[other]


def test_log_numbered_from_zero_is_delivered_whole() -> None:
    api = FakePipelineApi(
        job_snapshots={
            "jobId": job_snapshots(
                "jobId",
                [
                    (JobStatus.RUNNING, _messages(0)),
                    (JobStatus.DONE, _messages(0, 1)),
                ],
            )
        }
    )
    stream = stream_messages(api.job, "jobId", interval=0.01)

    elements = _drain(stream)

    assert [element.message.sequence for element in elements] == [0, 1]
    assert stream.watermark == 1


def test_watermark_starts_below_first_sequence() -> None:
    stream = MessageStream(FakePipelineApi().job, "jobId")
    assert stream.watermark == -1
