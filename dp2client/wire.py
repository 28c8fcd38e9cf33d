from __future__ import annotations

"""Remote API clients for the pipeline web service.

`PipelineApi` is the capability set the link layer consumes. The live
implementation, `PipelineWsClient`, talks to the service over HTTP and
speaks its XML data format; `dp2client.fake.FakePipelineApi` is the
in-memory variant.
"""

import base64
import hashlib
import hmac
import random
import sys
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Protocol, TextIO
from urllib.parse import quote, urlencode

import httpx

from .errors import AuthenticationError, ConnectivityError, RemoteError
from .models import (
    Alive,
    Job,
    JobStatus,
    Message,
    QueueEntry,
    Script,
    ScriptInput,
    ScriptOption,
    ScriptSummary,
    WireJobRequest,
)

NS = "http://www.daisy.org/ns/pipeline/data"
_Q = "{%s}" % NS


class PipelineApi(Protocol):
    """Operations offered by the pipeline web service."""

    def alive(self) -> Alive: ...

    def scripts(self) -> list[ScriptSummary]: ...

    def script(self, script_id: str) -> Script: ...

    def job(self, job_id: str) -> Job: ...

    def jobs(self) -> list[Job]: ...

    def submit_job(self, request: WireJobRequest) -> Job: ...

    def delete_job(self, job_id: str) -> bool: ...

    def results(self, job_id: str) -> bytes: ...

    def log(self, job_id: str) -> bytes: ...

    def halt(self, key: str) -> None: ...

    def queue(self) -> list[QueueEntry]: ...

    def move_up(self, job_id: str) -> list[QueueEntry]: ...

    def move_down(self, job_id: str) -> list[QueueEntry]: ...

    def set_credentials(self, client_key: str, client_secret: str) -> None: ...


# ---------------------------------------------------------------------------
# XML decoding/encoding of the web service data model.
# ---------------------------------------------------------------------------
def _parse_xml(payload: bytes) -> ET.Element:
    try:
        return ET.fromstring(payload)
    except ET.ParseError as exc:
        raise RemoteError(f"malformed XML from web service: {exc}") from exc


def _text(element: ET.Element, tag: str) -> str:
    child = element.find(_Q + tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


def _float(value: str | None) -> float:
    try:
        return float(value or 0)
    except ValueError as exc:
        raise RemoteError(f"expected a number, got {value!r}") from exc


def _int(value: str | None) -> int:
    try:
        return int(value or 0)
    except ValueError as exc:
        raise RemoteError(f"expected an integer, got {value!r}") from exc


def decode_alive(root: ET.Element) -> Alive:
    """Decode an `<alive>` element."""
    return Alive(
        version=root.get("version", ""),
        local_fs=root.get("mode", "") == "local" or _flag(root.get("localfs")),
        authentication=_flag(root.get("authentication")),
    )


def decode_script_summaries(root: ET.Element) -> list[ScriptSummary]:
    return [
        ScriptSummary(
            id=element.get("id", ""),
            href=element.get("href", ""),
            nicename=_text(element, "nicename"),
            description=_text(element, "description"),
        )
        for element in root.iter(_Q + "script")
    ]


def decode_script(root: ET.Element) -> Script:
    """Decode a full `<script>` element including its slots."""
    script = Script(
        id=root.get("id", ""),
        href=root.get("href", ""),
        nicename=_text(root, "nicename"),
        description=_text(root, "description"),
        homepage=_text(root, "homepage"),
    )
    for element in root.findall(_Q + "input"):
        script.inputs.append(
            ScriptInput(
                name=element.get("name", ""),
                sequence=_flag(element.get("sequence")),
                required=element.get("required", "true") != "false",
                media_type=element.get("mediaType", ""),
                nicename=element.get("nicename", ""),
                description=element.get("desc", ""),
            )
        )
    for element in root.findall(_Q + "option"):
        script.options.append(
            ScriptOption(
                name=element.get("name", ""),
                sequence=_flag(element.get("sequence")),
                required=_flag(element.get("required")),
                type=element.get("type", ""),
                media_type=element.get("mediaType", ""),
                ordered=_flag(element.get("ordered")),
                default=element.get("default", ""),
                nicename=element.get("nicename", ""),
                description=element.get("desc", ""),
            )
        )
    return script


def decode_job(root: ET.Element) -> Job:
    status_text = root.get("status", JobStatus.IDLE.value)
    try:
        status = JobStatus(status_text)
    except ValueError as exc:
        raise RemoteError(f"unknown job status {status_text!r}") from exc

    messages = [
        Message(
            sequence=_int(element.get("sequence")),
            level=element.get("level", ""),
            content=element.get("content", element.text or ""),
        )
        for element in root.iter(_Q + "message")
    ]
    messages.sort(key=lambda message: message.sequence)
    return Job(
        id=root.get("id", ""),
        status=status,
        nicename=_text(root, "nicename"),
        priority=root.get("priority", ""),
        href=root.get("href", ""),
        messages=messages,
    )


def decode_jobs(root: ET.Element) -> list[Job]:
    return [decode_job(element) for element in root.findall(_Q + "job")]


def decode_queue(root: ET.Element) -> list[QueueEntry]:
    """Decode `<queue>` keeping the order chosen by the web service."""
    return [
        QueueEntry(
            id=element.get("id", ""),
            computed_priority=_float(element.get("computedPriority")),
            job_priority=element.get("jobPriority", ""),
            client_priority=element.get("clientPriority", ""),
            relative_time=_float(element.get("relativeTime")),
            timestamp=element.get("timestamp", ""),
        )
        for element in root.findall(_Q + "job")
    ]


def encode_job_request(request: WireJobRequest) -> bytes:
    """Serialize a wire job request to the `<jobRequest>` document."""
    root = ET.Element("jobRequest", {"xmlns": NS})
    ET.SubElement(root, "script", {"href": request.script_href})
    if request.nicename:
        ET.SubElement(root, "nicename").text = request.nicename
    if request.priority:
        ET.SubElement(root, "priority").text = request.priority
    for wire_input in request.inputs:
        element = ET.SubElement(root, "input", {"name": wire_input.name})
        for item in wire_input.items:
            ET.SubElement(element, "item", {"value": item.value})
    for option in request.options:
        element = ET.SubElement(root, "option", {"name": option.name})
        if option.items:
            for item in option.items:
                ET.SubElement(element, "item", {"value": item.value})
        else:
            element.text = option.value
    return ET.tostring(root, encoding="utf-8")


def sign_url(url: str, client_key: str, client_secret: str, *, now: datetime | None = None,
             nonce: str | None = None) -> str:
    """Append the authid/time/nonce/sign parameters expected by the service."""
    moment = now or datetime.now(timezone.utc)
    params = urlencode(
        {
            "authid": client_key,
            "time": moment.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "nonce": nonce or "%030d" % random.SystemRandom().randrange(10 ** 30),
        }
    )
    unsigned = url + ("&" if "?" in url else "?") + params
    digest = hmac.new(client_secret.encode("utf-8"), unsigned.encode("utf-8"), hashlib.sha1).digest()
    signature = base64.b64encode(digest).decode("ascii")
    return unsigned + "&sign=" + quote(signature, safe="")


class PipelineWsClient:
    """Synchronous HTTP client for the pipeline web service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 60.0,
        verbose: bool = False,
        verbose_stream: TextIO | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.verbose = verbose
        self.verbose_stream = verbose_stream
        self._client_key = ""
        self._client_secret = ""
        self._closed = False
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
            headers={"Accept": "application/xml"},
        )

    def _verbose_log(self, message: str) -> None:
        if not self.verbose:
            return
        stream = self.verbose_stream if self.verbose_stream is not None else sys.stderr
        try:
            stream.write(f"[dp2] {message}\n")
            stream.flush()
        except Exception:
            pass

    def _client_or_raise(self) -> httpx.Client:
        if self._closed:
            raise RuntimeError("PipelineWsClient is already closed")
        return self._client

    def close(self) -> None:
        if self._closed:
            return
        self._client.close()
        self._closed = True

    def set_credentials(self, client_key: str, client_secret: str) -> None:
        """Sign every following request with the given key/secret."""
        self._client_key = client_key
        self._client_secret = client_secret

    def _url(self, path: str) -> str:
        url = self.base_url + path.lstrip("/")
        if self._client_key:
            url = sign_url(url, self._client_key, self._client_secret)
        return url

    def _request(self, method: str, path: str, *, content: bytes | None = None) -> httpx.Response:
        """Send one request and map failures onto the link error taxonomy."""
        self._verbose_log(f"-> {method} {path}")
        headers = {"Content-Type": "application/xml"} if content is not None else None
        try:
            response = self._client_or_raise().request(
                method, self._url(path), content=content, headers=headers
            )
        except httpx.TransportError as exc:
            raise ConnectivityError(
                f"could not reach the pipeline web service at {self.base_url}: {exc}"
            ) from exc
        self._verbose_log(f"<- {response.status_code} {path}")

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"web service rejected the client credentials ({response.status_code})"
            )
        if response.status_code >= 400:
            detail = response.text.strip()
            raise RemoteError(
                f"{method} {path} failed with status {response.status_code}"
                + (f": {detail}" if detail else ""),
                status_code=response.status_code,
            )
        return response

    def _get_xml(self, path: str) -> ET.Element:
        return _parse_xml(self._request("GET", path).content)

    def alive(self) -> Alive:
        return decode_alive(self._get_xml("alive"))

    def scripts(self) -> list[ScriptSummary]:
        return decode_script_summaries(self._get_xml("scripts"))

    def script(self, script_id: str) -> Script:
        return decode_script(self._get_xml(f"scripts/{quote(script_id, safe='')}"))

    def job(self, job_id: str) -> Job:
        return decode_job(self._get_xml(f"jobs/{quote(job_id, safe='')}"))

    def jobs(self) -> list[Job]:
        return decode_jobs(self._get_xml("jobs"))

    def submit_job(self, request: WireJobRequest) -> Job:
        response = self._request("POST", "jobs", content=encode_job_request(request))
        return decode_job(_parse_xml(response.content))

    def delete_job(self, job_id: str) -> bool:
        response = self._request("DELETE", f"jobs/{quote(job_id, safe='')}")
        return response.status_code in (200, 204)

    def results(self, job_id: str) -> bytes:
        return self._request("GET", f"jobs/{quote(job_id, safe='')}/result").content

    def log(self, job_id: str) -> bytes:
        return self._request("GET", f"jobs/{quote(job_id, safe='')}/log").content

    def halt(self, key: str) -> None:
        self._request("GET", f"admin/halt/{quote(key, safe='')}")

    def queue(self) -> list[QueueEntry]:
        return decode_queue(self._get_xml("queue"))

    def move_up(self, job_id: str) -> list[QueueEntry]:
        return decode_queue(self._get_xml(f"queue/up/{quote(job_id, safe='')}"))

    def move_down(self, job_id: str) -> list[QueueEntry]:
        return decode_queue(self._get_xml(f"queue/down/{quote(job_id, safe='')}"))
