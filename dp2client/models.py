from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence


class JobStatus(str, Enum):
    """Job states reported by the pipeline web service."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)


@dataclass
class JobRequest:
    """CLI-facing description of a job before translation to the wire model."""

    script: str
    nicename: str = ""
    priority: str | None = None
    inputs: Mapping[str, Sequence[Any]] = field(default_factory=dict)
    options: Mapping[str, Sequence[str]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.script.strip():
            raise ValueError("script must be a non-empty string")


@dataclass
class ScriptInput:
    name: str
    sequence: bool = False
    required: bool = True
    media_type: str = ""
    nicename: str = ""
    description: str = ""


@dataclass
class ScriptOption:
    name: str
    sequence: bool = False
    required: bool = False
    type: str = ""
    media_type: str = ""
    ordered: bool = False
    default: str = ""
    nicename: str = ""
    description: str = ""


@dataclass
class ScriptSummary:
    """Entry of the script listing, without the slot declarations."""

    id: str
    href: str = ""
    nicename: str = ""
    description: str = ""


@dataclass
class Script:
    """Full script descriptor with its declared input and option slots."""

    id: str
    href: str = ""
    nicename: str = ""
    description: str = ""
    homepage: str = ""
    inputs: list[ScriptInput] = field(default_factory=list)
    options: list[ScriptOption] = field(default_factory=list)

    def input_names(self) -> set[str]:
        return {slot.name for slot in self.inputs}

    def option_names(self) -> set[str]:
        return {slot.name for slot in self.options}


@dataclass
class Item:
    value: str


@dataclass
class WireInput:
    name: str
    items: list[Item] = field(default_factory=list)


@dataclass
class WireOption:
    """Wire option carrying either a scalar `value` or a list of `items`."""

    name: str
    value: str = ""
    items: list[Item] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.value and self.items:
            raise ValueError(f"option {self.name} cannot carry both a value and items")


@dataclass
class WireJobRequest:
    """Job request in the shape expected by the web service."""

    script_href: str
    nicename: str = ""
    priority: str | None = None
    inputs: list[WireInput] = field(default_factory=list)
    options: list[WireOption] = field(default_factory=list)


@dataclass
class Message:
    sequence: int
    level: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"sequence": self.sequence, "level": self.level, "content": self.content}


@dataclass
class Job:
    """Read-only snapshot of a remote job."""

    id: str
    status: JobStatus
    nicename: str = ""
    priority: str = ""
    href: str = ""
    messages: list[Message] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-friendly dictionary."""
        return {
            "id": self.id,
            "status": self.status.value,
            "nicename": self.nicename,
            "priority": self.priority,
            "href": self.href,
            "messages": [message.to_dict() for message in self.messages],
        }


@dataclass
class QueueEntry:
    """One job of the execution queue with the priorities computed remotely."""

    id: str
    computed_priority: float
    job_priority: str
    client_priority: str
    relative_time: float
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "computed_priority": self.computed_priority,
            "job_priority": self.job_priority,
            "client_priority": self.client_priority,
            "relative_time": self.relative_time,
            "timestamp": self.timestamp,
        }


@dataclass
class Alive:
    """Liveness answer of the web service."""

    version: str
    local_fs: bool
    authentication: bool
