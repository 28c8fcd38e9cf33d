"""Command line client and link layer for the DAISY Pipeline 2 web service."""

from .auth import ClientCredentials, validate_credential_pair
from .builder import RequestTranslator
from .config import LinkConfig, load_link_config
from .errors import (
    AuthenticationError,
    ConnectivityError,
    LinkError,
    RemoteError,
    StartupError,
    ValidationError,
)
from .link import LinkSession, PipelineLink, new_link
from .models import (
    Job,
    JobRequest,
    JobStatus,
    Message,
    QueueEntry,
    Script,
    WireJobRequest,
)
from .stream import MessageStream, StreamedMessage
from .wire import PipelineApi, PipelineWsClient

__all__ = [
    "AuthenticationError",
    "ClientCredentials",
    "ConnectivityError",
    "Job",
    "JobRequest",
    "JobStatus",
    "LinkConfig",
    "LinkError",
    "LinkSession",
    "Message",
    "MessageStream",
    "PipelineApi",
    "PipelineLink",
    "PipelineWsClient",
    "QueueEntry",
    "RemoteError",
    "RequestTranslator",
    "Script",
    "StartupError",
    "StreamedMessage",
    "ValidationError",
    "WireJobRequest",
    "load_link_config",
    "new_link",
    "validate_credential_pair",
]
