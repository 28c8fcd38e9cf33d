from __future__ import annotations

import argparse
import os
import sys
from importlib.metadata import PackageNotFoundError, version as package_version
from pathlib import Path
from urllib.parse import urlparse

from .config import DEFAULT_CONFIG_PATH, ConfigError, load_link_config
from .errors import LinkError, ValidationError
from .link import PipelineLink
from .models import Job, JobRequest, JobStatus, Message, QueueEntry, Script
from .utils import (
    load_admin_key,
    load_last_id,
    store_last_id,
    zipped_data_to_folder,
)
from .wire import PipelineApi


def _client_version() -> str:
    try:
        return package_version("dp2client")
    except PackageNotFoundError:
        return "0.0.0"


def _parse_pairs(values: list[str], what: str) -> dict[str, list[str]]:
    """Group repeated NAME=VALUE arguments by name, keeping their order."""
    pairs: dict[str, list[str]] = {}
    for item in values:
        if "=" not in item:
            raise ValueError(f"invalid --{what} entry, expected NAME=VALUE: {item}")
        name, value = item.split("=", 1)
        if not name:
            raise ValueError(f"invalid --{what} entry: name cannot be empty")
        pairs.setdefault(name, []).append(value)
    return pairs


def _resolve_locator(value: str, local: bool) -> str:
    """Turn a CLI input value into a locator the web service can resolve."""
    if urlparse(value).scheme and not os.path.exists(value):
        return value
    if not local:
        raise ValidationError(
            f"{value} is a local path but the web service is not running in local mode"
        )
    return Path(value).resolve().as_uri()


def _emit(text: str) -> None:
    sys.stdout.write(text)


def _format_message(message: Message) -> str:
    return "(%d)[%s]\t%s\n" % (message.sequence, message.level, message.content)


def _emit_job_status(job: Job, verbose: bool) -> None:
    _emit("Job Id: %s\nStatus: %s\n" % (job.id, job.status.value))
    if verbose:
        _emit("Messages:\n")
        for message in job.messages:
            _emit(_format_message(message))


def _emit_jobs(jobs: list[Job]) -> None:
    _emit("Job Id\t(Nicename)\t[STATUS]\n\n")
    for job in jobs:
        nicename = "\t(%s)" % job.nicename if job.nicename else ""
        _emit("%s%s\t[%s]\n" % (job.id, nicename, job.status.value))


def _emit_queue(entries: list[QueueEntry]) -> None:
    _emit("Job Id\tPriority\tJob P.\tClient P.\tRel.Time.\tSince\n")
    for entry in entries:
        _emit(
            "%s\t%.2f\t%s\t%s\t%.2f\t%s\n"
            % (
                entry.id,
                entry.computed_priority,
                entry.job_priority,
                entry.client_priority,
                entry.relative_time,
                entry.timestamp,
            )
        )


def _emit_scripts(scripts: list[Script]) -> None:
    for script in scripts:
        _emit("%s\t%s\n" % (script.id, script.description))


def _stream_job(link: PipelineLink, job_id: str) -> int:
    """Print job messages as they arrive; non-zero when the stream failed."""
    with link.stream_messages(job_id) as stream:
        for element in stream:
            if element.error is not None:
                sys.stderr.write(f"error: {element.error}\n")
                return 2
            if element.message is not None:
                _emit(_format_message(element.message))
    job = link.job(job_id)
    _emit("Job %s finished with status %s\n" % (job.id, job.status.value))
    return 0 if job.status is JobStatus.DONE else 1


def _add_verbose_argument(
    parser: argparse.ArgumentParser, *, default: object = False
) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=default,
        help="Enable verbose web service tracing",
    )


def _add_job_id_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("job_id", nargs="?")
    parser.add_argument(
        "-l",
        "--lastid",
        action="store_true",
        help="Use the id of the last job submitted from this client",
    )


def _job_id(ns: argparse.Namespace) -> str:
    if ns.lastid:
        if ns.job_id:
            raise ValueError("give either a job id or --lastid, not both")
        return load_last_id(ns.last_id_file)
    if not ns.job_id:
        raise ValueError(f"{ns.action} requires a job id (or --lastid)")
    return ns.job_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dp2",
        description="Command line client for the DAISY Pipeline 2 web service.",
    )
    _add_verbose_argument(parser, default=False)
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the YAML configuration (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", default=None, help="Web service host override")
    parser.add_argument("--port", type=int, default=None, help="Web service port override")
    parser.add_argument("--ws-path", default=None, help="Web service path override")
    parser.add_argument("--client-key", default=None, help="Client key override")
    parser.add_argument("--client-secret", default=None, help="Client secret override")
    parser.add_argument(
        "--starting",
        action="store_true",
        default=None,
        help="Launch a local web service when none is reachable",
    )
    parser.add_argument(
        "--last-id-file",
        default=None,
        help="File remembering the last submitted job id (default: ~/.daisy-pipeline/lastid)",
    )

    subparsers = parser.add_subparsers(dest="action", required=True)

    version = subparsers.add_parser("version", help="Print client and web service versions")
    _add_verbose_argument(version, default=argparse.SUPPRESS)

    scripts = subparsers.add_parser("scripts", help="List the available scripts")
    _add_verbose_argument(scripts, default=argparse.SUPPRESS)

    run = subparsers.add_parser("run", help="Submit a job for a script")
    _add_verbose_argument(run, default=argparse.SUPPRESS)
    run.add_argument("script")
    run.add_argument("--input", action="append", default=[], help="NAME=PATH_OR_URL, repeatable")
    run.add_argument("--option", action="append", default=[], help="NAME=VALUE, repeatable")
    run.add_argument("--nicename", default="")
    run.add_argument("--priority", choices=["low", "medium", "high"])
    run.add_argument(
        "--background",
        action="store_true",
        help="Return after submission instead of printing job messages",
    )

    status = subparsers.add_parser("status", help="Show the status of a job")
    _add_verbose_argument(status, default=argparse.SUPPRESS)
    _add_job_id_arguments(status)

    watch = subparsers.add_parser("watch", help="Print job messages until the job ends")
    _add_verbose_argument(watch, default=argparse.SUPPRESS)
    _add_job_id_arguments(watch)

    jobs = subparsers.add_parser("jobs", help="List the jobs present in the server")
    _add_verbose_argument(jobs, default=argparse.SUPPRESS)

    delete = subparsers.add_parser("delete", help="Remove a job from the pipeline")
    _add_verbose_argument(delete, default=argparse.SUPPRESS)
    _add_job_id_arguments(delete)

    results = subparsers.add_parser("results", help="Store the results of a job")
    _add_verbose_argument(results, default=argparse.SUPPRESS)
    _add_job_id_arguments(results)
    results.add_argument("-o", "--output", required=True, help="Directory for the results")

    log = subparsers.add_parser("log", help="Print or store the log of a job")
    _add_verbose_argument(log, default=argparse.SUPPRESS)
    _add_job_id_arguments(log)
    log.add_argument("-o", "--output", help="Write the log into this file")

    halt = subparsers.add_parser("halt", help="Stop the web service")
    _add_verbose_argument(halt, default=argparse.SUPPRESS)
    halt.add_argument("--key-file", default=None, help="Admin key file override")

    queue = subparsers.add_parser("queue", help="Show the execution queue")
    _add_verbose_argument(queue, default=argparse.SUPPRESS)

    moveup = subparsers.add_parser("moveup", help="Move a job up the execution queue")
    _add_verbose_argument(moveup, default=argparse.SUPPRESS)
    moveup.add_argument("job_id")

    movedown = subparsers.add_parser("movedown", help="Move a job down the execution queue")
    _add_verbose_argument(movedown, default=argparse.SUPPRESS)
    movedown.add_argument("job_id")

    return parser


def main(argv: list[str] | None = None, *, api: PipelineApi | None = None) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    verbose = bool(getattr(ns, "verbose", False))

    try:
        config = load_link_config(ns.config).with_overrides(
            host=ns.host,
            port=ns.port,
            ws_path=ns.ws_path,
            client_key=ns.client_key,
            client_secret=ns.client_secret,
            starting=ns.starting,
        )
    except ConfigError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2

    link = PipelineLink(config, api=api, verbose=verbose or config.debug)

    try:
        if hasattr(ns, "lastid"):
            ns.job_id = _job_id(ns)
        session = link.init()
        if ns.action == "version":
            _emit(
                "Client version:\t\t\t%s\nPipeline version:\t\t%s\nPipeline authentication:\t%s\n"
                % (_client_version(), session.version, session.authentication)
            )
        elif ns.action == "scripts":
            _emit_scripts(link.scripts())
        elif ns.action == "run":
            # `local: false` in the config keeps local paths from being sent.
            local = config.local and link.is_local()
            inputs = {
                name: [_resolve_locator(value, local) for value in values]
                for name, values in _parse_pairs(ns.input, "input").items()
            }
            request = JobRequest(
                script=ns.script,
                nicename=ns.nicename,
                priority=ns.priority,
                inputs=inputs,
                options=_parse_pairs(ns.option, "option"),
            )
            job = link.execute(request)
            store_last_id(job.id, ns.last_id_file)
            _emit("Job %s sent to the pipeline\n" % job.id)
            if not ns.background:
                return _stream_job(link, job.id)
        elif ns.action == "status":
            _emit_job_status(link.job(ns.job_id), verbose)
        elif ns.action == "watch":
            return _stream_job(link, ns.job_id)
        elif ns.action == "jobs":
            _emit_jobs(link.jobs())
        elif ns.action == "delete":
            if link.delete(ns.job_id):
                _emit("Job %s removed\n" % ns.job_id)
        elif ns.action == "results":
            path = zipped_data_to_folder(link.results(ns.job_id), ns.output)
            _emit("Results stored into %s\n" % path)
        elif ns.action == "log":
            data = link.log(ns.job_id)
            if ns.output:
                with open(ns.output, "wb") as fp:
                    fp.write(data)
            else:
                sys.stdout.write(data.decode("utf-8", errors="replace"))
        elif ns.action == "halt":
            link.halt(load_admin_key(ns.key_file))
            _emit("The webservice has been halted\n")
        elif ns.action == "queue":
            _emit_queue(link.queue())
        elif ns.action == "moveup":
            _emit_queue(link.move_up(ns.job_id))
        else:
            _emit_queue(link.move_down(ns.job_id))
    except (ValueError, LinkError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return 2
    return 0
