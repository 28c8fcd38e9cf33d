from __future__ import annotations

"""Local file helpers used by the result, admin and last-job commands."""

import io
import os
import tempfile
import zipfile

ADMIN_KEY_FILE = "dp2key.txt"
LAST_ID_FILE = "lastid"


def default_admin_key_path() -> str:
    """Location where a local web service writes its admin key."""
    return os.path.join(tempfile.gettempdir(), ADMIN_KEY_FILE)


def load_admin_key(path: str | None = None) -> str:
    """Read the admin key needed to halt the web service."""
    key_path = path or default_admin_key_path()
    try:
        with open(key_path, "r", encoding="utf-8") as fp:
            key = fp.read().strip()
    except OSError as exc:
        raise ValueError(f"could not read the admin key from {key_path}: {exc}") from exc
    if not key:
        raise ValueError(f"admin key file {key_path} is empty")
    return key


def zipped_data_to_folder(data: bytes, folder: str) -> str:
    """Extract zipped job results into `folder` and return its absolute path."""
    if not folder:
        raise ValueError("an output folder is required")
    target = os.path.abspath(folder)
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ValueError("job results are not a valid zip archive") from exc

    with archive:
        for member in archive.infolist():
            destination = os.path.abspath(os.path.join(target, member.filename))
            if os.path.commonpath([target, destination]) != target:
                raise ValueError(f"refusing to extract {member.filename} outside {target}")
        os.makedirs(target, exist_ok=True)
        archive.extractall(target)
    return target


def default_last_id_path() -> str:
    """File remembering the id of the last job submitted by this client."""
    return os.path.join(os.path.expanduser("~"), ".daisy-pipeline", LAST_ID_FILE)


def store_last_id(job_id: str, path: str | None = None) -> None:
    id_path = path or default_last_id_path()
    os.makedirs(os.path.dirname(os.path.abspath(id_path)), exist_ok=True)
    with open(id_path, "w", encoding="utf-8") as fp:
        fp.write(job_id + "\n")


def load_last_id(path: str | None = None) -> str:
    """Id of the last submitted job, for commands run with --lastid."""
    id_path = path or default_last_id_path()
    try:
        with open(id_path, "r", encoding="utf-8") as fp:
            job_id = fp.read().strip()
    except FileNotFoundError as exc:
        raise ValueError("no job has been submitted from this client yet") from exc
    except OSError as exc:
        raise ValueError(f"could not read the last job id from {id_path}: {exc}") from exc
    if not job_id:
        raise ValueError(f"last job id file {id_path} is empty")
    return job_id
