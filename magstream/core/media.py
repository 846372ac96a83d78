"""Target file selection and media content types."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Iterable

from magstream.models import SwarmMember, TargetFile
from magstream.utils.exceptions import NoMediaFileError

VIDEO_EXTENSIONS = ("mp4", "mkv", "avi", "webm", "m4v")

CONTENT_TYPES = {
    "mp4": "video/mp4",
    "m4v": "video/mp4",
    "mkv": "video/x-matroska",
    "webm": "video/webm",
    "avi": "video/x-msvideo",
}

DEFAULT_CONTENT_TYPE = "video/mp4"


def extension_of(name: str) -> str:
    return PurePosixPath(name.replace("\\", "/")).suffix.lower().lstrip(".")


def is_video(name: str) -> bool:
    return extension_of(name) in VIDEO_EXTENSIONS


def select_target(members: Iterable[SwarmMember]) -> TargetFile:
    """Pick the first member whose name has a recognized video extension."""
    names = []
    for member in members:
        if is_video(member.name):
            return TargetFile.from_member(member)
        names.append(member.name)
    msg = "No video file found in torrent"
    raise NoMediaFileError(msg, {"files": names})


def content_type_for(name: str) -> str:
    return CONTENT_TYPES.get(extension_of(name), DEFAULT_CONTENT_TYPE)
