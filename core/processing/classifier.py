"""
Content classification and mode dispatch helpers.
"""

import re
from enum import Enum
from pathlib import PurePath
from typing import Optional

from core.state import View

AUDIO_SUFFIXES = (".mp3", ".wav", ".m4a", ".ogg", ".flac", ".webm")

_FENCE_RE = re.compile(r"```[ \t]*[\w+#.-]*[ \t]*\n?")


class ArtifactKind(str, Enum):
    AUDIO = "audio"
    IMAGE = "image"


class ProcessingMode(str, Enum):
    AUDIO = "audio"
    IMAGE = "image"
    DEBUG = "debug"
    MCQ = "mcq"
    CODING = "coding"


def classify_artifact(path: str) -> ArtifactKind:
    """Audio by file suffix (case-insensitive), image otherwise."""
    suffix = PurePath(path).suffix.lower()
    return ArtifactKind.AUDIO if suffix in AUDIO_SUFFIXES else ArtifactKind.IMAGE


def resolve_mode(view: "View | str", last_artifact: Optional[str]) -> Optional[ProcessingMode]:
    """
    Derive the mode "process" would run in.

    Returns None in the queue view when there is no artifact to classify.
    """
    if View(view) is not View.QUEUE:
        return ProcessingMode.DEBUG
    if last_artifact is None:
        return None
    if classify_artifact(last_artifact) is ArtifactKind.AUDIO:
        return ProcessingMode.AUDIO
    return ProcessingMode.IMAGE


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (with any language tag) and trim."""
    return _FENCE_RE.sub("", text or "").strip()
