"""Value types shared by the caption pipeline."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class CaptionEntry:
    """One subtitle line."""

    start: float
    dur: float
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "dur": self.dur, "text": self.text}


@dataclass(frozen=True)
class CaptionTrack:
    """A candidate caption source read from the watch page player state."""

    source_url: str
    language_code: str
    kind: str = ""
    name: str = ""

    @property
    def is_asr(self) -> bool:
        return self.kind.lower() == "asr"


@dataclass
class TranscriptResult:
    """Unit of work returned to the client and stored in the cache."""

    video_id: str
    language_requested: str
    captions: List[CaptionEntry] = field(default_factory=list)
    screenshot_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "video": self.video_id,
            "lang": self.language_requested,
            "captions": [entry.to_dict() for entry in self.captions],
        }
        if self.screenshot_path:
            data["screenshot"] = self.screenshot_path
        return data


# Outcome of probing a single candidate track
OUTCOME_SUCCESS = "success"
OUTCOME_EMPTY = "empty"
OUTCOME_FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class CandidateOutcome:
    status: str
    track: CaptionTrack
    captions: tuple = ()
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == OUTCOME_SUCCESS


@dataclass
class SelectionResult:
    """Result of walking the candidate list."""

    captions: List[CaptionEntry] = field(default_factory=list)
    chosen: Optional[CaptionTrack] = None
    attempts: List[CandidateOutcome] = field(default_factory=list)
