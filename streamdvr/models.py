import enum
from dataclasses import dataclass, field
from typing import Any, List, Optional


class StreamerState(enum.Enum):
    OFFLINE = "Offline"
    STREAMING = "Streaming"
    CAPTURING = "Capturing"
    POST_PROCESSING = "PostProcessing"

    def __str__(self):
        return self.value


@dataclass(eq=False)
class Streamer:
    """One tracked broadcaster.

    ``capture`` is set while a recorder is running, and stays set through
    post-processing until ``clear_processing`` releases it.
    """

    uid: str
    name: str
    site: str = ""
    state: StreamerState = StreamerState.OFFLINE
    paused: bool = False
    is_temp: bool = False
    capture: Optional[Any] = None
    filename: str = ""
    filesize: int = 0            # last observed size, whole MB
    stuck_count: int = 0
    post_process: bool = False   # consumer is working on it, never auto-halt

    @property
    def is_capturing(self):
        return self.capture is not None

    @property
    def in_post_process(self):
        return self.post_process or self.state is StreamerState.POST_PROCESSING


@dataclass(frozen=True)
class ProbeResult:
    online: bool
    locator: str = ""


@dataclass(frozen=True)
class CaptureInfo:
    """Everything needed to start one recording."""

    streamer: Streamer
    filename: str
    spawn_args: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PostProcessEntry:
    site: Any
    streamer: Streamer
    filename: str
