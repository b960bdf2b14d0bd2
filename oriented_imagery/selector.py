import enum
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from oriented_imagery.exceptions import NoStationsAvailable

log = logging.getLogger(__name__)


class Phase(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class StreamingState:
    phase: Phase = Phase.IDLE
    station_index: Optional[int] = None

    @classmethod
    def idle(cls) -> "StreamingState":
        return cls(Phase.IDLE, None)

    @classmethod
    def loading(cls, index: int) -> "StreamingState":
        return cls(Phase.LOADING, index)

    @classmethod
    def ready(cls, index: int) -> "StreamingState":
        return cls(Phase.READY, index)


def nearest_station(positions: np.ndarray, viewpoint) -> int:
    # argmin keeps the first minimum, so ties go to the lowest index
    if len(positions) == 0:
        raise NoStationsAvailable()
    delta = np.asarray(positions, dtype=np.float64) - np.asarray(viewpoint, dtype=np.float64).reshape(1, 3)
    return int(np.argmin(np.einsum("ij,ij->i", delta, delta)))


class StationSelector:
    """
    Decides which station should be displayed.

    `state` is the selected station (Loading or Ready); `ready_index` is the
    station whose imagery is currently bound, which lags behind while a new
    station loads.
    """

    def __init__(self):
        self.state = StreamingState.idle()
        self.ready_index: Optional[int] = None

    def select(self, positions: np.ndarray, viewpoint) -> Optional[int]:
        """Returns the index to start loading, or None when the selection is unchanged."""
        index = nearest_station(positions, viewpoint)
        if self.state.phase is not Phase.IDLE and self.state.station_index == index:
            return None
        log.info(f"[select] {self.state.phase.value}({self.state.station_index}) -> loading({index})")
        self.state = StreamingState.loading(index)
        return index

    def mark_ready(self, index: int) -> None:
        self.state = StreamingState.ready(index)
        self.ready_index = index

    def mark_failed(self, index: int) -> None:
        if self.state != StreamingState.loading(index):
            return
        if self.ready_index is None:
            self.state = StreamingState.idle()
        else:
            self.state = StreamingState.ready(self.ready_index)
