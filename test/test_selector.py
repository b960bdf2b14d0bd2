import numpy as np
import pytest

from oriented_imagery.exceptions import NoStationsAvailable
from oriented_imagery.selector import Phase, StationSelector, StreamingState, nearest_station

POSITIONS = np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0], [0.0, 10.0, 0.0]])


def test_nearest_station():
    assert nearest_station(POSITIONS, (1.0, 0.0, 0.0)) == 0
    assert nearest_station(POSITIONS, (9.0, 1.0, 0.0)) == 1
    assert nearest_station(POSITIONS, (0.0, 7.0, -3.0)) == 2


def test_ties_go_to_lowest_index():
    assert nearest_station(POSITIONS, (5.0, 0.0, 0.0)) == 0
    assert nearest_station(np.array([[1.0, 0, 0], [-1.0, 0, 0], [1.0, 0, 0]]), (0, 0, 0)) == 0


def test_no_station():
    with pytest.raises(NoStationsAvailable):
        nearest_station(np.zeros((0, 3)), (0.0, 0.0, 0.0))


def test_selector_transitions():
    sel = StationSelector()
    assert sel.state == StreamingState.idle()

    assert sel.select(POSITIONS, (1.0, 0.0, 0.0)) == 0
    assert sel.state == StreamingState.loading(0)
    # same nearest station while loading: nothing new to do
    assert sel.select(POSITIONS, (2.0, 0.0, 0.0)) is None

    sel.mark_ready(0)
    assert sel.state.phase is Phase.READY
    assert sel.select(POSITIONS, (1.0, 1.0, 0.0)) is None

    assert sel.select(POSITIONS, (9.0, 0.0, 0.0)) == 1
    sel.mark_failed(1)
    assert sel.state == StreamingState.ready(0)
    # the failed station is retried on the next tick
    assert sel.select(POSITIONS, (9.0, 0.0, 0.0)) == 1


def test_failure_before_anything_loaded_goes_idle():
    sel = StationSelector()
    sel.select(POSITIONS, (0.0, 0.0, 0.0))
    sel.mark_failed(0)
    assert sel.state == StreamingState.idle()


def test_failure_of_superseded_load_is_ignored():
    sel = StationSelector()
    sel.select(POSITIONS, (0.0, 0.0, 0.0))
    sel.select(POSITIONS, (10.0, 0.0, 0.0))
    sel.mark_failed(0)
    assert sel.state == StreamingState.loading(1)
