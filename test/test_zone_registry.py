#
# test_zone_registry.py: unit tests for zone registry
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements unit tests to test zone registry and zone handles
#

import gc
import pytest


zone_1 = [[-0.1, -0.1], [0.1, -0.1], [0.1, 0.1], [-0.1, 0.1]]
zone_2 = [[0.2, 0.2], [0.4, 0.2], [0.4, 0.4], [0.2, 0.4]]


def test_zone_registry_add_and_test():
    """
    Test for zone ids, result order and callback invocation
    """

    import virtual_tracker

    events: list = []
    registry = virtual_tracker.ZoneRegistry()
    h1 = registry.add(zone_1, 0.01, lambda e: events.append((1, e)))
    h2 = registry.add(zone_2, 0.01, lambda e: events.append((2, e)))
    h3 = registry.add(zone_1, 0.01)  # no-op callback
    assert [h1.id, h2.id, h3.id] == [1, 2, 3]
    assert registry.ids == [1, 2, 3]
    assert len(registry) == 3 and 2 in registry and 4 not in registry

    # default: invoke on enter only
    assert registry.test((0, 0)) == [True, False, True]
    assert [zi for zi, _ in events] == [1]
    event = events[0][1]
    assert (event.x, event.y, event.state) == (0.0, 0.0, True)
    assert event.handle is h1

    # invoke on exit only; event carries the end point of the segment
    events.clear()
    assert registry.test((0, 0), (0.3, 0.3), False, True) == [True, True, True]
    assert events == []
    assert registry.test((0.5, 0.5), (0.6, 0.6), False, True) == [False, False, False]
    assert [(zi, e.state, e.x, e.y) for zi, e in events] == [
        (1, False, 0.6, 0.6),
        (2, False, 0.6, 0.6),
    ]

    # nothing invoked
    events.clear()
    registry.test((0.3, 0.3), None, False, False)
    assert events == []


def test_zone_registry_handle_release():
    """
    Test that releasing a handle removes its zone while zones with the same region persist
    """

    import virtual_tracker

    calls: list = []
    registry = virtual_tracker.ZoneRegistry()
    h1 = registry.add(zone_1, 0.01, lambda e: calls.append(1))
    h2 = registry.add(zone_1, 0.01, lambda e: calls.append(2))

    assert registry.test((0, 0)) == [True, True]
    assert calls == [1, 2]

    calls.clear()
    h1.release()
    assert registry.ids == [h2.id]
    assert registry.test((0, 0)) == [True]
    assert registry.handles == [h2]
    assert calls == [2]

    # second release and unknown ids are no-ops
    h1.release()
    registry.remove([100, 200])
    assert registry.ids == [h2.id]

    # ids are never reused
    h3 = registry.add(zone_2, 0.01)
    assert h3.id == 3

    # handle as context manager
    with registry.add(zone_2, 0.01) as h4:
        assert h4.id in registry
    assert h4.id not in registry

    registry.clear()
    assert len(registry) == 0


def test_zone_registry_release_after_registry_is_gone():
    """
    Test that a handle does not keep its registry alive and can be released afterwards
    """

    import virtual_tracker

    registry = virtual_tracker.ZoneRegistry()
    handle = registry.add(zone_1, 0.01)
    del registry
    gc.collect()
    assert handle.owner is None
    handle.release()  # no-op, no error


def test_zone_registry_invalid_region():
    """
    Test that invalid regions are rejected at add time without consuming an id
    """

    import virtual_tracker

    registry = virtual_tracker.ZoneRegistry()
    with pytest.raises(virtual_tracker.InvalidRegion):
        registry.add([[0, 0], [1, 1]], 0.01)
    with pytest.raises(virtual_tracker.InvalidRegion):
        registry.add(zone_1, 0)
    with pytest.raises(ValueError):  # InvalidRegion is a ValueError
        registry.add(zone_1, -1)
    assert len(registry) == 0
    assert registry.add(zone_1, 0.01).id == 1


def test_zone_registry_callback_releases_own_zone():
    """
    Test that a zone callback can release its own handle while zones are being tested
    """

    import virtual_tracker

    registry = virtual_tracker.ZoneRegistry()
    registry.add(zone_1, 0.01, lambda e: e.handle.release())
    h2 = registry.add(zone_1, 0.01)
    assert registry.test((0, 0)) == [True, True]
    assert registry.ids == [h2.id]
