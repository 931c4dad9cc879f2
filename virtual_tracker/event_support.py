#
# event_support.py: named event notification support
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#
# Implements event source base class and releasable handles
#

"""
Event Support Module Overview
=============================

This module provides a small publish/subscribe mechanism used by the tracking components to
notify clients about position changes, region-of-interest changes and new camera frames.

Key Concepts:
    - **Handle**: a releasable capability which references its owner by id through a weak
      reference. Releasing a handle sends "remove id X" to the owner; releasing it after the owner
      is gone does nothing.
    - **EventSource**: base class keeping a list of (id, name, callback) subscriptions. Subclasses
      call `_invoke()` to deliver a notification to every callback subscribed to a name.

Typical Usage:
    ```python
    handle = controller.register("Position", lambda position: print(position))
    ...
    handle.release()
    ```
"""

import weakref
from typing import Any, Callable, Iterable, List, Optional, Tuple
from . import logger_get


class Handle:
    """Releasable reference to an entry owned by another object.

    The handle keeps only the entry id and a weak reference to the owner, so it never keeps the
    owner alive. Handles can be used as context managers: the entry is released on exit.
    """

    def __init__(self, owner: Any, uid: int, release_method: str):
        """
        Constructor.

        Args:
            owner: Object which owns the entry.
            uid (int): Entry id.
            release_method (str): Name of the owner method to call with a list of ids to remove.
        """
        self._owner = weakref.ref(owner)
        self._id = uid
        self._release_method = release_method

    @property
    def id(self) -> int:
        """Id of the referenced entry."""
        return self._id

    @property
    def owner(self) -> Optional[Any]:
        """Owner object or None if it no longer exists."""
        return self._owner()

    def release(self):
        """Remove the referenced entry from its owner; no-op if the owner is gone."""
        owner = self._owner()
        if owner is not None:
            getattr(owner, self._release_method)([self._id])

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def __repr__(self):
        return f"{type(self).__name__}(id={self._id})"


class EventHandle(Handle):
    """Subscription handle returned by `EventSource.register()`."""

    def __init__(self, owner: "EventSource", uid: int):
        super().__init__(owner, uid, "unregister")


class EventSource:
    """Base class for objects which notify subscribers about named events.

    Attributes:
        event_names (tuple): Names accepted by `register()`. Empty tuple means any non-empty name.
    """

    event_names: Tuple[str, ...] = ()

    def __init__(self):
        self._subscriptions: List[Tuple[int, str, Callable]] = []
        self._uid = 0

    def register(self, name: str, callback: Callable) -> EventHandle:
        """Subscribe to an event.

        Args:
            name (str): Event name.
            callback (Callable): Function invoked with the event arguments.

        Returns:
            EventHandle: Handle to release in order to stop receiving notifications.

        Raises:
            ValueError: If the event name is empty or not supported by this source.
        """
        if not isinstance(name, str) or not name:
            raise ValueError("Invalid event name")
        if self.event_names and name not in self.event_names:
            raise ValueError(
                f"Unknown event '{name}'; supported events are {list(self.event_names)}"
            )
        self._uid += 1
        self._subscriptions.append((self._uid, name, callback))
        return EventHandle(self, self._uid)

    def unregister(self, ids: Iterable[int]):
        """Remove subscriptions with given ids; unknown ids are ignored."""
        ids = set(ids)
        self._subscriptions = [s for s in self._subscriptions if s[0] not in ids]

    def _invoke(self, name: str, *args):
        # copy: callbacks may unregister themselves
        for _, event_name, callback in list(self._subscriptions):
            if event_name == name:
                try:
                    callback(*args)
                except Exception as e:
                    logger_get().error(f"Error in '{name}' event callback: {e}")
                    raise
