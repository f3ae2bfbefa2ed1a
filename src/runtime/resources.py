"""
Explicit resource registry.

Components that hold native handles (capture devices, inference sessions,
worker threads) are registered once in main and released in priority order.
The registry is passed by reference through RuntimeContext; there is no
module-level instance.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional


class ResourcePriority(IntEnum):
    """Release order: LOW first, CRITICAL last."""
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


@dataclass
class ManagedResource:
    name: str
    resource: Any
    priority: ResourcePriority
    release: Callable[[], None]
    created_at: float = field(default_factory=time.time)
    order: int = 0


def _default_release(resource: Any) -> Callable[[], None]:
    for method in ("dispose", "close", "release"):
        fn = getattr(resource, method, None)
        if callable(fn):
            return fn
    raise TypeError(f"{type(resource).__name__} has no dispose(), close() or release() method")


class ResourceRegistry:
    """
    Tracks releasable resources by name and priority.

    Example:
        registry = ResourceRegistry()
        registry.register("source", source, ResourcePriority.LOW)
        registry.register("scheduler", scheduler, ResourcePriority.HIGH)
        registry.close_all()  # source first, then scheduler
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._resources: Dict[str, ManagedResource] = {}
        self._counter = 0
        self.total_registered = 0
        self.total_released = 0
        self.release_failures = 0

    def register(
        self,
        name: str,
        resource: Any,
        priority: ResourcePriority = ResourcePriority.NORMAL,
        on_release: Optional[Callable[[], None]] = None,
    ) -> Any:
        """
        Register a resource and return it.

        The resource is released with `on_release` when given, otherwise with
        its dispose(), close() or release() method. Registering a name twice
        releases the previous resource first.
        """
        release = on_release or _default_release(resource)
        with self._lock:
            previous = self._resources.pop(name, None)
            self._counter += 1
            self._resources[name] = ManagedResource(
                name=name,
                resource=resource,
                priority=ResourcePriority(priority),
                release=release,
                order=self._counter,
            )
            self.total_registered += 1
        if previous is not None:
            logging.warning(f"Resource '{name}' re-registered; releasing previous instance")
            self._release(previous)
        logging.debug(f"Registered resource: {name} (priority={ResourcePriority(priority).name})")
        return resource

    def unregister(self, name: str, release: bool = True) -> bool:
        """Remove a resource, releasing it unless release=False. Returns False if unknown."""
        with self._lock:
            managed = self._resources.pop(name, None)
        if managed is None:
            logging.warning(f"Resource not found: {name}")
            return False
        if release:
            self._release(managed)
        return True

    def get(self, name: str) -> Optional[Any]:
        with self._lock:
            managed = self._resources.get(name)
        return managed.resource if managed else None

    def evict(self, up_to_priority: ResourcePriority = ResourcePriority.LOW) -> List[str]:
        """
        Release every resource at or below `up_to_priority`, lowest first.

        Returns:
            Names of the released resources in release order.
        """
        with self._lock:
            victims = sorted(
                (m for m in self._resources.values() if m.priority <= up_to_priority),
                key=lambda m: (m.priority, -m.order),
            )
            for m in victims:
                del self._resources[m.name]
        for m in victims:
            self._release(m)
        if victims:
            logging.info(f"Evicted {len(victims)} resources up to priority {ResourcePriority(up_to_priority).name}")
        return [m.name for m in victims]

    def close_all(self) -> List[str]:
        """Release everything: ascending priority, most recent first within a priority."""
        return self.evict(ResourcePriority.CRITICAL)

    def _release(self, managed: ManagedResource) -> None:
        try:
            managed.release()
            self.total_released += 1
            logging.debug(f"Released resource: {managed.name}")
        except Exception as e:
            self.release_failures += 1
            logging.warning(f"Error releasing resource '{managed.name}': {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._resources)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._resources

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            by_priority = {p.name: 0 for p in ResourcePriority}
            for m in self._resources.values():
                by_priority[m.priority.name] += 1
            return {
                "active": len(self._resources),
                "by_priority": by_priority,
                "total_registered": self.total_registered,
                "total_released": self.total_released,
                "release_failures": self.release_failures,
            }
