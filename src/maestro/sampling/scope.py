"""Scope cache for sampled parameter values.

Values sampled with ``per_block`` scope are reused until the active block
changes; ``per_session`` values until the session changes. ``per_trial``
values are never cached.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Hashable, Optional, Union

from ..exceptions import InvalidConfig
from .models import Scope

__all__ = ["ScopeCache"]

logger = logging.getLogger(__name__)


class ScopeCache:
    """Mapping (parameter name, scope) -> sampled value.

    Example:
        >>> cache = ScopeCache()
        >>> cache.set_context("block", 1)
        >>> cache.get_or_sample("iti", "per_block", lambda: 600.0)
        600.0
        >>> cache.get_or_sample("iti", "per_block", lambda: 900.0)
        600.0
    """

    def __init__(self) -> None:
        self._block_id: Optional[Hashable] = None
        self._session_id: Optional[Hashable] = None
        self._block_cache: Dict[str, Any] = {}
        self._session_cache: Dict[str, Any] = {}

    @property
    def block_id(self) -> Optional[Hashable]:
        return self._block_id

    @property
    def session_id(self) -> Optional[Hashable]:
        return self._session_id

    def set_context(self, level: str, context_id: Hashable) -> None:
        """Activate a block or session.

        A block id different from the current one clears the block cache.
        Setting a session clears both caches and the block id.

        Raises:
            InvalidConfig: level is not 'block' or 'session'
        """
        if level == "block":
            if context_id != self._block_id:
                self.clear_block()
                logger.debug(f"Block context {self._block_id!r} -> {context_id!r}; block cache cleared")
            self._block_id = context_id
        elif level == "session":
            self.clear()
            self._block_id = None
            self._session_id = context_id
            logger.debug(f"Session context set to {context_id!r}; all caches cleared")
        else:
            raise InvalidConfig(f"Unknown scope context level {level!r} (expected 'block' or 'session')")

    def get_or_sample(self, name: str, scope: Union[Scope, str], sample_fn: Callable[[], Any]) -> Any:
        """Return the cached value for ``name`` in ``scope`` or sample a new one.

        Raises:
            InvalidConfig: Unknown scope
        """
        try:
            scope = Scope(scope)
        except ValueError:
            raise InvalidConfig(f"Invalid scope {scope!r} for '{name}' (expected per_trial, per_block or per_session)")

        if scope is Scope.PER_TRIAL:
            return sample_fn()

        cache = self._block_cache if scope is Scope.PER_BLOCK else self._session_cache
        if name not in cache:
            cache[name] = sample_fn()
        return cache[name]

    def clear_block(self) -> None:
        self._block_cache.clear()

    def clear(self) -> None:
        self._block_cache.clear()
        self._session_cache.clear()

    def cached_values(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of cached values for logging and provenance."""
        return {
            Scope.PER_BLOCK.value: dict(self._block_cache),
            Scope.PER_SESSION.value: dict(self._session_cache),
        }
