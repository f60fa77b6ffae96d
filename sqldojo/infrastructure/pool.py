"""
Instance pool for sqldojo.

Keeps a per-schema LIFO stack of idle engine instances under a process-wide
ceiling. Reused instances are reset and reseeded before being handed out, so
every acquire returns a freshly seeded database.

Bookkeeping is guarded by a threading.Lock that is only held around
synchronous updates, never across an await. The invariant

    sum(idle) + checked_out + being_created == total_instances <= max_total_instances

holds whenever the lock is released.
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Union

from sqldojo.catalog.seeds import get_seed, resolve_schema
from sqldojo.config import Settings, get_settings
from sqldojo.domain.models import PoolStats, SchemaId
from sqldojo.errors import PoolExhaustedError
from sqldojo.infrastructure.engine import EngineInstance, create_engine
from sqldojo.utils.logging import get_logger

log = get_logger(__name__)

EngineFactory = Callable[[], Awaitable[EngineInstance]]
SeedLookup = Callable[[SchemaId], str]


class InstancePool:
    """
    Bounded pool of embedded engine instances keyed by schema.

    Parameters
    ----------
    engine_factory : callable
        Coroutine function returning a new, empty EngineInstance.
    max_pool_size : int
        Maximum idle instances kept per schema.
    max_total_instances : int
        Ceiling on live instances (idle + checked out) across all schemas.
    seed_lookup : callable
        Returns the seed script for a schema id.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        max_pool_size: int = 2,
        max_total_instances: int = 10,
        seed_lookup: SeedLookup = get_seed,
    ) -> None:
        if max_pool_size < 0:
            raise ValueError("max_pool_size must be >= 0")
        if max_total_instances < 1:
            raise ValueError("max_total_instances must be >= 1")
        self._factory = engine_factory
        self._seed_lookup = seed_lookup
        self.max_pool_size = max_pool_size
        self.max_total_instances = max_total_instances
        self._idle: Dict[SchemaId, List[EngineInstance]] = {}
        self._checked_out: Dict[int, EngineInstance] = {}
        # Checked out when the pool was drained
        self._orphaned: Dict[int, EngineInstance] = {}
        self._total = 0
        self._generation = 0
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "InstancePool":
        """Build a pool of DuckDB instances configured from settings."""
        settings = settings or get_settings()

        async def factory() -> EngineInstance:
            return await create_engine(settings)

        return cls(
            engine_factory=factory,
            max_pool_size=settings.pool_max_per_schema,
            max_total_instances=settings.pool_max_total,
        )

    @property
    def total_instances(self) -> int:
        return self._total

    async def _close_quietly(self, instance: EngineInstance, reason: str) -> None:
        try:
            await instance.close()
        except Exception:  # noqa: BLE001 - close failures must not mask outcomes
            log.exception(
                "Failed to close engine instance",
                extra={"schema_id": str(instance.schema_id), "reason": reason},
            )

    async def acquire(self, schema_id: Union[SchemaId, str]) -> EngineInstance:
        """
        Check out a freshly seeded instance for ``schema_id``.

        Raises
        ------
        UnknownSchemaError
            If ``schema_id`` is not in the seed catalog.
        PoolExhaustedError
            If no idle instance exists and the ceiling is reached.
        ExecutionError
            If creating, resetting or seeding the instance fails. The instance
            is closed and its slot freed first.
        """
        schema = resolve_schema(schema_id)
        script = self._seed_lookup(schema)

        with self._lock:
            generation = self._generation
            stack = self._idle.get(schema)
            instance: Optional[EngineInstance] = stack.pop() if stack else None
            if instance is None:
                if self._total >= self.max_total_instances:
                    exhausted = PoolExhaustedError(self._total, self.max_total_instances)
                else:
                    exhausted = None
                    # Reserve before awaiting so concurrent acquires cannot overshoot
                    self._total += 1
            else:
                exhausted = None
                self._checked_out[id(instance)] = instance

        if exhausted is not None:
            log.warning(
                "Instance pool exhausted",
                extra={"schema_id": str(schema), "total_instances": exhausted.total_instances},
            )
            raise exhausted

        if instance is not None:
            try:
                await instance.reset()
                await instance.seed(schema, script)
            except BaseException:
                with self._lock:
                    if self._checked_out.pop(id(instance), None) is not None:
                        self._total -= 1
                    else:
                        self._orphaned.pop(id(instance), None)
                await self._close_quietly(instance, "reuse failed")
                raise
            log.debug("Reused engine instance", extra={"schema_id": str(schema)})
            return instance

        created: Optional[EngineInstance] = None
        try:
            created = await self._factory()
            await created.seed(schema, script)
        except BaseException:
            with self._lock:
                if self._generation == generation:
                    self._total -= 1
            if created is not None:
                await self._close_quietly(created, "seed failed")
            raise
        with self._lock:
            if self._generation == generation:
                self._checked_out[id(created)] = created
            else:
                # Reserved before a drain; the slot no longer exists
                self._orphaned[id(created)] = created
        log.info(
            "Created engine instance",
            extra={"schema_id": str(schema), "total_instances": self._total},
        )
        return created

    async def release(self, schema_id: Union[SchemaId, str], instance: EngineInstance) -> None:
        """
        Return a checked-out instance.

        Releasing an instance that is not checked out is logged and ignored.
        Broken instances, and instances beyond the per-schema idle limit, are
        closed and their slot is freed. Close failures are logged, never raised.
        """
        schema = resolve_schema(schema_id)
        with self._lock:
            orphaned = self._orphaned.pop(id(instance), None) is not None
            if self._checked_out.pop(id(instance), None) is None:
                owned = False
                keep = False
            else:
                owned = True
                stack = self._idle.setdefault(schema, [])
                keep = not instance.broken and len(stack) < self.max_pool_size
                if keep:
                    stack.append(instance)
                else:
                    self._total -= 1

        if orphaned:
            await self._close_quietly(instance, "released after drain")
            return
        if not owned:
            log.warning("Ignoring release of an instance that is not checked out")
            return
        if keep:
            return
        reason = "broken" if instance.broken else "idle limit reached"
        log.info("Evicting engine instance", extra={"schema_id": str(schema), "reason": reason})
        await self._close_quietly(instance, reason)

    @asynccontextmanager
    async def instance(self, schema_id: Union[SchemaId, str]) -> AsyncIterator[EngineInstance]:
        """Acquire an instance for the duration of the block and always release it."""
        acquired = await self.acquire(schema_id)
        try:
            yield acquired
        finally:
            await self.release(schema_id, acquired)

    async def drain_all(self) -> None:
        """
        Close every idle instance and reset the counters.

        Checked-out instances are not awaited. They no longer count against the
        ceiling and are closed when their holder releases them.
        """
        with self._lock:
            idle = [inst for stack in self._idle.values() for inst in stack]
            self._idle.clear()
            dropped = len(self._checked_out)
            self._orphaned.update(self._checked_out)
            self._checked_out.clear()
            self._total = 0
            self._generation += 1
        for inst in idle:
            await self._close_quietly(inst, "drain")
        log.info("Drained instance pool", extra={"closed": len(idle), "checked_out_dropped": dropped})

    def stats(self) -> PoolStats:
        with self._lock:
            return PoolStats(
                total_instances=self._total,
                max_total_instances=self.max_total_instances,
                max_pool_size=self.max_pool_size,
                checked_out=len(self._checked_out),
                idle={str(schema): len(stack) for schema, stack in self._idle.items()},
            )


__all__ = ["InstancePool", "EngineFactory", "SeedLookup"]
