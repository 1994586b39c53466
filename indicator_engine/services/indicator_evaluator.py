"""
Indicator evaluation: binding report parameters, counting cohorts, caching.

Key patterns:
- Context-managed sessions: a cohort cache lives exactly as long as one
  report run and is cleared when the session closes, so a run can never see
  cohorts computed for another reporting period
- Structured concurrency with asyncio.TaskGroup; every worker gets its own
  session and every outcome is an IndicatorOutcome, so one failing indicator
  never affects the others
"""

import asyncio
import time
import uuid
from collections.abc import Hashable, Iterable, Iterator
from contextlib import contextmanager

import structlog

from indicator_engine.config import EvaluationConfig
from indicator_engine.domain.models import (
    Cohort,
    IndicatorDefinition,
    ParameterBinding,
    canonical_binding,
)
from indicator_engine.exceptions import (
    IndicatorEngineError,
    MissingParameterError,
    NotFoundError,
    ProviderFailure,
)
from indicator_engine.services.cohort_evaluator import CohortEvaluator, QueryProvider
from indicator_engine.services.indicator_library import IndicatorLibrary
from indicator_engine.services.outcome import IndicatorOutcome

logger = structlog.get_logger(__name__)

IndicatorRef = IndicatorDefinition | str

CacheKey = tuple[str, tuple[tuple[str, Hashable], ...]]


class SessionStats:
    """Cache counters for one session."""

    def __init__(self) -> None:
        self.hits = 0
        self.misses = 0

    @property
    def evaluations(self) -> int:
        return self.hits + self.misses

    def __repr__(self) -> str:
        return f"SessionStats(hits={self.hits}, misses={self.misses})"


class EvaluationSession:
    """
    One report run. Not thread-safe: each worker uses its own session.

    Obtain through :meth:`IndicatorEvaluator.session`, which closes it on exit.
    """

    def __init__(self, evaluator: "IndicatorEvaluator", use_cache: bool = True) -> None:
        self.evaluator = evaluator
        self.use_cache = use_cache
        self.session_id = uuid.uuid4().hex[:12]
        self.stats = SessionStats()
        self._cache: dict[CacheKey, Cohort] = {}
        self._is_open = True
        self.logger = evaluator.logger.bind(session_id=self.session_id)

    @property
    def is_open(self) -> bool:
        return self._is_open

    def cohort(self, indicator: IndicatorRef, binding: ParameterBinding) -> Cohort:
        """Patients counted by ``indicator`` under ``binding``, memoized per session.

        Entries are keyed by indicator name, so two different definitions
        sharing a name also share a cache entry within one session.
        """
        if not self._is_open:
            raise RuntimeError("Evaluation session is closed - use IndicatorEvaluator.session()")

        definition = self.evaluator.resolve(indicator)
        self.evaluator.check_binding(definition, binding)

        if not self.use_cache:
            return self.evaluator.evaluate_cohort(definition, binding)

        # Only the parameters the indicator uses take part in the key
        key = (definition.name, canonical_binding(binding, definition.required_parameters))
        cached = self._cache.get(key)
        if cached is not None:
            self.stats.hits += 1
            self.logger.debug("cohort_cache_hit", indicator=definition.name)
            return cached

        cohort = self.evaluator.evaluate_cohort(definition, binding)
        self._cache[key] = cohort
        self.stats.misses += 1
        return cohort

    def evaluate(self, indicator: IndicatorRef, binding: ParameterBinding) -> int:
        return len(self.cohort(indicator, binding))

    def close(self) -> None:
        self._cache.clear()
        self._is_open = False
        self.logger.info(
            "evaluation_session_closed", cache_hits=self.stats.hits, cache_misses=self.stats.misses
        )


class IndicatorEvaluator:
    """
    Binds report parameters into indicator definitions and reduces cohorts to counts.

    Indicators can be passed as definitions or, when a library is attached,
    by name.
    """

    def __init__(
        self,
        provider: QueryProvider,
        library: IndicatorLibrary | None = None,
        config: EvaluationConfig | None = None,
        cohort_evaluator: CohortEvaluator | None = None,
    ) -> None:
        self.provider = provider
        self.library = library
        self.config = config or EvaluationConfig()
        self.cohort_evaluator = cohort_evaluator or CohortEvaluator()
        self.logger = logger.bind(component="indicator_evaluator")

    def resolve(self, indicator: IndicatorRef) -> IndicatorDefinition:
        if isinstance(indicator, IndicatorDefinition):
            return indicator
        if self.library is None:
            raise NotFoundError(indicator)
        return self.library.get(indicator)

    def check_binding(self, definition: IndicatorDefinition, binding: ParameterBinding) -> None:
        """Raise MissingParameterError unless ``binding`` covers every required parameter."""
        missing = definition.missing_parameters(binding)
        if missing:
            self.logger.warning(
                "indicator_binding_incomplete", indicator=definition.name, missing=sorted(missing)
            )
            raise MissingParameterError(missing, indicator_name=definition.name)

    def evaluate_cohort(self, definition: IndicatorDefinition, binding: ParameterBinding) -> Cohort:
        start_time = time.perf_counter()
        cohort = self.cohort_evaluator.evaluate(definition.expression, binding, self.provider)
        self.logger.info(
            "indicator_evaluated",
            indicator=definition.name,
            count=len(cohort),
            duration_seconds=round(time.perf_counter() - start_time, 4),
        )
        return cohort

    def cohort(self, indicator: IndicatorRef, binding: ParameterBinding) -> Cohort:
        """Uncached cohort for one indicator."""
        definition = self.resolve(indicator)
        self.check_binding(definition, binding)
        return self.evaluate_cohort(definition, binding)

    def evaluate(self, indicator: IndicatorRef, binding: ParameterBinding) -> int:
        """
        Count of patients for ``indicator`` under ``binding``.

        Raises:
            MissingParameterError: If the binding lacks a required parameter
            NotFoundError: If the indicator name is unknown
            ProviderFailure: If the query provider fails
        """
        return len(self.cohort(indicator, binding))

    @contextmanager
    def session(self, use_cache: bool | None = None) -> Iterator[EvaluationSession]:
        """
        Scope a cohort cache to one report run.

        Pattern: the cache is created on entry and discarded on exit, even
        if evaluation raises.
        """
        session = EvaluationSession(
            self, use_cache=self.config.enable_cache if use_cache is None else use_cache
        )
        session.logger.info("evaluation_session_started", cache_enabled=session.use_cache)
        try:
            yield session
        finally:
            session.close()

    def _evaluate_in_own_session(self, indicator: IndicatorRef, binding: ParameterBinding) -> int:
        with self.session() as session:
            return session.evaluate(indicator, binding)

    async def evaluate_all(
        self,
        binding: ParameterBinding,
        indicators: Iterable[IndicatorRef] | None = None,
        timeout_seconds: float | None = None,
    ) -> dict[str, IndicatorOutcome]:
        """
        Evaluate several indicators concurrently.

        Each indicator runs in a worker thread with its own session. A
        timeout is reported as a ProviderFailure for that indicator only.
        A timed-out worker keeps its concurrency slot until its thread
        returns, so the provider never sees more than
        ``max_concurrent_evaluations`` evaluations at once.

        Args:
            binding: Report parameters shared by all indicators
            indicators: Names or definitions; defaults to the whole library
            timeout_seconds: Per-indicator timeout; defaults to config

        Returns:
            Mapping of indicator name to its outcome, in input order

        Raises:
            ValueError: If no indicators can be determined, the same name
                appears twice, or the timeout is not positive
        """
        if indicators is None:
            if self.library is None:
                raise ValueError("No indicators given and no library attached")
            indicators = self.library.list_names()

        batch: dict[str, IndicatorRef] = {}
        duplicates: set[str] = set()
        for indicator in indicators:
            name = _indicator_name(indicator)
            if name in batch:
                duplicates.add(name)
            batch[name] = indicator
        if duplicates:
            raise ValueError(f"Duplicate indicators in batch: {', '.join(sorted(duplicates))}")

        timeout = (
            self.config.provider_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        if timeout <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout}")

        loop = asyncio.get_running_loop()
        semaphore = asyncio.Semaphore(self.config.max_concurrent_evaluations)

        async def run_one(name: str, indicator: IndicatorRef) -> IndicatorOutcome:
            await semaphore.acquire()
            try:
                worker = loop.run_in_executor(
                    None, self._evaluate_in_own_session, indicator, binding
                )
            except BaseException:
                semaphore.release()
                raise
            # Slot is freed when the thread returns, not when we stop waiting
            worker.add_done_callback(lambda _: semaphore.release())

            start_time = time.perf_counter()
            try:
                count = await asyncio.wait_for(asyncio.shield(worker), timeout=timeout)
                return IndicatorOutcome.success(name, count, time.perf_counter() - start_time)
            except TimeoutError as e:
                self.logger.warning(
                    "indicator_evaluation_timeout", indicator=name, timeout_seconds=timeout
                )
                worker.add_done_callback(lambda done: self._log_abandoned(name, done))
                return IndicatorOutcome.failure(
                    name, ProviderFailure(None, e), time.perf_counter() - start_time
                )
            except IndicatorEngineError as e:
                return IndicatorOutcome.failure(name, e, time.perf_counter() - start_time)

        start_time = time.perf_counter()
        async with asyncio.TaskGroup() as task_group:
            tasks = {
                name: task_group.create_task(run_one(name, indicator))
                for name, indicator in batch.items()
            }

        results = {name: task.result() for name, task in tasks.items()}
        self.logger.info(
            "indicator_batch_completed",
            total=len(results),
            failed=sum(1 for r in results.values() if not r.ok),
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return results

    def _log_abandoned(self, name: str, worker: "asyncio.Future[int]") -> None:
        error = None if worker.cancelled() else worker.exception()
        self.logger.info(
            "timed_out_evaluation_finished",
            indicator=name,
            error=None if error is None else str(error),
        )


def _indicator_name(indicator: IndicatorRef) -> str:
    return indicator if isinstance(indicator, str) else indicator.name
