"""
Parallel population evaluation.

Every unscored genome is rendered and scored on a worker thread. Workers do
not touch the population: each returns a private score which the calling
thread merges into the genome's slot once the future completes. Scores
therefore never depend on worker scheduling.
"""

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Dict, Optional
import logging
import os
import time

import numpy as np

from .errors import EvaluationFailure
from .fitness import FitnessEvaluator
from .population import Population
from .synthesis import ISynthesizer

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.05


@dataclass
class EvaluationReport:
    """Counters for one evaluation pass over a population."""
    rendered: int = 0
    cached: int = 0
    failures: int = 0
    timeouts: int = 0
    elapsed: float = 0.0


class PopulationEvaluator:
    """
    Renders and scores populations on a thread pool.

    A render that throws, returns an unusable waveform, or runs longer than
    ``timeout`` seconds counts as a failure and its genome gets the worst
    score. Timed-out renders are abandoned rather than awaited; the pool is
    replaced so queued genomes are not starved by stuck workers.

    Threads cannot be killed. A render that never returns keeps its worker
    thread for the life of the process, so stuck threads accumulate across
    generations. Interpreter exit also blocks on them, since
    ``concurrent.futures`` joins its workers at shutdown. Synthesizers that
    can hang must enforce a hard limit themselves, for example by rendering
    in their own subprocess and killing it.
    """

    def __init__(self, synthesizer: ISynthesizer,
                 fitness_evaluator: FitnessEvaluator,
                 max_workers: Optional[int] = None,
                 timeout: Optional[float] = None,
                 poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.synthesizer = synthesizer
        self.fitness_evaluator = fitness_evaluator
        self.max_workers = max_workers or os.cpu_count() or 1
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self) -> None:
        self._retire_executor()

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                                thread_name_prefix="ga-synth-eval")
        return self._executor

    def _retire_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def _render_and_score(self, index: int, genome: np.ndarray, started: Dict[int, float]) -> float:
        started[index] = time.monotonic()
        try:
            waveform = self.synthesizer.render(genome)
        except Exception as e:
            raise EvaluationFailure(f"Render failed: {type(e).__name__}: {e}", index) from e
        return self.fitness_evaluator.score(waveform)

    def _submit(self, index: int, genome: np.ndarray, started: Dict[int, float]) -> Future:
        return self._get_executor().submit(self._render_and_score, index, genome, started)

    def evaluate(self, population: Population) -> EvaluationReport:
        """
        Score every unscored slot of ``population``.

        Returns:
            EvaluationReport with render, cache and failure counts
        """
        start_time = time.time()
        report = EvaluationReport()
        evaluator = self.fitness_evaluator

        to_render = []
        for i in population.unscored_indices():
            cached = evaluator.lookup(population.genomes[i])
            if cached is not None:
                population.set_score(i, cached)
                report.cached += 1
            else:
                to_render.append(i)

        if not to_render:
            report.elapsed = time.time() - start_time
            return report

        started: Dict[int, float] = {}
        futures: Dict[Future, int] = {}
        for i in to_render:
            futures[self._submit(i, population.genome(i), started)] = i

        results: Dict[int, Optional[float]] = {}
        pending = set(futures)

        while pending:
            wait_timeout = self.poll_interval if self.timeout is not None else None
            done, pending = wait(pending, timeout=wait_timeout, return_when=FIRST_COMPLETED)

            for future in done:
                index = futures[future]
                try:
                    results[index] = future.result()
                except EvaluationFailure as e:
                    logger.warning(f"Genome {index} failed evaluation: {e}")
                    results[index] = None
                except Exception as e:
                    logger.warning(f"Genome {index} failed evaluation: {type(e).__name__}: {e}")
                    results[index] = None

            if self.timeout is not None and pending:
                pending = self._expire(pending, futures, started, results, report, population)

        for index in sorted(results):
            score = results[index]
            if score is None:
                population.set_score(index, evaluator.worst)
                report.failures += 1
            else:
                population.set_score(index, score)
                evaluator.store(population.genomes[index], score)
                logger.debug(f"Genome {index}: fitness = {score:.6g}")
            report.rendered += 1

        report.elapsed = time.time() - start_time
        return report

    def _expire(self, pending, futures, started, results, report, population):
        """Abandon renders that have run past the timeout."""
        now = time.monotonic()
        expired = [f for f in pending
                   if futures[f] in started and now - started[futures[f]] > self.timeout]
        if not expired:
            return pending

        for future in expired:
            index = futures[future]
            pending.discard(future)
            future.cancel()
            results[index] = None
            report.timeouts += 1
            logger.warning(f"Genome {index} timed out after {self.timeout}s")

        # Stuck workers keep their threads; move queued work to a fresh pool.
        self._retire_executor()
        for future in list(pending):
            index = futures[future]
            if index not in started and future.cancel():
                pending.discard(future)
                del futures[future]
                replacement = self._submit(index, population.genome(index), started)
                futures[replacement] = index
                pending.add(replacement)

        return pending
