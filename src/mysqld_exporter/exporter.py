"""Per-scrape orchestration of the enabled collectors."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Collection, Iterator, List, Optional, Sequence

from prometheus_client.core import Metric

from mysqld_exporter.config import ExporterConfig
from mysqld_exporter.errors import (
    InstanceError, ScrapeCancelledError, SinkClosedError, UnknownCollectorError
)
from mysqld_exporter.instance import Instance, InstanceManager, is_feature_absent
from mysqld_exporter.logger import collector_logger
from mysqld_exporter.metrics import FamilyBuilder, MetricSink, ValueKind, new_desc
from mysqld_exporter.registry import Registry
from mysqld_exporter.scraper import ScrapeContext, Scraper

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Meta Metrics
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

UP_DESC = new_desc(
    '', 'up',
    "Whether the MySQL server is up.",
    kind=ValueKind.GAUGE,
)
SCRAPE_DURATION_DESC = new_desc(
    'scrape', 'collector_duration_seconds',
    "Collector time duration.",
    ('collector',), ValueKind.GAUGE,
)
SCRAPE_SUCCESS_DESC = new_desc(
    'scrape', 'collector_success',
    "mysqld_exporter: Whether a collector succeeded.",
    ('collector',), ValueKind.GAUGE,
)

class ScraperTask:
    """One collector run within a scrape.

    finish() emits the duration and success meta-samples exactly once,
    whether the collector returns or the deadline fires first.
    """

    def __init__(self, scraper: Scraper):
        self.scraper = scraper
        self.started = time.monotonic()
        self._lock = threading.Lock()
        self._finished = False

    @property
    def name(self) -> str:
        return self.scraper.name

    def finish(self, sink: MetricSink, success: bool, logger: logging.Logger) -> bool:
        """Emit meta-samples; False if the task was already finished."""
        with self._lock:
            if self._finished:
                return False
            self._finished = True

        duration = time.monotonic() - self.started
        try:
            sink.send(SCRAPE_DURATION_DESC.sample(duration, self.name))
            sink.send(SCRAPE_SUCCESS_DESC.sample(1.0 if success else 0.0, self.name))
        except SinkClosedError:
            logger.debug(f"Sink closed before meta-samples of {self.name} were written")
        return True

#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~
# Orchestrator
#-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~-+-~

class Exporter:
    """Runs collectors against one instance per scrape request."""

    def __init__(
        self,
        registry: Registry,
        instances: InstanceManager,
        config: ExporterConfig,
        logger: logging.Logger
    ):
        self.registry = registry
        self.instances = instances
        self.config = config
        self.logger = logger

    def resolve_scrapers(
        self,
        collect: Optional[Sequence[str]] = None,
        allowed: Optional[Collection[str]] = None
    ) -> List[Scraper]:
        """Collectors to run for a request.

        Without a selection the enabled collectors run. A selection runs
        exactly the named collectors, disabled ones included. allowed
        narrows both to the collectors of one resolution.

        Raises:
            UnknownCollectorError: If a name is unknown or not selectable
        """
        names = [name for name in (collect or ()) if name]
        if not names:
            return [
                scraper for scraper in self.registry.enabled_scrapers()
                if allowed is None or scraper.name in allowed
            ]

        selectable = self.config.selectable_collectors
        scrapers = []
        for name in dict.fromkeys(names):
            scraper = self.registry.lookup(name)
            if (
                scraper is None
                or (selectable is not None and name not in selectable)
                or (allowed is not None and name not in allowed)
            ):
                raise UnknownCollectorError(f"Unknown collector: {name}")
            scrapers.append(scraper)
        return scrapers

    def scrape(
        self,
        ctx: ScrapeContext,
        sink: MetricSink,
        scrapers: Sequence[Scraper],
        target: Optional[str] = None
    ) -> bool:
        """Emit up and run eligible collectors until done or the deadline.

        Returns:
            True if the instance was reachable
        """
        try:
            instance = self.instances.acquire(ctx, target)
        except (InstanceError, ScrapeCancelledError) as e:
            self.logger.error(f"Error opening connection to database: {e}")
            sink.send(UP_DESC.sample(0.0))
            return False

        try:
            sink.send(UP_DESC.sample(1.0))
            eligible = self._eligible(instance, scrapers)
            self._run_scrapers(ctx, instance, sink, eligible)
        finally:
            self.instances.release(instance)
        return True

    def _eligible(self, instance: Instance, scrapers: Sequence[Scraper]) -> List[Scraper]:
        eligible = []
        for scraper in scrapers:
            if instance.supports(scraper.version):
                eligible.append(scraper)
            else:
                self.logger.debug(
                    f"Skipping collector {scraper.name}: requires version "
                    f"{scraper.min_version}, server is {instance.version}"
                )
        return eligible

    def _run_scrapers(
        self,
        ctx: ScrapeContext,
        instance: Instance,
        sink: MetricSink,
        scrapers: Sequence[Scraper]
    ) -> None:
        if not scrapers:
            return

        executor = ThreadPoolExecutor(max_workers=len(scrapers), thread_name_prefix='collector')
        try:
            tasks = {}
            for scraper in scrapers:
                task = ScraperTask(scraper)
                future = executor.submit(self._run_task, ctx, instance, sink, task)
                tasks[future] = task

            _, pending = wait(tasks, timeout=ctx.remaining())
            if pending:
                ctx.cancel("deadline exceeded")
                for future in pending:
                    task = tasks[future]
                    if task.finish(sink, False, self.logger):
                        self.logger.warning(
                            f"Collector {task.name} did not finish before the scrape deadline"
                        )
        finally:
            # Running collectors are left to drain on their own
            executor.shutdown(wait=False, cancel_futures=True)

    def _run_task(
        self,
        ctx: ScrapeContext,
        instance: Instance,
        sink: MetricSink,
        task: ScraperTask
    ) -> None:
        logger = collector_logger(self.logger, task.name)
        success = False
        try:
            task.scraper.scrape(ctx, instance, sink, logger)
            success = True
        except SinkClosedError:
            logger.debug(f"Sink closed while collector {task.name} was running")
        except ScrapeCancelledError as e:
            logger.warning(f"Collector {task.name} cancelled: {e}")
        except Exception as e:
            if is_feature_absent(e):
                logger.debug(f"Collector {task.name} cannot read its source: {e}")
            else:
                logger.warning(f"Error from collector {task.name}: {e}", exc_info=logger.isEnabledFor(logging.DEBUG))
        finally:
            task.finish(sink, success, self.logger)

    def collect_families(
        self,
        ctx: ScrapeContext,
        scrapers: Sequence[Scraper],
        target: Optional[str] = None
    ) -> List[Metric]:
        """Run a scrape and group its samples into metric families.

        The scrape runs on a dispatcher thread while this thread drains the
        sink, so collectors never block on a full sink. The context is
        cancelled on return, which stops its deadline timer and interrupts
        queries of collectors that outlived the deadline.
        """
        sink = MetricSink()
        builder = FamilyBuilder(self.logger)
        errors: List[BaseException] = []

        def dispatch() -> None:
            try:
                self.scrape(ctx, sink, scrapers, target)
            except BaseException as e:
                errors.append(e)
            finally:
                sink.close()

        try:
            dispatcher = threading.Thread(target=dispatch, name='ScrapeDispatcher', daemon=True)
            dispatcher.start()
            for sample in sink:
                builder.add(sample)
            dispatcher.join()
        finally:
            ctx.cancel("scrape finished")

        if errors:
            raise errors[0]
        return builder.families()

class ScrapeCollector:
    """prometheus_client collector running one scrape per collect()."""

    def __init__(
        self,
        exporter: Exporter,
        ctx: ScrapeContext,
        scrapers: Sequence[Scraper],
        target: Optional[str] = None
    ):
        self.exporter = exporter
        self.ctx = ctx
        self.scrapers = list(scrapers)
        self.target = target

    def collect(self) -> Iterator[Metric]:
        yield from self.exporter.collect_families(self.ctx, self.scrapers, self.target)
