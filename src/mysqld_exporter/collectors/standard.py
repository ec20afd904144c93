"""Adapters running prometheus_client's process and runtime collectors as scrapers."""

import logging
from typing import Iterable

from prometheus_client import GC_COLLECTOR, PLATFORM_COLLECTOR, PROCESS_COLLECTOR
from prometheus_client.core import Metric
from prometheus_client.registry import Collector

from mysqld_exporter.metrics import MetricDescriptor, MetricSink, ValueKind
from mysqld_exporter.scraper import ScrapeContext, Scraper

FAMILY_KINDS = {
    'gauge': ValueKind.GAUGE,
    'counter': ValueKind.COUNTER,
    'info': ValueKind.GAUGE,
}

def forward_families(families: Iterable[Metric], sink: MetricSink) -> int:
    """Write the value samples of client library families to the sink.

    Only the sample carrying the family's value is forwarded; derived
    samples such as _created are dropped. Returns the number written.
    """
    written = 0
    for family in families:
        kind = FAMILY_KINDS.get(family.type, ValueKind.UNTYPED)
        value_names = {family.name, f"{family.name}_total", f"{family.name}_info"}
        for sample in family.samples:
            if sample.name not in value_names:
                continue
            labels = tuple(sorted(sample.labels))
            desc = MetricDescriptor(
                name=sample.name if family.type == 'info' else family.name,
                help=family.documentation,
                variable_labels=labels,
                kind=kind,
            )
            sink.send(desc.sample(sample.value, *(sample.labels[key] for key in labels)))
            written += 1
    return written

class StandardScraper(Scraper):
    """Scraper forwarding the samples of client library collectors.

    The instance is ignored; these collectors describe the exporter process.
    """

    collectors: Iterable[Collector] = ()

    def scrape(
        self,
        ctx: ScrapeContext,
        instance,
        sink: MetricSink,
        logger: logging.Logger
    ) -> None:
        for collector in self.collectors:
            ctx.check()
            forward_families(collector.collect(), sink)

class StandardProcess(StandardScraper):
    name = 'standard.process'
    help = "Collect exporter process metrics"
    collectors = (PROCESS_COLLECTOR,)

class StandardPython(StandardScraper):
    name = 'standard.python'
    help = "Collect exporter Python runtime metrics"
    collectors = (PLATFORM_COLLECTOR, GC_COLLECTOR)
