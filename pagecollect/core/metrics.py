"""
Prometheus metrics for the collection pipeline
"""
from prometheus_client import Counter, Histogram


events_collected_counter = Counter(
    'collect_events_total',
    'Events built and handed to the dispatcher',
    ['event_type', 'entry_point']
)

events_skipped_counter = Counter(
    'collect_events_skipped_total',
    'Requests the classifier decided not to track'
)

destination_deliveries_counter = Counter(
    'collect_destination_deliveries_total',
    'Destination send attempts by outcome',
    ['destination', 'outcome']
)

enrichment_failures_counter = Counter(
    'collect_enrichment_failures_total',
    'Enrichment hook invocations that raised'
)

remote_call_latency = Histogram(
    'collect_remote_call_seconds',
    'Latency of outbound destination HTTP calls',
    ['method'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0]
)
