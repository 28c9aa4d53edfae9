"""Publishes collected domain events to the structured log."""

import structlog

from filemarket.domain import AggregateRoot

logger = structlog.get_logger("filemarket.events")


def publish_events(aggregate: AggregateRoot) -> None:
    """Drain and log the events recorded on ``aggregate``.

    Call only after the aggregate has been persisted.
    """
    for event in aggregate.collect_events():
        data = event.to_dict()
        logger.info(
            "Domain event",
            event_type=data["event_type"],
            event_id=data["event_id"],
            aggregate_id=data["aggregate_id"],
            **data["payload"],
        )
