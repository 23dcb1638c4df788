"""Tests for the milestone event bus."""

import asyncio
import logging

import pytest

from settlement.core.events import EventBus, PAYOUT_COMPLETED, TRANSFER_CREATED


async def start_subscriber(bus: EventBus):
    """Subscribe and wait until the subscriber queue is registered."""
    stream = bus.subscribe()
    pending = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0)
    return stream, pending


@pytest.mark.asyncio
async def test_subscriber_receives_published_event():
    bus = EventBus()
    stream, pending = await start_subscriber(bus)
    assert bus.subscriber_count == 1

    bus.publish(TRANSFER_CREATED, {"transfer_id": "tr_1"})
    event = await asyncio.wait_for(pending, timeout=1)

    assert event["type"] == TRANSFER_CREATED
    assert event["data"] == {"transfer_id": "tr_1"}
    assert "timestamp" in event

    await stream.aclose()
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_every_subscriber_gets_a_copy():
    bus = EventBus()
    first_stream, first = await start_subscriber(bus)
    second_stream, second = await start_subscriber(bus)

    bus.publish(PAYOUT_COMPLETED, {"payout_id": "po_1"})

    assert (await first)["data"] == (await second)["data"] == {"payout_id": "po_1"}
    await first_stream.aclose()
    await second_stream.aclose()


def test_unknown_event_type_is_rejected():
    with pytest.raises(ValueError):
        EventBus().publish("transfer.deleted", {})


def test_publish_without_subscribers_is_a_no_op():
    EventBus().publish(TRANSFER_CREATED, {"transfer_id": "tr_1"})


@pytest.mark.asyncio
async def test_full_subscriber_queue_drops_event(caplog):
    bus = EventBus(max_queue_size=1)
    stream, pending = await start_subscriber(bus)

    with caplog.at_level(logging.WARNING, logger="settlement.core.events"):
        bus.publish(TRANSFER_CREATED, {"n": 1})
        bus.publish(TRANSFER_CREATED, {"n": 2})

    assert (await pending)["data"] == {"n": 1}
    assert "Dropping transfer.created" in caplog.text
    await stream.aclose()
