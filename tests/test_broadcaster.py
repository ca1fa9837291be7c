"""Tests for the change broadcaster."""

import asyncio
from datetime import UTC, datetime

from session_sync.domain.status import ConnectionState, StatusDelta
from session_sync.services.broadcaster import ChangeBroadcaster
from session_sync.services.status_store import StatusStore
from tests.conftest import FakeClock


def _delta(user_id: str, new_state: ConnectionState) -> StatusDelta:
    return StatusDelta(
        user_id=user_id,
        session_id="default",
        previous_state=ConnectionState.DISCONNECTED,
        new_state=new_state,
        timestamp=datetime.now(tz=UTC),
    )


def test_publish_reaches_only_subscribers_of_user() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster()
        first = broadcaster.subscribe("user-1")
        second = broadcaster.subscribe("user-1")
        other = broadcaster.subscribe("user-2")

        delivered = broadcaster.publish(_delta("user-1", ConnectionState.CONNECTING))

        assert delivered == 2
        assert first.queue.qsize() == 1
        assert second.queue.qsize() == 1
        assert other.queue.qsize() == 0

    asyncio.run(scenario())


def test_failed_subscriber_is_removed_without_affecting_others() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster(queue_size=1)
        healthy = broadcaster.subscribe("user-1")
        broken = broadcaster.subscribe("user-1")
        broken.close()

        broadcaster.publish(_delta("user-1", ConnectionState.CONNECTING))
        healthy.queue.get_nowait()
        broadcaster.publish(_delta("user-1", ConnectionState.CONNECTED))

        assert broadcaster.subscriber_count("user-1") == 1
        assert (await healthy.next_delta(timeout=0.1)).new_state is (
            ConnectionState.CONNECTED
        )

    asyncio.run(scenario())


def test_full_queue_drops_that_subscriber_only() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster(queue_size=1)
        slow = broadcaster.subscribe("user-1")
        fast = broadcaster.subscribe("user-1")

        broadcaster.publish(_delta("user-1", ConnectionState.CONNECTING))
        fast.queue.get_nowait()
        delivered = broadcaster.publish(_delta("user-1", ConnectionState.CONNECTED))

        assert delivered == 1
        assert slow.closed is True
        assert broadcaster.subscriber_count("user-1") == 1

    asyncio.run(scenario())


def test_subscription_unregisters_when_block_exits() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster()
        with broadcaster.subscription("user-1") as subscriber:
            assert broadcaster.subscriber_count() == 1
        assert subscriber.closed is True
        assert broadcaster.subscriber_count() == 0
        assert broadcaster.publish(_delta("user-1", ConnectionState.CONNECTING)) == 0

    asyncio.run(scenario())


def test_late_subscriber_gets_no_earlier_deltas() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster()
        broadcaster.publish(_delta("user-1", ConnectionState.CONNECTING))
        subscriber = broadcaster.subscribe("user-1")

        assert await subscriber.next_delta(timeout=0.01) is None

    asyncio.run(scenario())


def test_deltas_for_a_session_arrive_in_acceptance_order() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster()
        store = StatusStore(publisher=broadcaster, clock=FakeClock())
        subscriber = broadcaster.subscribe("user-1")

        store.initiate("user-1", "default")
        store.transition("user-1", "default", ConnectionState.QR_REQUIRED, "qr")
        store.transition("user-1", "default", ConnectionState.CONNECTED)
        store.transition("user-1", "default", ConnectionState.RECONNECTING)
        store.transition("user-1", "default", ConnectionState.CONNECTED)

        received = []
        while (delta := await subscriber.next_delta(timeout=0.01)) is not None:
            received.append(delta.new_state)

        assert received == [
            ConnectionState.CONNECTING,
            ConnectionState.QR_REQUIRED,
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
            ConnectionState.CONNECTED,
        ]

    asyncio.run(scenario())


def test_push_from_another_thread_is_delivered_on_loop() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster()
        subscriber = broadcaster.subscribe("user-1")

        await asyncio.to_thread(
            broadcaster.publish, _delta("user-1", ConnectionState.CONNECTING)
        )

        delta = await subscriber.next_delta(timeout=0.5)
        assert delta is not None
        assert delta.new_state is ConnectionState.CONNECTING

    asyncio.run(scenario())


def test_close_all_drops_everyone() -> None:
    async def scenario() -> None:
        broadcaster = ChangeBroadcaster()
        subscriber = broadcaster.subscribe("user-1")
        broadcaster.subscribe("user-2")

        broadcaster.close_all()

        assert subscriber.closed is True
        assert broadcaster.subscriber_counts() == {}

    asyncio.run(scenario())
