"""
Tests for ProgressAuditConsumer: subscriptions, audit lines and counters.
"""

import pytest

from luminax.core.event.bus import EventBus
from luminax.core.event.types import EventNames
from luminax.modules.audit import ProgressAuditConsumer


@pytest.fixture
def audit_bus(config_manager):
    return EventBus(config_manager)


@pytest.fixture
def audit_log(mocker):
    return mocker.Mock()


@pytest.fixture
def consumer(audit_bus, audit_log):
    consumer = ProgressAuditConsumer(audit_bus, audit_log)
    consumer.start()
    yield consumer
    consumer.stop()


@pytest.mark.unit
class TestProgressAuditConsumer:
    async def test_level_up_is_logged(self, audit_bus, consumer, audit_log):
        # Act
        await audit_bus.publish(
            EventNames.PROGRESS_LEVELED_UP,
            {"user_id": "u1", "old_level": 1, "new_level": 2, "xp": 1200},
        )

        # Assert
        assert consumer.get_status()["events_received"][EventNames.PROGRESS_LEVELED_UP] == 1
        message = audit_log.info.call_args.args[0]
        extra = audit_log.info.call_args.kwargs["extra"]
        assert message == "Level up: 1 -> 2"
        assert extra["audit"] == "level_up"
        assert extra["user_id"] == "u1"

    async def test_account_deletion_is_a_warning(self, audit_bus, consumer, audit_log):
        await audit_bus.publish(EventNames.ACCOUNT_DELETED, {"user_id": "u1"})

        assert audit_log.warning.call_args.kwargs["extra"]["audit"] == "account_deleted"

    async def test_unrelated_events_are_ignored(self, audit_bus, consumer):
        await audit_bus.publish(EventNames.QUEST_CREATED, {"user_id": "u1", "quest_id": 1})

        assert consumer.get_status()["total_received"] == 0

    async def test_stop_unsubscribes(self, audit_bus, consumer):
        consumer.stop()

        assert consumer.is_running is False
        assert audit_bus.get_listener_count() == 0

    def test_start_twice_subscribes_once(self, audit_bus, consumer, audit_log):
        listeners = audit_bus.get_listener_count()

        consumer.start()

        assert audit_bus.get_listener_count() == listeners
        audit_log.warning.assert_called_once()


@pytest.mark.unit
class TestAuditWiring:
    async def test_container_consumer_sees_recorded_milestones(self, container, recorder):
        # Act
        await recorder.record_study_session("u1", "algebra", 1200)
        await recorder.record_achievement("u1", "marathon", "Marathon", 50)

        # Assert
        received = container.audit.get_status()["events_received"]
        assert received[EventNames.PROGRESS_LEVELED_UP] == 1
        assert received[EventNames.ACHIEVEMENT_AWARDED] == 1

    async def test_health_reports_audit_status(self, container):
        report = await container.health_check()

        assert report["audit"]["running"] is True
