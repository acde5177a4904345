"""Unit tests for communication models."""

from datetime import datetime, time

import pytest
from pydantic import ValidationError

from infrastructure.communications.models import (
    BroadcastResult,
    ChannelType,
    DeliveryStatus,
    MessageContent,
    MessageType,
    OrchestratedDeliveryResult,
    QuietHoursWindow,
    Recipient,
)

# 2024-06-03 is a Monday
MONDAY = 0


def at(day, hour, minute=0):
    return datetime(2024, 6, 3 + day, hour, minute)


@pytest.mark.unit
class TestQuietHoursWindow:
    @pytest.mark.parametrize(
        "moment,expected",
        [
            (at(0, 21, 59), False),
            (at(0, 22, 0), True),
            (at(0, 23, 30), True),
            (at(1, 3, 0), True),
            (at(1, 6, 59), True),
            (at(1, 7, 0), False),
            (at(1, 12, 0), False),
        ],
    )
    def test_overnight_window_every_day(self, moment, expected):
        window = QuietHoursWindow(start=time(22, 0), end=time(7, 0))

        assert window.contains(moment) is expected

    def test_same_day_window_end_is_exclusive(self):
        window = QuietHoursWindow(start=time(13, 0), end=time(14, 0))

        assert window.contains(at(2, 13, 0)) is True
        assert window.contains(at(2, 14, 0)) is False

    def test_day_of_week_restricts_same_day_window(self):
        window = QuietHoursWindow(day_of_week=MONDAY, start=time(9, 0), end=time(17, 0))

        assert window.contains(at(0, 10, 0)) is True
        assert window.contains(at(1, 10, 0)) is False

    def test_overnight_window_spills_into_next_day(self):
        window = QuietHoursWindow(day_of_week=MONDAY, start=time(22, 0), end=time(7, 0))

        assert window.contains(at(0, 23, 0)) is True
        assert window.contains(at(1, 6, 0)) is True
        assert window.contains(at(0, 6, 0)) is False
        assert window.contains(at(1, 23, 0)) is False

    def test_sunday_window_spills_into_monday(self):
        window = QuietHoursWindow(day_of_week=6, start=time(20, 0), end=time(8, 0))

        assert window.contains(at(7, 7, 0)) is True

    def test_equal_start_and_end_covers_whole_day(self):
        window = QuietHoursWindow(start=time(9, 0), end=time(9, 0))

        assert window.crosses_midnight is True
        assert all(window.contains(at(0, hour)) for hour in range(24))

    def test_day_of_week_is_bounded(self):
        with pytest.raises(ValidationError):
            QuietHoursWindow(day_of_week=7, start=time(1, 0), end=time(2, 0))


@pytest.mark.unit
class TestCommunicationMessage:
    def test_text_message_requires_text(self, message_factory):
        with pytest.raises(ValidationError):
            message_factory(content=MessageContent(text="   "))

    def test_media_message_requires_url(self, message_factory):
        with pytest.raises(ValidationError):
            message_factory(message_type=MessageType.IMAGE, content=MessageContent())

    def test_template_message_requires_name(self, message_factory):
        with pytest.raises(ValidationError):
            message_factory(
                message_type=MessageType.TEMPLATE,
                content=MessageContent(template_parameters=["a"]),
            )

    def test_message_ids_are_unique(self, message_factory):
        assert message_factory().message_id != message_factory().message_id

    def test_with_recipient_returns_copy(self, message_factory):
        message = message_factory()
        recipient = Recipient(channel_type=ChannelType.SMS, identifier="+447700900123")

        addressed = message.with_recipient(recipient)

        assert addressed.recipient == recipient
        assert message.recipient is None
        assert addressed.message_id == message.message_id

    def test_summary_text_for_template_and_media(self, message_factory):
        template = message_factory(
            message_type=MessageType.TEMPLATE,
            content=MessageContent(
                template_name="visit_reminder", template_parameters=["Tuesday", "14:00"]
            ),
        )
        image = message_factory(
            message_type=MessageType.IMAGE,
            content=MessageContent(
                media_url="https://cdn.example.com/garden.jpg", caption="In the garden"
            ),
        )

        assert template.summary_text == "visit_reminder Tuesday 14:00"
        assert image.summary_text == "In the garden https://cdn.example.com/garden.jpg"

    def test_negative_max_retries_rejected(self, message_factory):
        with pytest.raises(ValidationError):
            message_factory(max_retries=-1)


@pytest.mark.unit
class TestUserPreference:
    def test_primary_identifier_preferred_when_verified(self, preference_factory):
        pref = preference_factory()
        pref.channel_identifiers[ChannelType.WHATSAPP]["+447700900999"] = True

        assert pref.verified_identifier(ChannelType.WHATSAPP) == "+447700900123"

    def test_unverified_identifier_is_not_returned(self, preference_factory):
        pref = preference_factory(unverified=[ChannelType.SMS])

        assert pref.verified_identifier(ChannelType.SMS) is None
        assert pref.verified_identifier(ChannelType.WEBHOOK) is None

    def test_unverified_primary_falls_back_to_other_verified(self, preference_factory):
        pref = preference_factory(verified=[])
        pref.channel_identifiers[ChannelType.WHATSAPP] = {
            "+447700900123": False,
            "+447700900456": True,
        }

        assert pref.verified_identifier(ChannelType.WHATSAPP) == "+447700900456"

    def test_unknown_timezone_rejected(self, preference_factory):
        with pytest.raises(ValidationError):
            preference_factory(timezone_name="Mars/Olympus_Mons")


@pytest.mark.unit
class TestBroadcastResult:
    def test_counts_by_outcome(self):
        def result(success, status):
            return OrchestratedDeliveryResult(
                success=success, status=status, message_id="m", user_id="u"
            )

        broadcast = BroadcastResult.from_results(
            [
                result(True, DeliveryStatus.SENT),
                result(True, DeliveryStatus.SENT),
                result(False, DeliveryStatus.QUEUED),
                result(False, DeliveryStatus.FAILED),
            ]
        )

        assert (broadcast.total, broadcast.succeeded, broadcast.queued, broadcast.failed) == (
            4,
            2,
            1,
            1,
        )
