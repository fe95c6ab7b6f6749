from datetime import datetime, timedelta
from pathlib import Path

import pytest

from conftest import add_order, item, make_repo

from petdash.domain.errors import DeliveryError, ScheduleError
from petdash.domain.models import Campaign
from petdash.services.campaign_service import CampaignService, CronExpression, is_due
from petdash.services.client_service import ClientService

MONDAY_9_03 = datetime(2024, 1, 15, 9, 3)


class RecordingClient:
    def __init__(self, fail: bool = False):
        self.batches: list[list[dict]] = []
        self.fail = fail

    def send_batch(self, messages):
        if self.fail:
            raise DeliveryError("provider down")
        self.batches.append(list(messages))
        return len(messages)


def campaign(schedule: str, last_sent_at=None) -> Campaign:
    return Campaign(
        id="c1", name="Promo", channel="email", schedule=schedule, segment="all",
        subject="Hola", content="Promo de la semana", last_sent_at=last_sent_at,
    )


def test_previous_fire_walks_back_to_last_match():
    assert CronExpression("30 8 * * *").previous_fire(datetime(2024, 1, 15, 8, 0)) == datetime(2024, 1, 14, 8, 30)
    assert CronExpression("*/15 * * * *").previous_fire(datetime(2024, 1, 15, 10, 7, 45)) == datetime(2024, 1, 15, 10, 0)
    assert CronExpression("0 9 * * 1").previous_fire(datetime(2024, 1, 17, 12, 0)) == datetime(2024, 1, 15, 9, 0)
    assert CronExpression("0 0 1 1 *").previous_fire(datetime(2024, 3, 1)) == datetime(2024, 1, 1, 0, 0)


def test_sunday_accepts_zero_and_seven():
    sunday = datetime(2024, 1, 14, 10, 0)
    assert CronExpression("0 10 * * 0").matches(sunday)
    assert CronExpression("0 10 * * 7").matches(sunday)
    assert not CronExpression("0 10 * * 1-5").matches(sunday)


def test_restricted_day_fields_match_either():
    cron = CronExpression("0 0 1 * 1")
    assert cron.matches(datetime(2024, 2, 1))  # Thursday, day 1
    assert cron.matches(datetime(2024, 2, 5))  # Monday
    assert not cron.matches(datetime(2024, 2, 6))


@pytest.mark.parametrize("expression", ["", "* * *", "61 * * * *", "* 24 * * *", "a * * * *", "*/0 * * * *", "5-1 * * * *"])
def test_malformed_expressions_raise(expression):
    with pytest.raises(ScheduleError):
        CronExpression(expression)


def test_due_within_tolerance_only():
    tolerance = timedelta(minutes=5)
    assert is_due(campaign("0 9 * * *"), MONDAY_9_03, tolerance) == datetime(2024, 1, 15, 9, 0)
    assert is_due(campaign("0 9 * * *"), datetime(2024, 1, 15, 9, 20), tolerance) is None


def test_already_sent_fire_time_is_not_due_again():
    sent = campaign("0 9 * * *", last_sent_at=datetime(2024, 1, 15, 9, 1))
    assert is_due(sent, MONDAY_9_03, timedelta(minutes=5)) is None


def build(tmp_path: Path, email=None, whatsapp=None):
    repo = make_repo(tmp_path)
    add_order(repo, MONDAY_9_03 - timedelta(days=3), [item("BOX PERRO POLLO", ("5KG", 1))], total=1000, email="ana@x.com")
    service = CampaignService(
        repo, ClientService(repo), email or RecordingClient(), whatsapp or RecordingClient(),
        sender="Barfer <ventas@barferalimento.com>",
    )
    return repo, service


def test_dispatch_sends_due_campaign_once(tmp_path: Path):
    email = RecordingClient()
    repo, service = build(tmp_path, email=email)
    created = service.create_campaign({
        "name": "Lunes", "channel": "email", "schedule": "0 9 * * 1", "segment": "new",
        "subject": "Hola", "content": "Tenemos novedades",
    })
    assert created.success

    report = service.dispatch_due(MONDAY_9_03).data

    assert [d.recipients for d in report.dispatched] == [1]
    assert email.batches == [[{
        "from": "Barfer <ventas@barferalimento.com>",
        "to": ["ana@x.com"],
        "subject": "Hola",
        "text": "Tenemos novedades",
    }]]
    assert repo.get_campaign(created.data.id).last_sent_at == MONDAY_9_03

    again = service.dispatch_due(MONDAY_9_03 + timedelta(minutes=1)).data
    assert again.dispatched == ()
    assert len(email.batches) == 1


def test_malformed_schedule_is_skipped_without_blocking_others(tmp_path: Path):
    whatsapp = RecordingClient()
    repo, service = build(tmp_path, whatsapp=whatsapp)
    bad_id = repo.insert_campaign({"name": "Rota", "channel": "email", "schedule": "every monday", "segment": "all", "content": "x"})
    service.create_campaign({"name": "WA", "channel": "whatsapp", "schedule": "0 9 * * *", "segment": "all", "content": "Hola!"})

    report = service.dispatch_due(MONDAY_9_03).data

    assert report.skipped == (bad_id,)
    assert [d.name for d in report.dispatched] == ["WA"]
    assert whatsapp.batches == [[{"to": "1144440000", "body": "Hola!"}]]


def test_delivery_failure_leaves_campaign_pending(tmp_path: Path):
    repo, service = build(tmp_path, email=RecordingClient(fail=True))
    cid = service.create_campaign({"name": "X", "channel": "email", "schedule": "0 9 * * *", "segment": "all", "content": "x"}).data.id

    report = service.dispatch_due(MONDAY_9_03).data

    assert report.skipped == (cid,)
    assert repo.get_campaign(cid).last_sent_at is None


def test_create_campaign_validates_schedule_and_segment(tmp_path: Path):
    _, service = build(tmp_path)

    bad_cron = service.create_campaign({"name": "X", "channel": "email", "schedule": "* *", "segment": "all", "content": "x"})
    assert not bad_cron.success
    assert bad_cron.error.startswith("Programación inválida")

    bad_segment = service.create_campaign({"name": "X", "channel": "sms", "schedule": "* * * * *", "segment": "all", "content": "x"})
    assert bad_segment.error == "Canal inválido: sms"
    assert service.get_campaign("nope").error == "Campaña no encontrada"
