from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from petdash.domain.errors import DeliveryError, NotFoundError, ScheduleError, ValidationError
from petdash.domain.models import Campaign, CampaignDispatch, CampaignTickReport
from petdash.domain.results import service_boundary
from petdash.services.client_service import ALL_CLIENTS, BEHAVIOR_CATEGORIES, SPENDING_CATEGORIES

log = logging.getLogger("petdash.campaigns")

CHANNELS = ("email", "whatsapp")

# (name, low, high)
_FIELDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day", 1, 31),
    ("month", 1, 12),
    ("weekday", 0, 7),
)

# how far back previous_fire looks before giving up
_MAX_LOOKBACK = timedelta(days=366 * 5)


def _parse_field(text: str, name: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for part in text.split(","):
        if not part:
            raise ScheduleError(f"Empty item in {name} field")
        base, _, step_text = part.partition("/")
        step = 1
        if step_text:
            if not step_text.isdigit() or int(step_text) == 0:
                raise ScheduleError(f"Invalid step {step_text!r} in {name} field")
            step = int(step_text)

        if base == "*":
            start, end = low, high
        elif "-" in base:
            a, _, b = base.partition("-")
            if not (a.isdigit() and b.isdigit()):
                raise ScheduleError(f"Invalid range {base!r} in {name} field")
            start, end = int(a), int(b)
        elif base.isdigit():
            start = int(base)
            end = high if step_text else start
        else:
            raise ScheduleError(f"Invalid value {base!r} in {name} field")

        if start < low or end > high or start > end:
            raise ScheduleError(f"{name} value out of range in {part!r}")
        values.update(range(start, end + 1, step))
    if name == "weekday" and 7 in values:
        # 7 is Sunday as well as 0
        values.discard(7)
        values.add(0)
    return frozenset(values)


class CronExpression:
    """Five-field cron expression: minute hour day-of-month month day-of-week.

    Supports ``*``, single values, ``a-b`` ranges, ``/step`` and comma lists.
    When both day fields are restricted a day matches either of them.
    """

    def __init__(self, expression: str):
        self.expression = expression
        parts = (expression or "").split()
        if len(parts) != 5:
            raise ScheduleError(f"Expected 5 fields, got {len(parts)}: {expression!r}")
        parsed = [_parse_field(text, *bounds) for text, bounds in zip(parts, _FIELDS)]
        self.minutes, self.hours, self.days, self.months, self.weekdays = parsed
        self._days_any = parts[2] == "*"
        self._weekdays_any = parts[4] == "*"

    def _day_matches(self, t: datetime) -> bool:
        # Python weekday(): Monday=0; cron: Sunday=0
        cron_weekday = (t.weekday() + 1) % 7
        in_days = t.day in self.days
        in_weekdays = cron_weekday in self.weekdays
        if self._days_any and self._weekdays_any:
            return True
        if self._days_any:
            return in_weekdays
        if self._weekdays_any:
            return in_days
        return in_days or in_weekdays

    def matches(self, t: datetime) -> bool:
        return (
            t.minute in self.minutes
            and t.hour in self.hours
            and t.month in self.months
            and self._day_matches(t)
        )

    def previous_fire(self, now: datetime) -> datetime:
        """Latest fire time at or before ``now`` (minute precision)."""
        t = now.replace(second=0, microsecond=0)
        floor = t - _MAX_LOOKBACK
        while t >= floor:
            if t.month not in self.months:
                t = t.replace(day=1, hour=0, minute=0) - timedelta(minutes=1)
            elif not self._day_matches(t):
                t = t.replace(hour=0, minute=0) - timedelta(minutes=1)
            elif t.hour not in self.hours:
                t = t.replace(minute=0) - timedelta(minutes=1)
            elif t.minute not in self.minutes:
                t -= timedelta(minutes=1)
            else:
                return t
        raise ScheduleError(f"Schedule never fires: {self.expression!r}")


def is_due(campaign: Campaign, now: datetime, tolerance: timedelta) -> Optional[datetime]:
    """Fire time the campaign is due for, or None.

    Raises ``ScheduleError`` for a malformed schedule.
    """
    fire = CronExpression(campaign.schedule).previous_fire(now)
    if not timedelta(0) <= now - fire <= tolerance:
        return None
    if campaign.last_sent_at is not None and campaign.last_sent_at >= fire:
        return None
    return fire


class CampaignService:
    """Scheduled email and WhatsApp campaigns over client segments."""

    def __init__(self, repo, client_service, email_client, whatsapp_client, sender: str, tolerance_minutes: int = 5):
        self.repo = repo
        self.clients = client_service
        self.email = email_client
        self.whatsapp = whatsapp_client
        self.sender = sender
        self.tolerance = timedelta(minutes=tolerance_minutes)

    @service_boundary("Error al crear la campaña")
    def create_campaign(self, data: dict) -> Campaign:
        if not (data.get("name") or "").strip():
            raise ValidationError("El nombre es obligatorio.")
        if data.get("channel") not in CHANNELS:
            raise ValidationError(f"Canal inválido: {data.get('channel')}")
        segment = data.get("segment")
        if segment != ALL_CLIENTS and segment not in BEHAVIOR_CATEGORIES and segment not in SPENDING_CATEGORIES:
            raise ValidationError(f"Segmento inválido: {segment}")
        if not (data.get("content") or "").strip():
            raise ValidationError("El contenido es obligatorio.")
        try:
            CronExpression(data.get("schedule") or "")
        except ScheduleError as e:
            raise ValidationError(f"Programación inválida: {e}") from e
        campaign_id = self.repo.insert_campaign(data)
        log.info("campaign_created id=%s channel=%s schedule=%r", campaign_id, data["channel"], data["schedule"])
        return self.repo.get_campaign(campaign_id)

    @service_boundary("Error al obtener la campaña", not_found="Campaña no encontrada")
    def get_campaign(self, campaign_id: str) -> Campaign:
        campaign = self.repo.get_campaign(campaign_id)
        if not campaign:
            raise NotFoundError(campaign_id)
        return campaign

    def due_campaigns(self, now: datetime) -> tuple[list[tuple[Campaign, datetime]], list[str]]:
        due: list[tuple[Campaign, datetime]] = []
        skipped: list[str] = []
        for campaign in self.repo.list_active_campaigns():
            try:
                fire = is_due(campaign, now, self.tolerance)
            except ScheduleError as e:
                log.warning("campaign_schedule_invalid id=%s schedule=%r error=%s", campaign.id, campaign.schedule, e)
                skipped.append(campaign.id)
                continue
            if fire is not None:
                due.append((campaign, fire))
        return due, skipped

    def _messages(self, campaign: Campaign, now: datetime) -> list[dict]:
        clients = self.clients.segment_clients(campaign.segment, now)
        if campaign.channel == "email":
            return [
                {"from": self.sender, "to": [c.email], "subject": campaign.subject, "text": campaign.content}
                for c in clients
                if c.email
            ]
        return [{"to": c.phone, "body": campaign.content} for c in clients if c.phone]

    def _send(self, campaign: Campaign, now: datetime) -> int:
        messages = self._messages(campaign, now)
        if not messages:
            return 0
        client = self.email if campaign.channel == "email" else self.whatsapp
        return client.send_batch(messages)

    @service_boundary("Error al procesar las campañas programadas")
    def dispatch_due(self, now: Optional[datetime] = None) -> CampaignTickReport:
        now = now or datetime.now()
        due, skipped = self.due_campaigns(now)
        dispatched: list[CampaignDispatch] = []
        for campaign, fire in due:
            try:
                sent = self._send(campaign, now)
            except (DeliveryError, ValidationError) as e:
                log.warning("campaign_send_failed id=%s error=%s", campaign.id, e)
                skipped.append(campaign.id)
                continue
            self.repo.mark_campaign_sent(campaign.id, now)
            dispatched.append(CampaignDispatch(campaign.id, campaign.name, sent, fire))
            log.info("campaign_dispatched id=%s recipients=%s fire=%s", campaign.id, sent, fire.isoformat())
        log.info("campaign_tick due=%s dispatched=%s skipped=%s", len(due), len(dispatched), len(skipped))
        return CampaignTickReport(dispatched=tuple(dispatched), skipped=tuple(skipped))
