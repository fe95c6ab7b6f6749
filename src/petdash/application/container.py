from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from petdash.config import Settings, load_settings
from petdash.repositories.sqlite_repo import SqliteRepository
from petdash.services.analytics_service import AnalyticsService
from petdash.services.campaign_service import CampaignService
from petdash.services.catalog_service import CatalogCache, CatalogService
from petdash.services.client_service import ClientService
from petdash.services.messaging import ResendEmailClient, WhatsAppClient
from petdash.services.order_service import OrderService
from petdash.services.outlet_service import OutletService
from petdash.services.outlet_stats_service import OutletStatsService
from petdash.services.report_service import ReportService

# shared by every container in the process
CATALOG_CACHE = CatalogCache()


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    settings: Settings
    catalog: CatalogService
    outlets: OutletService
    outlet_stats: OutletStatsService
    orders: OrderService
    analytics: AnalyticsService
    clients: ClientService
    campaigns: CampaignService
    reports: ReportService


def build_container(
    db_path: Path | str,
    settings: Settings | None = None,
    email_client=None,
    whatsapp_client=None,
    cache: CatalogCache | None = None,
) -> AppContainer:
    settings = settings or load_settings()
    repo = SqliteRepository(db_path)
    repo.init_db()

    email_client = email_client or ResendEmailClient(settings.resend_api_key)
    whatsapp_client = whatsapp_client or WhatsAppClient(settings.whatsapp_token, settings.whatsapp_phone_id)

    catalog = CatalogService(repo, cache or CATALOG_CACHE)
    outlet_stats = OutletStatsService(repo, catalog)
    clients = ClientService(repo)
    campaigns = CampaignService(
        repo,
        clients,
        email_client,
        whatsapp_client,
        sender=settings.resend_from,
        tolerance_minutes=settings.campaign_tolerance_minutes,
    )
    reports = ReportService(
        repo,
        outlet_stats,
        email_client,
        sender=settings.resend_from,
        recipients=settings.report_recipients,
    )

    return AppContainer(
        repo=repo,
        settings=settings,
        catalog=catalog,
        outlets=OutletService(repo),
        outlet_stats=outlet_stats,
        orders=OrderService(repo),
        analytics=AnalyticsService(repo),
        clients=clients,
        campaigns=campaigns,
        reports=reports,
    )
