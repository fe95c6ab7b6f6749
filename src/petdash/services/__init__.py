from .analytics_service import AnalyticsService
from .campaign_service import CampaignService, CronExpression
from .catalog_service import CatalogCache, CatalogService
from .client_service import ClientService
from .matching import ProductMatcher, calculate_item_quantity, extract_kilos
from .messaging import ResendEmailClient, WhatsAppClient
from .order_service import OrderService
from .outlet_service import OutletService
from .outlet_stats_service import OutletStatsService
from .product_mapping import build_select_label, map_select_option_to_db_format
from .report_service import ReportService

__all__ = [
    "AnalyticsService",
    "CampaignService",
    "CronExpression",
    "CatalogCache",
    "CatalogService",
    "ClientService",
    "ProductMatcher",
    "calculate_item_quantity",
    "extract_kilos",
    "ResendEmailClient",
    "WhatsAppClient",
    "OrderService",
    "OutletService",
    "OutletStatsService",
    "build_select_label",
    "map_select_option_to_db_format",
    "ReportService",
]
