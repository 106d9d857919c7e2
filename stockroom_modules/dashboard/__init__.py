from stockroom_modules.dashboard.service import (
    DashboardService,
    FamilyStat,
    InventorySummary,
    build_inventory_summary,
)

__all__ = ["DashboardService", "FamilyStat", "InventorySummary", "build_inventory_summary"]
