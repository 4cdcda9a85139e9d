from clientops.dashboards.schemas import DashboardSnapshot

__all__ = ["DashboardSnapshot"]
