from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .config import LocationItem, load_locations, load_project_config, provider_setting
from .dates import DateRange


@dataclass
class QueryRuntime:
    """Holds the loaded config, configured locations and requested date range for a run."""

    config_path: Path
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    provider: str = "awhere"
    config_data: dict = field(init=False, default_factory=dict)
    location_items: List[LocationItem] = field(init=False, default_factory=list)
    location_extras: Dict[str, Dict[str, object]] = field(init=False, default_factory=dict)

    def __post_init__(self) -> None:
        self.config_path = Path(self.config_path)
        self.reload_config()

    def reload_config(self) -> None:
        self.config_data = load_project_config(self.config_path)

    def reload_locations(self, limit: Optional[int] = None) -> None:
        if not self.config_data:
            self.reload_config()
        locations, extras = load_locations(self.config_data)
        if limit is not None and limit > 0:
            locations = locations[:limit]
            allowed = {name for name, *_ in locations}
            extras = {name: extras.get(name, {}) for name in allowed}
        self.location_items = locations
        self.location_extras = extras

    def update_dates(self, since: Optional[str], until: Optional[str]) -> None:
        if since:
            self.start_date = dt.date.fromisoformat(since)
        if until:
            self.end_date = dt.date.fromisoformat(until)
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("--until must be on/after --since")

    @property
    def date_range(self) -> DateRange:
        if self.start_date is None:
            raise ValueError("No start date set; pass --since.")
        return DateRange(self.start_date, self.end_date)

    def setting(self, key: str, default=None):
        return provider_setting(self.config_data, self.provider, key, default)
