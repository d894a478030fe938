from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Union

import pandas as pd

from ..core.config import ConfigError, ensure_provider_keys
from ..core.dates import DateRange, RecurringWindow
from ..core.validation import (
    DateLike,
    validate_accumulation_start,
    validate_agronomic_range,
    validate_block_size,
    validate_coordinates,
    validate_forecast_range,
    validate_gdd_params,
    validate_month_day,
    validate_norm_years,
    validate_observed_range,
    validate_properties,
    validate_sources,
)
from ..processing.accumulator import accumulate
from ..processing.checks import check_daily_return, check_forecast_return, check_norms_return
from ..spatial.fanout import DEFAULT_WORKERS, AreaFanoutCoordinator, ConfirmFn
from ..spatial.grid import GridCell
from ..spatial.raster import to_spatial_grid
from .config_loader import load_provider_config
from .request_utils import format_query_list, normalise_location
from .retry import ApiError, HardError, PageTooLarge, RequestRetryDriver, RequestSpec, fetch_paged
from .session import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS, Session

logger = logging.getLogger(__name__)

API_VERSION = "v2"

DEFAULT_PAGE_SIZES: Dict[str, int] = {
    "daily_observed": 120,
    "forecasts": 10,
    "weather_norms": 120,
    "agronomic_values": 50,
    "agronomic_norms": 50,
}

ENDPOINTS = tuple(DEFAULT_PAGE_SIZES) + ("current_conditions",)


@dataclass(frozen=True)
class FieldId:
    """A field registered with the API, addressed by its identifier."""

    field_id: str

    @property
    def path(self) -> str:
        return f"fields/{self.field_id}"

    def tag(self, table: pd.DataFrame) -> pd.DataFrame:
        table = table.drop(columns=["field_id"], errors="ignore")
        table.insert(0, "field_id", self.field_id)
        return table


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lon = validate_coordinates(self.latitude, self.longitude)
        object.__setattr__(self, "latitude", lat)
        object.__setattr__(self, "longitude", lon)

    @property
    def path(self) -> str:
        return f"locations/{self.latitude},{self.longitude}"

    def tag(self, table: pd.DataFrame) -> pd.DataFrame:
        table = table.drop(columns=["latitude", "longitude"], errors="ignore")
        table.insert(0, "longitude", self.longitude)
        table.insert(0, "latitude", self.latitude)
        return table


Location = Union[FieldId, Coordinates]
LocationLike = Union[Location, GridCell, str, Sequence[float], Mapping[str, float]]


def resolve_location(location: LocationLike) -> Location:
    """
    Turn caller input into a ``FieldId`` or ``Coordinates``.

    Strings holding a comma are read as ``"lat,lon"``; any other string is a
    field identifier.
    """
    if isinstance(location, (FieldId, Coordinates)):
        return location
    if isinstance(location, GridCell):
        return Coordinates(location.lat, location.lon)
    if isinstance(location, str) and "," not in location:
        if not location.strip():
            raise ValueError("Field identifier cannot be empty.")
        return FieldId(location.strip())
    lat, lon = normalise_location(location)
    return Coordinates(lat, lon)


@dataclass
class PointQuery:
    """
    A validated request for one endpoint, ready to run against any location.

    ``date_range`` is None for single-request endpoints.
    """

    endpoint: str
    build: Callable[[Location, Optional[DateRange]], RequestSpec]
    extract: Callable[[Any], pd.DataFrame]
    date_range: Optional[DateRange] = None
    page_size: int = 1
    stitch_accumulations: bool = False
    drop_leap_day: bool = False
    date_column: str = "date"
    check: Optional[Callable[[pd.DataFrame], None]] = None
    token: Optional[str] = None


def _clean_params(**params: Any) -> Dict[str, Any]:
    return {key: value for key, value in params.items() if value is not None and value != ""}


def _records(payload: Any, key: str) -> pd.DataFrame:
    if isinstance(payload, Mapping):
        records = payload.get(key)
        if records is None:
            raise ApiError(f"Response is missing the '{key}' list.")
    else:
        records = payload
    if not records:
        return pd.DataFrame()
    return pd.json_normalize(records)


def _forecast_records(payload: Any) -> pd.DataFrame:
    days = payload.get("forecasts") if isinstance(payload, Mapping) else payload
    if days is None:
        raise ApiError("Response is missing the 'forecasts' list.")
    rows = []
    for day in days:
        blocks = day.get("forecast") or []
        for block in blocks:
            rows.append({"date": day.get("date"), **block})
    return pd.json_normalize(rows) if rows else pd.DataFrame()


def _single_record(payload: Any) -> pd.DataFrame:
    return pd.json_normalize(payload) if payload else pd.DataFrame()


class AgroWeatherClient:
    """
    Client for the aWhere weather and agronomics API.

    Reference: https://developer.awhere.com/api/reference

    Every bulk method validates its input, splits the date range into pages,
    fetches them through the retry driver and returns one ``DataFrame``. The
    same queries can be fanned out over an area with ``query_area``.
    """

    def __init__(
        self,
        session: Optional[Session] = None,
        *,
        config_path: Union[str, Path] = "config.json",
        provider: str = "awhere",
        token: Optional[str] = None,
        page_sizes: Optional[Mapping[str, int]] = None,
        workers: Optional[int] = None,
    ) -> None:
        self.config_path = Path(config_path)
        self.provider = provider
        _, provider_cfg = load_provider_config(
            self.config_path,
            provider,
            exception_cls=ConfigError,
            missing_ok=True,
        )

        if session is None:
            base_url = str(provider_cfg.get("baseUrl", DEFAULT_BASE_URL))
            timeout = float(provider_cfg.get("timeoutSeconds", DEFAULT_TIMEOUT_SECONDS))
            key, secret = provider_cfg.get("key"), provider_cfg.get("secret")
            if token is None:
                ensure_provider_keys(provider_cfg, required_keys=("key", "secret"), exception_cls=ConfigError)
            session = Session(key, secret, token, base_url=base_url, timeout=timeout)
            # a token that seeds a key/secret session is still the session's own
            token = None if key and secret else token

        self.session = session
        self.token = token
        self.page_sizes: Dict[str, int] = dict(DEFAULT_PAGE_SIZES)
        self.page_sizes.update({k: int(v) for k, v in (provider_cfg.get("pageSizes") or {}).items()})
        self.page_sizes.update(page_sizes or {})
        self.workers = int(workers or provider_cfg.get("workers", DEFAULT_WORKERS))

    @staticmethod
    def _path(*parts: str) -> str:
        return "/".join([API_VERSION, *parts])

    # ------------------------------------------------------------------
    # Query construction

    def _daily_observed_query(
        self,
        start_date: DateLike,
        end_date: Optional[DateLike] = None,
        *,
        properties: Optional[Sequence[str]] = None,
        token: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> PointQuery:
        date_range = validate_observed_range(start_date, end_date, today=today)
        props = format_query_list(validate_properties("weather", properties))

        def build(location: Location, chunk: Optional[DateRange]) -> RequestSpec:
            return RequestSpec(
                "GET",
                self._path("weather", location.path, "observations", f"{chunk.start},{chunk.end}"),
                _clean_params(limit=len(chunk), properties=props),
            )

        return PointQuery(
            endpoint="daily_observed",
            build=build,
            extract=partial(_records, key="observations"),
            date_range=date_range,
            page_size=self.page_sizes["daily_observed"],
            check=partial(check_daily_return, date_range=date_range),
            token=token,
        )

    def _forecasts_query(
        self,
        start_date: DateLike,
        end_date: Optional[DateLike] = None,
        *,
        block_size: int = 1,
        use_local_time: bool = True,
        token: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> PointQuery:
        date_range = validate_forecast_range(start_date, end_date, today=today)
        block_size = validate_block_size(block_size)

        def build(location: Location, chunk: Optional[DateRange]) -> RequestSpec:
            return RequestSpec(
                "GET",
                self._path("weather", location.path, "forecasts", f"{chunk.start},{chunk.end}"),
                _clean_params(blockSize=block_size, useLocalTime=str(bool(use_local_time)).lower()),
            )

        return PointQuery(
            endpoint="forecasts",
            build=build,
            extract=_forecast_records,
            date_range=date_range,
            page_size=self.page_sizes["forecasts"],
            check=partial(check_forecast_return, date_range=date_range, block_size=block_size),
            token=token,
        )

    def _norms_window(
        self,
        month_day_start: str,
        month_day_end: Optional[str],
        year_start: int,
        year_end: int,
        exclude_years: Iterable[int],
        today: Optional[dt.date],
    ) -> RecurringWindow:
        validate_month_day(month_day_start, "month_day_start")
        month_day_end = month_day_end or month_day_start
        validate_month_day(month_day_end, "month_day_end")
        exclude_years = [int(year) for year in exclude_years or ()]
        validate_norm_years(
            year_start,
            year_end,
            exclude_years,
            month_day_start=month_day_start,
            month_day_end=month_day_end,
            today=today,
        )
        return RecurringWindow(month_day_start, month_day_end, int(year_start), int(year_end), frozenset(exclude_years))

    def _weather_norms_query(
        self,
        month_day_start: str,
        month_day_end: Optional[str] = None,
        *,
        year_start: int,
        year_end: int,
        exclude_years: Iterable[int] = (),
        properties: Optional[Sequence[str]] = None,
        include_feb29: bool = True,
        token: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> PointQuery:
        window = self._norms_window(month_day_start, month_day_end, year_start, year_end, exclude_years, today)
        props = format_query_list(validate_properties("weather_norms", properties))
        excluded = format_query_list(sorted(window.exclude_years))

        def build(location: Location, chunk: Optional[DateRange]) -> RequestSpec:
            first, last = chunk.month_days()
            return RequestSpec(
                "GET",
                self._path(
                    "weather",
                    location.path,
                    "norms",
                    f"{first},{last}",
                    "years",
                    f"{window.year_start},{window.year_end}",
                ),
                _clean_params(limit=len(chunk), excludeYears=excluded, properties=props),
            )

        return PointQuery(
            endpoint="weather_norms",
            build=build,
            extract=partial(_records, key="norms"),
            date_range=window.anchor(),
            page_size=self.page_sizes["weather_norms"],
            drop_leap_day=not include_feb29,
            date_column="day",
            check=partial(check_norms_return, window=window, include_feb29=include_feb29),
            token=token,
        )

    def _agronomic_values_query(
        self,
        start_date: DateLike,
        end_date: Optional[DateLike] = None,
        *,
        properties: Optional[Sequence[str]] = None,
        accumulation_start_date: Optional[DateLike] = None,
        gdd_method: str = "standard",
        gdd_base_temp: float = 10,
        gdd_min_boundary: float = 10,
        gdd_max_boundary: float = 30,
        token: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> PointQuery:
        date_range = validate_agronomic_range(start_date, end_date, today=today)
        validate_gdd_params(gdd_method, gdd_base_temp, gdd_min_boundary, gdd_max_boundary)
        accumulation_start = validate_accumulation_start(accumulation_start_date, date_range.start)
        props = format_query_list(validate_properties("agronomics", properties))

        def build(location: Location, chunk: Optional[DateRange]) -> RequestSpec:
            return RequestSpec(
                "GET",
                self._path("agronomics", location.path, "agronomicvalues", f"{chunk.start},{chunk.end}"),
                _clean_params(
                    limit=len(chunk),
                    gddMethod=gdd_method,
                    gddBaseTemp=gdd_base_temp,
                    gddMinBoundary=gdd_min_boundary,
                    gddMaxBoundary=gdd_max_boundary,
                    accumulationStartDate=accumulation_start.isoformat() if accumulation_start else None,
                    properties=props,
                ),
            )

        return PointQuery(
            endpoint="agronomic_values",
            build=build,
            extract=partial(_records, key="dailyValues"),
            date_range=date_range,
            page_size=self.page_sizes["agronomic_values"],
            stitch_accumulations=accumulation_start is None,
            check=partial(check_daily_return, date_range=date_range),
            token=token,
        )

    def _agronomic_norms_query(
        self,
        month_day_start: str,
        month_day_end: Optional[str] = None,
        *,
        year_start: int,
        year_end: int,
        exclude_years: Iterable[int] = (),
        accumulation_start_date: Optional[str] = None,
        gdd_method: str = "standard",
        gdd_base_temp: float = 10,
        gdd_min_boundary: float = 10,
        gdd_max_boundary: float = 30,
        include_feb29: bool = True,
        token: Optional[str] = None,
        today: Optional[dt.date] = None,
    ) -> PointQuery:
        window = self._norms_window(month_day_start, month_day_end, year_start, year_end, exclude_years, today)
        validate_gdd_params(gdd_method, gdd_base_temp, gdd_min_boundary, gdd_max_boundary)
        if accumulation_start_date:
            validate_month_day(accumulation_start_date, "accumulation_start_date")
        excluded = format_query_list(sorted(window.exclude_years))

        def build(location: Location, chunk: Optional[DateRange]) -> RequestSpec:
            first, last = chunk.month_days()
            return RequestSpec(
                "GET",
                self._path(
                    "agronomics",
                    location.path,
                    "agronomicnorms",
                    f"{first},{last}",
                    "years",
                    f"{window.year_start},{window.year_end}",
                ),
                _clean_params(
                    limit=len(chunk),
                    excludeYears=excluded,
                    accumulationStartDate=accumulation_start_date,
                    gddMethod=gdd_method,
                    gddBaseTemp=gdd_base_temp,
                    gddMinBoundary=gdd_min_boundary,
                    gddMaxBoundary=gdd_max_boundary,
                ),
            )

        return PointQuery(
            endpoint="agronomic_norms",
            build=build,
            extract=partial(_records, key="dailyNorms"),
            date_range=window.anchor(),
            page_size=self.page_sizes["agronomic_norms"],
            stitch_accumulations=not accumulation_start_date,
            drop_leap_day=not include_feb29,
            date_column="day",
            check=partial(check_norms_return, window=window, include_feb29=include_feb29),
            token=token,
        )

    def _current_conditions_query(self, *, sources: str = "all", token: Optional[str] = None) -> PointQuery:
        sources = validate_sources(sources)

        def build(location: Location, chunk: Optional[DateRange]) -> RequestSpec:
            return RequestSpec(
                "GET",
                self._path("weather", location.path, "currentconditions"),
                _clean_params(sources=sources),
            )

        return PointQuery(endpoint="current_conditions", build=build, extract=_single_record, token=token)

    # ------------------------------------------------------------------
    # Execution

    def run_query(self, query: PointQuery, location: LocationLike) -> pd.DataFrame:
        """Fetch ``query`` for a single location and return the assembled table."""
        location = resolve_location(location)
        driver = RequestRetryDriver(self.session, token=query.token or self.token)
        build = partial(query.build, location)

        if query.date_range is None:
            outcome = driver.fetch(None, build)
            if isinstance(outcome, HardError):
                raise outcome.to_exception()
            if isinstance(outcome, PageTooLarge):
                raise ApiError(f"{query.endpoint} rejected the request size.")
            payloads = [outcome.payload]
        else:
            payloads = fetch_paged(driver, query.date_range, query.page_size, build)

        table = accumulate(
            [query.extract(payload) for payload in payloads],
            stitch_accumulations=query.stitch_accumulations,
            drop_leap_day=query.drop_leap_day,
            date_column=query.date_column,
        )
        table = location.tag(table)
        logger.info("%s[%s]: %d rows from %d requests", query.endpoint, location.path, len(table), len(payloads))
        if query.check is not None:
            query.check(table)
        return table

    def daily_observed(self, location: LocationLike, start_date: DateLike, end_date: Optional[DateLike] = None, **params) -> pd.DataFrame:
        """Observed daily weather (temperatures, precipitation, solar, humidity, wind)."""
        return self.run_query(self._daily_observed_query(start_date, end_date, **params), location)

    def forecasts(self, location: LocationLike, start_date: DateLike, end_date: Optional[DateLike] = None, **params) -> pd.DataFrame:
        """Forecast blocks of ``block_size`` hours; one row per block."""
        return self.run_query(self._forecasts_query(start_date, end_date, **params), location)

    def weather_norms(self, location: LocationLike, month_day_start: str, month_day_end: Optional[str] = None, **params) -> pd.DataFrame:
        """Long-term averages and standard deviations per calendar day."""
        return self.run_query(self._weather_norms_query(month_day_start, month_day_end, **params), location)

    def agronomic_values(self, location: LocationLike, start_date: DateLike, end_date: Optional[DateLike] = None, **params) -> pd.DataFrame:
        """Daily GDD/PET/P-PET values with accumulations continuous over the whole range."""
        return self.run_query(self._agronomic_values_query(start_date, end_date, **params), location)

    def agronomic_norms(self, location: LocationLike, month_day_start: str, month_day_end: Optional[str] = None, **params) -> pd.DataFrame:
        return self.run_query(self._agronomic_norms_query(month_day_start, month_day_end, **params), location)

    def current_conditions(self, location: LocationLike, **params) -> pd.DataFrame:
        return self.run_query(self._current_conditions_query(**params), location)

    def query_area(
        self,
        endpoint: str,
        area,
        *args,
        worker_count: Optional[int] = None,
        bypass_confirmation: bool = False,
        confirm: Optional[ConfirmFn] = None,
        spatial: bool = False,
        value_columns: Optional[Sequence[str]] = None,
        **params,
    ):
        """
        Run ``endpoint`` (e.g. ``"daily_observed"``) for every grid cell of ``area``.

        ``area`` may be a shapely geometry, WKT, extent, GeoJSON mapping or a
        list of ``(lon, lat)`` points. Parameters are validated before the
        call-count confirmation and before any request. Returns the merged
        ``DataFrame``, or an ``xarray.Dataset`` when ``spatial`` is set.
        """
        if endpoint not in ENDPOINTS:
            raise ValueError(f"Unknown endpoint '{endpoint}'; use one of {', '.join(ENDPOINTS)}.")
        query = getattr(self, f"_{endpoint}_query")(*args, **params)

        coordinator = AreaFanoutCoordinator(
            worker_count or self.workers,
            bypass_confirmation=bypass_confirmation,
            confirm=confirm,
        )
        table = coordinator.run(area, partial(self.run_query, query))
        if spatial:
            return to_spatial_grid(table, value_columns)
        return table
