"""Input checks run before any request is sent."""

from __future__ import annotations

import datetime as dt
from typing import Iterable, Optional, Sequence, Tuple, Union

from .dates import DateRange

FIRST_DATA_YEAR = 1994
MIN_NORM_YEARS = 3
FORECAST_MAX_DAYS_AHEAD = 8
AGRONOMIC_MAX_DAYS_AHEAD = 7

GDD_METHODS = ("standard", "modifiedstandard", "min-temp-cap", "min-temp-constant")
CONDITION_SOURCES = ("metar", "mesonet", "metar-mesonet", "pws", "all")

VALID_PROPERTIES = {
    "weather": ("temperatures", "precipitation", "solar", "relativeHumidity", "wind"),
    "weather_norms": (
        "meanTemp",
        "maxTemp",
        "minTemp",
        "precipitation",
        "solar",
        "maxHumidity",
        "minHumidity",
        "dailyMaxWind",
    ),
    "agronomics": (
        "gdd",
        "pet",
        "ppet",
        "accumulatedGdd",
        "accumulatedPrecipitation",
        "accumulatedPet",
        "accumulatedPpet",
        "accumulations",
    ),
}

_DAYS_IN_MONTH = {2: 28, 4: 30, 6: 30, 9: 30, 11: 30}

DateLike = Union[str, dt.date, dt.datetime]


class ValidationError(ValueError):
    """Raised when a query parameter is malformed or out of range."""


def parse_date(value: DateLike, name: str = "date") -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        try:
            return dt.date.fromisoformat(value.strip())
        except ValueError as exc:
            raise ValidationError(f"The {name} '{value}' is not formatted as YYYY-MM-DD.") from exc
    raise ValidationError(f"The {name} must be a date or a YYYY-MM-DD string.")


def validate_coordinates(latitude, longitude) -> Tuple[float, float]:
    try:
        lat = float(latitude)
    except (TypeError, ValueError) as exc:
        raise ValidationError("The entered latitude value is not valid.") from exc
    try:
        lon = float(longitude)
    except (TypeError, ValueError) as exc:
        raise ValidationError("The entered longitude value is not valid.") from exc
    if not -90 <= lat <= 90:
        raise ValidationError("The entered latitude value is not valid.")
    if not -180 <= lon <= 180:
        raise ValidationError("The entered longitude value is not valid.")
    return lat, lon


def validate_date_range(start: DateLike, end: Optional[DateLike] = None) -> DateRange:
    start_date = parse_date(start, "start date")
    end_date = parse_date(end, "end date") if end not in (None, "") else start_date
    if end_date < start_date:
        raise ValidationError("The end date must come after the start date.")
    return DateRange(start_date, end_date)


def validate_observed_range(
    start: DateLike,
    end: Optional[DateLike] = None,
    *,
    today: Optional[dt.date] = None,
) -> DateRange:
    """Observed data is only available up to yesterday."""
    today = today or dt.date.today()
    date_range = validate_date_range(start, end)
    if date_range.end >= today:
        raise ValidationError(
            "Observed data can only be requested up until yesterday; use the forecast endpoint from today onward."
        )
    return date_range


def validate_forecast_range(
    start: DateLike,
    end: Optional[DateLike] = None,
    *,
    today: Optional[dt.date] = None,
) -> DateRange:
    today = today or dt.date.today()
    date_range = validate_date_range(start, end)
    if date_range.start < today:
        raise ValidationError("Forecasts can only be requested from today onward.")
    if date_range.end > today + dt.timedelta(days=FORECAST_MAX_DAYS_AHEAD):
        raise ValidationError(f"Forecasts are only available {FORECAST_MAX_DAYS_AHEAD} days into the future.")
    return date_range


def validate_agronomic_range(
    start: DateLike,
    end: Optional[DateLike] = None,
    *,
    today: Optional[dt.date] = None,
) -> DateRange:
    """Agronomic values run on observed data plus up to seven days of forecast."""
    today = today or dt.date.today()
    date_range = validate_date_range(start, end)
    if date_range.end > today + dt.timedelta(days=AGRONOMIC_MAX_DAYS_AHEAD):
        raise ValidationError(f"Agronomic values are only available {AGRONOMIC_MAX_DAYS_AHEAD} days into the future.")
    return date_range


def validate_month_day(value: str, name: str = "month_day") -> str:
    parts = value.split("-") if isinstance(value, str) else []
    if len(parts) != 2 or any(len(part) != 2 or not part.isdigit() for part in parts):
        raise ValidationError(f"The parameter {name} must be formatted as MM-DD.")
    month, day = int(parts[0]), int(parts[1])
    if not 1 <= month <= 12:
        raise ValidationError(f"The month in {name} is not a valid value.")
    if not 1 <= day <= _DAYS_IN_MONTH.get(month, 31):
        raise ValidationError(f"The day in {name} is not a valid value.")
    return value


def validate_norm_years(
    year_start: int,
    year_end: int,
    exclude_years: Iterable[int] = (),
    *,
    month_day_start: Optional[str] = None,
    month_day_end: Optional[str] = None,
    today: Optional[dt.date] = None,
) -> Tuple[int, ...]:
    """Return the years that will be averaged once exclusions are applied."""
    today = today or dt.date.today()
    try:
        first, last = int(year_start), int(year_end)
        excluded = [int(year) for year in exclude_years]
    except (TypeError, ValueError) as exc:
        raise ValidationError("Years must be whole numbers.") from exc

    for name, year in (("year_start", first), ("year_end", last)):
        if not FIRST_DATA_YEAR <= year <= today.year:
            raise ValidationError(f"The {name} parameter must be between {FIRST_DATA_YEAR} and the current year.")
    if last < first:
        raise ValidationError("The year_end parameter must not come before year_start.")
    for year in excluded:
        if not FIRST_DATA_YEAR <= year <= today.year:
            raise ValidationError(
                f"Excluded year {year} is not in the range {FIRST_DATA_YEAR}-{today.year}."
            )

    if month_day_start and dt.date.fromisoformat(f"{first}-{month_day_start}") > today:
        raise ValidationError("The combination of year_start and month_day_start lies in the future.")
    if month_day_end and dt.date.fromisoformat(f"{last}-{month_day_end}") > today:
        raise ValidationError("The combination of year_end and month_day_end lies in the future.")

    years = tuple(year for year in range(first, last + 1) if year not in set(excluded))
    if len(years) < MIN_NORM_YEARS:
        raise ValidationError(f"At least {MIN_NORM_YEARS} unique years must remain after exclusions.")
    return years


def validate_gdd_params(method: str, base_temp, min_boundary, max_boundary) -> None:
    if method not in GDD_METHODS:
        raise ValidationError(f"Valid GDD methods are {', '.join(GDD_METHODS)}; got '{method}'.")
    for name, value in (
        ("gdd_base_temp", base_temp),
        ("gdd_min_boundary", min_boundary),
        ("gdd_max_boundary", max_boundary),
    ):
        try:
            float(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"The {name} parameter is not a valid value.") from exc


def validate_block_size(block_size: int) -> int:
    try:
        size = int(block_size)
    except (TypeError, ValueError) as exc:
        raise ValidationError("The block size must be a whole number of hours.") from exc
    if size < 1 or 24 % size != 0:
        raise ValidationError("The block size must divide evenly into 24.")
    return size


def validate_sources(sources: str) -> str:
    if sources not in CONDITION_SOURCES:
        raise ValidationError(f"The source '{sources}' is not valid; use one of {', '.join(CONDITION_SOURCES)}.")
    return sources


def validate_properties(endpoint: str, properties: Optional[Sequence[str]]) -> Tuple[str, ...]:
    if not properties:
        return ()
    if isinstance(properties, str):
        properties = [properties]
    allowed = VALID_PROPERTIES[endpoint]
    unknown = [prop for prop in properties if prop not in allowed]
    if unknown:
        raise ValidationError(
            f"Invalid properties {', '.join(unknown)}. Valid values are {', '.join(allowed)}."
        )
    return tuple(properties)


def validate_accumulation_start(accumulation_start: Optional[DateLike], start: dt.date) -> Optional[dt.date]:
    if accumulation_start in (None, ""):
        return None
    accumulation_date = parse_date(accumulation_start, "accumulation start date")
    if accumulation_date > start:
        raise ValidationError("The accumulation start date must come before the start date.")
    return accumulation_date
