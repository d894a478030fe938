"""Post-processing of chunked API results."""

from .accumulator import accumulate, recalculate_accumulations
from .checks import DataQualityWarning

__all__ = ["accumulate", "recalculate_accumulations", "DataQualityWarning"]
