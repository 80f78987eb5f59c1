"""Core constants for dispatchkit."""

# Category order from highest to lowest priority; levels are assigned len..1
DEFAULT_CATEGORY_ORDER = (
    "data_integrity",
    "security",
    "availability",
    "performance",
    "convenience",
)

# Weight classes used by confidence aggregation (never by priority scoring)
WEIGHT_CLASS_VALUES: dict[str, float] = {
    "primary": 1.5,
    "standard": 1.0,
    "auxiliary": 0.5,
}

# Confidence gate thresholds (PASS / WARN / RETRY, below is REJECT)
CONFIDENCE_PASS = 0.70
CONFIDENCE_WARN = 0.50
CONFIDENCE_RETRY = 0.30

# Calibration: 1.0 is never a plausible unit confidence; at or above
# CALIBRATION_HIGH a result needs at least two supporting signals
CALIBRATION_HIGH = 0.90
CALIBRATION_MIN_RECOMMENDATIONS = 2
CALIBRATION_MIN_RATIONALE_CHARS = 100

SELECTION_ERROR_CODE = "no_units_selected"
STATIC_CYCLE_ERROR_CODE = "static_dependency_cycle"
