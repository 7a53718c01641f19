"""Body Mass Index helpers used to route a visit to the right assessment form."""
from __future__ import annotations

# WHO adult classification thresholds.
UNDERWEIGHT_LIMIT = 18.5
OVERWEIGHT_LIMIT = 25.0

GENERAL_ASSESSMENT = "general"
OVERWEIGHT_ASSESSMENT = "overweight"


def calculate_bmi(weight_kg: float, height_cm: float) -> float:
    """Return ``weight / height(m)**2`` rounded to one decimal place."""
    if height_cm <= 0:
        return 0.0
    height_m = height_cm / 100.0
    return round(weight_kg / (height_m * height_m), 1)


def bmi_status(bmi: float) -> str:
    if bmi < UNDERWEIGHT_LIMIT:
        return "Underweight"
    if bmi < OVERWEIGHT_LIMIT:
        return "Normal"
    return "Overweight"


def format_bmi_summary(bmi: float) -> str:
    return f"{bmi:.1f} ({bmi_status(bmi)})"


def assessment_for(bmi: float) -> str:
    return GENERAL_ASSESSMENT if bmi < OVERWEIGHT_LIMIT else OVERWEIGHT_ASSESSMENT


__all__ = [
    "GENERAL_ASSESSMENT",
    "OVERWEIGHT_ASSESSMENT",
    "assessment_for",
    "bmi_status",
    "calculate_bmi",
    "format_bmi_summary",
]
