"""
Fiscal-year labels per country, used as the year folder name in Drive.

Calendar-year countries get "2024"; split-year countries get
"Apr 2024 - Mar 2025" style labels. Countries not listed use the calendar year.
"""
from dataclasses import dataclass
from datetime import date

MONTH_ABBREV = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


@dataclass(frozen=True)
class FiscalYearConfig:
    start_month: int  # 1-12
    end_month: int


CALENDAR_YEAR = FiscalYearConfig(start_month=1, end_month=12)

_APR_MAR = FiscalYearConfig(start_month=4, end_month=3)

FISCAL_YEAR_MAP = {
    "INDIA": _APR_MAR,
    "UK": _APR_MAR,
    "CANADA": _APR_MAR,
    "JAPAN": _APR_MAR,
    "SINGAPORE": _APR_MAR,
    "SOUTH_AFRICA": _APR_MAR,
    "AUSTRALIA": FiscalYearConfig(start_month=7, end_month=6),
    # US federal
    "USA": FiscalYearConfig(start_month=10, end_month=9),
}


def fiscal_year_config(country_code: str) -> FiscalYearConfig:
    return FISCAL_YEAR_MAP.get((country_code or "").upper(), CALENDAR_YEAR)


def is_calendar_year(country_code: str) -> bool:
    return fiscal_year_config(country_code) == CALENDAR_YEAR


def fiscal_year_label(base_year: int, country_code: str) -> str:
    """Label for the fiscal year starting in base_year."""
    if is_calendar_year(country_code):
        return str(base_year)
    fy = fiscal_year_config(country_code)
    return (
        f"{MONTH_ABBREV[fy.start_month - 1]} {base_year} - "
        f"{MONTH_ABBREV[fy.end_month - 1]} {base_year + 1}"
    )


def fiscal_year_options(country_code: str, count: int = 10, today: date | None = None) -> list[dict]:
    """
    The `count` most recent fiscal years that have already started, newest
    first, as {"value", "label", "base_year"} where value is the folder name.
    """
    today = today or date.today()
    fy = fiscal_year_config(country_code)
    latest = today.year if today.month >= fy.start_month else today.year - 1
    options = []
    for base_year in range(latest, latest - count, -1):
        label = fiscal_year_label(base_year, country_code)
        options.append({"value": label, "label": label, "base_year": base_year})
    return options
