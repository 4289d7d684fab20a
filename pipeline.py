"""Cleaning and aggregation pipeline for the hospital inpatient cost dataset.

The file is read once into a :class:`CleanedTable`, after which each of the
four views (:func:`yearly_totals`, :func:`charge_gap_ranking`,
:func:`facility_time_series`, :func:`severity_averages`) is a pure function
of the cleaned frame. Nothing here touches Streamlit; the dashboard in
``core.py`` consumes the view tables.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)


# ------------------------------
# COLUMN NAMES & CONSTANTS
# ------------------------------
FACILITY_COL = "facility_name"
YEAR_COL = "year"
DISCHARGES_COL = "discharges"
MEAN_CHARGE_COL = "mean_charge"
MEAN_COST_COL = "mean_cost"
SEVERITY_COL = "apr_severity_of_illness_description"

REQUIRED_COLUMNS = [
    FACILITY_COL,
    YEAR_COL,
    DISCHARGES_COL,
    MEAN_CHARGE_COL,
    MEAN_COST_COL,
    SEVERITY_COL,
]

TOP_N = 15
SEVERITY_ORDER = ["Minor", "Moderate", "Major", "Extreme"]

_NON_ALNUM = re.compile(r"[^0-9a-z]+")
_SEPARATORS = re.compile(r"[,\s]")


# ------------------------------
# ERRORS
# ------------------------------
class PipelineError(Exception):
    """Base class for failures while building the cleaned table."""


class LoadError(PipelineError):
    """The input file is missing, unreadable or malformed."""


class ParseError(PipelineError, ValueError):
    """A discharge value is not numeric once separators are removed."""


class SchemaError(PipelineError):
    """Column names collide after normalization or a required one is absent."""


# ------------------------------
# CLEANED TABLE
# ------------------------------
@dataclass(frozen=True)
class CleanedTable:
    """The cleaned frame plus what happened to it on the way in.

    Views only ever read ``frame``; nothing downstream should mutate it.
    """

    frame: pd.DataFrame
    source: Path
    raw_rows: int
    dropped_rows: int
    coerced_cells: int

    @property
    def rows(self) -> int:
        return len(self.frame)


# ------------------------------
# INGESTION & NORMALIZATION
# ------------------------------
def normalize_name(name: str) -> str:
    """Lowercase ``name`` and collapse non-alphanumeric runs into ``_``."""
    return _NON_ALNUM.sub("_", str(name).lower()).strip("_")


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of ``df`` with canonical column names.

    Raises ``SchemaError`` if two source columns end up with the same name
    or if a name has no alphanumeric characters at all.
    """
    mapping: dict[str, str] = {}
    seen: dict[str, str] = {}
    for col in df.columns:
        new = normalize_name(col)
        if not new:
            raise SchemaError(f"Column {col!r} has no usable characters in its name.")
        if new in seen:
            raise SchemaError(
                f"Columns {seen[new]!r} and {col!r} both normalize to {new!r}."
            )
        seen[new] = col
        mapping[col] = new
    return df.rename(columns=mapping)


def coerce_numeric(series: pd.Series, errors: str = "coerce") -> tuple[pd.Series, int]:
    """Strip thousands separators from ``series`` and parse it as numbers.

    Parameters
    ----------
    series : pd.Series
        Values such as ``"1,234"`` or ``1234``.
    errors : str
        ``"coerce"`` turns unparseable values into NaN; ``"raise"`` raises
        :class:`ParseError` on the first one.

    Returns
    -------
    tuple[pd.Series, int]
        The numeric series and the number of non-null inputs that could not
        be parsed.
    """
    if errors not in {"coerce", "raise"}:
        raise ValueError("errors must be 'coerce' or 'raise'")

    if pd.api.types.is_numeric_dtype(series):
        return series, 0

    stripped = series.astype(str).str.replace(_SEPARATORS, "", regex=True)
    parsed = pd.to_numeric(stripped, errors="coerce")
    bad = parsed.isna() & series.notna()
    if bad.any() and errors == "raise":
        first = series[bad].iloc[0]
        raise ParseError(f"Cannot parse {first!r} in column {series.name!r} as a number.")
    return parsed.astype("float64"), int(bad.sum())


def drop_incomplete(df: pd.DataFrame, subset: list[str] | None = None) -> pd.DataFrame:
    """Drop every row holding a null; ``subset`` limits which columns count."""
    return df.dropna(subset=subset, how="any").reset_index(drop=True)


def ensure_columns(df: pd.DataFrame, required: list[str]) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise SchemaError(f"Missing expected columns: {missing}")


def read_source(path: Path) -> pd.DataFrame:
    """Read the raw CSV, translating I/O and parser failures into ``LoadError``."""
    path = Path(path)
    try:
        df = pd.read_csv(path)
    except FileNotFoundError as exc:
        raise LoadError(f"Input file not found: {path}") from exc
    except (IsADirectoryError, PermissionError) as exc:
        raise LoadError(f"Cannot read {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise LoadError(f"{path} is not valid UTF-8 text.") from exc
    except pd.errors.EmptyDataError as exc:
        raise LoadError(f"{path} is empty.") from exc
    except pd.errors.ParserError as exc:
        raise LoadError(f"{path} could not be parsed as CSV: {exc}") from exc

    if df.shape[1] < 2:
        raise LoadError(
            f"{path} parsed into a single column; is it comma-delimited?"
        )
    return df


def clean(
    df: pd.DataFrame,
    errors: str = "coerce",
    subset: list[str] | None = None,
) -> tuple[pd.DataFrame, int, int]:
    """Normalize, coerce and filter a raw frame.

    Returns the cleaned frame, the number of rows dropped and the number of
    discharge cells that failed to parse.
    """
    out = normalize_columns(df)
    ensure_columns(out, REQUIRED_COLUMNS)

    out[DISCHARGES_COL], coerced = coerce_numeric(out[DISCHARGES_COL], errors=errors)
    if coerced:
        logger.warning(
            "%d %s value(s) could not be parsed and were set to null",
            coerced,
            DISCHARGES_COL,
        )

    before = len(out)
    out = drop_incomplete(out, subset=subset)
    dropped = before - len(out)
    if dropped:
        logger.info("Dropped %d of %d rows with missing values", dropped, before)

    year = out[YEAR_COL]
    if pd.api.types.is_float_dtype(year) and len(out) > 0 and year.notna().all():
        out[YEAR_COL] = out[YEAR_COL].astype("int64")

    return out, dropped, coerced


def load_clean_table(path: Path, errors: str = "coerce") -> CleanedTable:
    """Read ``path`` and return the cleaned, immutable table handle."""
    path = Path(path)
    raw = read_source(path)
    logger.info("Loaded %d rows x %d columns from %s", raw.shape[0], raw.shape[1], path)
    frame, dropped, coerced = clean(raw, errors=errors)
    return CleanedTable(
        frame=frame,
        source=path,
        raw_rows=len(raw),
        dropped_rows=dropped,
        coerced_cells=coerced,
    )


# ------------------------------
# AGGREGATION VIEWS
# ------------------------------
def yearly_totals(df: pd.DataFrame) -> pd.DataFrame:
    """Sum of discharges per (facility, year)."""
    out = (
        df.groupby([FACILITY_COL, YEAR_COL], as_index=False)[DISCHARGES_COL]
        .sum()
        .rename(columns={DISCHARGES_COL: "total_discharges"})
    )
    logger.debug("yearly_totals: %d groups", len(out))
    return out


def charge_gap_ranking(df: pd.DataFrame, top_n: int = TOP_N) -> pd.DataFrame:
    """Facilities ranked by the summed gap between mean charge and mean cost.

    Missing gaps contribute nothing to a facility's total. Facilities with
    equal totals keep the order in which they first appear in ``df``.
    """
    gap = (df[MEAN_CHARGE_COL] - df[MEAN_COST_COL]).rename("total_gap")
    totals = (
        gap.groupby(df[FACILITY_COL], sort=False)
        .sum(min_count=0)
        .reset_index()
    )
    ranked = totals.sort_values("total_gap", ascending=False, kind="mergesort")
    return ranked.head(top_n).reset_index(drop=True)


def facility_time_series(df: pd.DataFrame, facility: str) -> pd.DataFrame:
    """Every row for ``facility`` as (year, mean_charge, discharges)."""
    rows = df.loc[df[FACILITY_COL] == facility, [YEAR_COL, MEAN_CHARGE_COL, DISCHARGES_COL]]
    return rows.sort_values(YEAR_COL, kind="mergesort").reset_index(drop=True)


def severity_averages(df: pd.DataFrame) -> pd.DataFrame:
    """Average mean cost and mean charge for each severity level present."""
    out = (
        df.groupby(SEVERITY_COL, sort=False, observed=True)
        .agg(
            avg_mean_cost=(MEAN_COST_COL, "mean"),
            avg_mean_charge=(MEAN_CHARGE_COL, "mean"),
        )
        .reset_index()
    )
    # Known levels first, in clinical order; anything else keeps first-seen order.
    rank = {level: i for i, level in enumerate(SEVERITY_ORDER)}
    order = out[SEVERITY_COL].map(lambda s: rank.get(s, len(rank)))
    out = out.assign(_order=order).sort_values("_order", kind="mergesort")
    return out.drop(columns="_order").reset_index(drop=True)


def facility_names(df: pd.DataFrame) -> list:
    """Distinct facilities in their stored dtype, ordered by their text."""
    return sorted(df[FACILITY_COL].unique().tolist(), key=str)
