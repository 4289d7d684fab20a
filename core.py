import logging
from datetime import datetime
from io import BytesIO
from pathlib import Path

import altair as alt
import pandas as pd
import streamlit as st
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from pipeline import (
    DISCHARGES_COL,
    FACILITY_COL,
    MEAN_CHARGE_COL,
    MEAN_COST_COL,
    SEVERITY_COL,
    TOP_N,
    YEAR_COL,
    CleanedTable,
    PipelineError,
    charge_gap_ranking,
    facility_names,
    facility_time_series,
    load_clean_table,
    severity_averages,
    yearly_totals,
)

logger = logging.getLogger(__name__)

# ------------------------------
# DATA PATH & CHART SETTINGS
# ------------------------------
DATA_PATH = Path("data/hospital_inpatient_costs.csv")

# Facilities pre-selected in the yearly totals chart
DEFAULT_YEARLY_FACILITIES = 5

METRIC_LABELS = {
    "avg_mean_cost": "Average Mean Cost",
    "avg_mean_charge": "Average Mean Charge",
}


# ------------------------------
# DATA LOADING
# ------------------------------
@st.cache_data
def load_table(path: Path) -> CleanedTable:
    return load_clean_table(path)


def get_table(path: Path = DATA_PATH) -> CleanedTable:
    """Load the cleaned table, or show the error and stop the page."""
    try:
        return load_table(path)
    except PipelineError as exc:
        logger.error("Could not build cleaned table from %s: %s", path, exc)
        st.error(f"Could not load the dataset: {exc}")
        st.stop()


# ------------------------------
# THEME (LIGHT ONLY) + CSS
# ------------------------------
def get_theme(dark_mode: bool = False) -> dict:
    """Return theme colors. We always use the light theme."""
    return {
        "APP_BG": "#f3f4f6",
        "TEXT_COLOR": "#111827",
        "CARD_GRADIENT": "linear-gradient(135deg, #ffffff 0%, #f3f4f6 100%)",
        "BORDER": "#e5e7eb",
        "SUBTXT": "#6b7280",
    }


def apply_theme_css(theme: dict) -> None:
    APP_BG = theme["APP_BG"]
    TEXT_COLOR = theme["TEXT_COLOR"]

    st.markdown(
        f"""
        <style>
        .stApp {{
            background-color: {APP_BG};
            color: {TEXT_COLOR};
            font-family: "Inter", system-ui, -apple-system, BlinkMacSystemFont,
                         "Segoe UI", sans-serif;
        }}
        .kpi-card {{
            transition: transform 0.2s ease-out, box-shadow 0.2s ease-out;
        }}
        .kpi-card:hover {{
            transform: translateY(-4px);
            box-shadow: 0 12px 30px rgba(15,23,42,0.15);
        }}
        </style>
        """,
        unsafe_allow_html=True,
    )


# ------------------------------
# FILTERS (USED BY ALL PAGES)
# ------------------------------
def filter_frame(
    df: pd.DataFrame, years: tuple[int, int], severities: list[str]
) -> pd.DataFrame:
    """Rows inside the inclusive year range with one of ``severities``."""
    mask = df[YEAR_COL].between(years[0], years[1]) & df[SEVERITY_COL].isin(severities)
    return df[mask].copy()


def get_filtered_data(table: CleanedTable) -> pd.DataFrame:
    """Draw sidebar filters and return the filtered cleaned frame."""
    df_clean = table.frame
    st.sidebar.markdown("## Filters")

    if st.sidebar.button("Reset All Filters"):
        for key in list(st.session_state.keys()):
            if key.startswith(("sev_", "all_", "years")):
                st.session_state.pop(key)
        st.rerun()

    if df_clean.empty:
        return df_clean.copy()

    # --- Year range ---
    year_min = int(df_clean[YEAR_COL].min())
    year_max = int(df_clean[YEAR_COL].max())
    if year_min < year_max:
        years = st.sidebar.slider(
            "Year range", year_min, year_max, (year_min, year_max), key="years"
        )
    else:
        years = (year_min, year_max)

    # --- Severity filter ---
    with st.sidebar.expander("Severity of Illness", expanded=False):
        present = list(severity_averages(df_clean)[SEVERITY_COL])
        all_sev = st.checkbox("Select All", value=True, key="all_sev")
        if all_sev:
            sev_selected = present
        else:
            sev_selected = [s for s in present if st.checkbox(s, key=f"sev_{s}")]

    return filter_frame(df_clean, years, sev_selected)


# ------------------------------
# KPI / METRIC HELPERS
# ------------------------------
def compute_kpis(df: pd.DataFrame) -> dict:
    """Compute the headline numbers shown on the overview cards."""
    if len(df) > 0:
        total_discharges = int(df[DISCHARGES_COL].sum())
        facilities = int(df[FACILITY_COL].nunique())
        avg_gap = round(float((df[MEAN_CHARGE_COL] - df[MEAN_COST_COL]).mean()), 2)
        cost_sum = df[MEAN_COST_COL].sum()
        markup = round(float(df[MEAN_CHARGE_COL].sum() / cost_sum), 2) if cost_sum else 0.0
        year_span = f"{int(df[YEAR_COL].min())}–{int(df[YEAR_COL].max())}"
    else:
        total_discharges = 0
        facilities = 0
        avg_gap = 0.0
        markup = 0.0
        year_span = "n/a"

    return {
        "total_discharges": total_discharges,
        "facilities": facilities,
        "avg_gap": avg_gap,
        "markup": markup,
        "year_span": year_span,
    }


def busiest_facilities(yearly: pd.DataFrame, n: int = DEFAULT_YEARLY_FACILITIES) -> list:
    totals = yearly.groupby(FACILITY_COL)["total_discharges"].sum()
    return totals.sort_values(ascending=False, kind="mergesort").head(n).index.tolist()


# ------------------------------
# CHARTS
# ------------------------------
def yearly_totals_chart(yearly: pd.DataFrame) -> alt.Chart:
    """Stacked discharges per year, one colour per facility."""
    return (
        alt.Chart(yearly)
        .mark_bar()
        .encode(
            x=alt.X(f"{YEAR_COL}:O", title="Year"),
            y=alt.Y("total_discharges:Q", title="Total Discharges"),
            color=alt.Color(
                f"{FACILITY_COL}:N",
                title="Facility",
                legend=alt.Legend(orient="bottom", columns=2, labelLimit=320),
            ),
            tooltip=[
                alt.Tooltip(f"{FACILITY_COL}:N", title="Facility"),
                alt.Tooltip(f"{YEAR_COL}:O", title="Year"),
                alt.Tooltip("total_discharges:Q", title="Discharges", format=","),
            ],
        )
    )


def charge_gap_chart(ranking: pd.DataFrame) -> alt.Chart:
    return (
        alt.Chart(ranking)
        .mark_bar(color="#ef4444")
        .encode(
            x=alt.X("total_gap:Q", title="Total Charge Gap ($)", axis=alt.Axis(format="$,.0f")),
            y=alt.Y(f"{FACILITY_COL}:N", title=None, sort="-x"),
            tooltip=[
                alt.Tooltip(f"{FACILITY_COL}:N", title="Facility"),
                alt.Tooltip("total_gap:Q", title="Charge Gap", format="$,.2f"),
            ],
        )
    )


def facility_trend_chart(series: pd.DataFrame, facility: str) -> alt.LayerChart:
    """Discharges (bars) against mean charge (line) on independent y axes.

    Several rows per year are summed for discharges and averaged for charge.
    """
    base = alt.Chart(series).encode(x=alt.X(f"{YEAR_COL}:O", title="Year"))

    bars = base.mark_bar(color="#3b82f6", opacity=0.6).encode(
        y=alt.Y(f"sum({DISCHARGES_COL}):Q", title="Discharges"),
        tooltip=[
            alt.Tooltip(f"{YEAR_COL}:O", title="Year"),
            alt.Tooltip(f"sum({DISCHARGES_COL}):Q", title="Discharges", format=","),
        ],
    )
    line = base.mark_line(color="#ef4444", point=True).encode(
        y=alt.Y(
            f"mean({MEAN_CHARGE_COL}):Q",
            title="Mean Charge ($)",
            axis=alt.Axis(format="$,.0f"),
        ),
        tooltip=[
            alt.Tooltip(f"{YEAR_COL}:O", title="Year"),
            alt.Tooltip(f"mean({MEAN_CHARGE_COL}):Q", title="Mean Charge", format="$,.2f"),
        ],
    )
    return alt.layer(bars, line).resolve_scale(y="independent").properties(title=str(facility))


def severity_chart(averages: pd.DataFrame) -> alt.Chart:
    """Grouped bars: average cost next to average charge per severity."""
    long = averages.melt(
        id_vars=[SEVERITY_COL],
        value_vars=list(METRIC_LABELS),
        var_name="metric",
        value_name="amount",
    )
    long["metric"] = long["metric"].map(METRIC_LABELS)
    order = list(averages[SEVERITY_COL])

    return (
        alt.Chart(long)
        .mark_bar()
        .encode(
            x=alt.X(f"{SEVERITY_COL}:N", title="Severity of Illness", sort=order),
            xOffset=alt.XOffset("metric:N"),
            y=alt.Y("amount:Q", title="Amount ($)", axis=alt.Axis(format="$,.0f")),
            color=alt.Color(
                "metric:N",
                title=None,
                scale=alt.Scale(range=["#3b82f6", "#ef4444"]),
                legend=alt.Legend(orient="top"),
            ),
            tooltip=[
                alt.Tooltip(f"{SEVERITY_COL}:N", title="Severity"),
                alt.Tooltip("metric:N", title="Metric"),
                alt.Tooltip("amount:Q", title="Amount", format="$,.2f"),
            ],
        )
    )


# ------------------------------
# INSIGHTS
# ------------------------------
def build_insights(
    yearly: pd.DataFrame,
    ranking: pd.DataFrame,
    averages: pd.DataFrame,
) -> dict:
    """Short narrative paragraphs for each view, keyed by view name."""
    insights = {}

    if yearly.empty:
        insights["yearly"] = "No discharges are recorded for the current filters."
    else:
        per_year = yearly.groupby(YEAR_COL)["total_discharges"].sum()
        peak_year = int(per_year.idxmax())
        busiest = busiest_facilities(yearly, 1)[0]
        insights["yearly"] = (
            f"Discharge volume peaks in **{peak_year}** with "
            f"**{int(per_year.max()):,}** discharges. "
            f"**{busiest}** handles the largest volume across the period."
        )

    if ranking.empty:
        insights["ranking"] = "No facilities are available to rank."
    else:
        top = ranking.iloc[0]
        gap_sum = ranking["total_gap"].sum()
        share = top["total_gap"] / gap_sum * 100 if gap_sum else 0.0
        insights["ranking"] = (
            f"**{top[FACILITY_COL]}** shows the widest gap between what it bills and "
            f"what care costs, **${top['total_gap']:,.0f}** summed over all years, "
            f"{share:.1f}% of the top-{len(ranking)} total."
        )

    if averages.empty:
        insights["severity"] = "No severity groups are present for the current filters."
    else:
        ratio = averages["avg_mean_charge"] / averages["avg_mean_cost"]
        high = averages.loc[averages["avg_mean_cost"].idxmax()]
        low = averages.loc[averages["avg_mean_cost"].idxmin()]
        insights["severity"] = (
            f"Average cost ranges from **${low['avg_mean_cost']:,.0f}** "
            f"({low[SEVERITY_COL]}) to **${high['avg_mean_cost']:,.0f}** "
            f"({high[SEVERITY_COL]}). Charges run **{ratio.min():.1f}×** to "
            f"**{ratio.max():.1f}×** the underlying cost across severity groups."
        )

    return insights


# ------------------------------
# EXPORTS
# ------------------------------
def build_views_excel(
    yearly: pd.DataFrame,
    ranking: pd.DataFrame,
    averages: pd.DataFrame,
) -> BytesIO:
    """Create an Excel workbook with one sheet per aggregate view."""
    out = BytesIO()
    with pd.ExcelWriter(out, engine="openpyxl") as writer:
        yearly.to_excel(writer, index=False, sheet_name="Yearly Totals")
        ranking.to_excel(writer, index=False, sheet_name="Charge Gap Ranking")
        averages.to_excel(writer, index=False, sheet_name="Severity Averages")
    out.seek(0)
    return out


def build_pdf(kpis: dict, ranking: pd.DataFrame) -> BytesIO:
    """Create a one-page PDF with the KPIs and the top of the charge gap ranking."""
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    width, height = letter

    c.setFont("Helvetica-Bold", 16)
    c.drawString(40, height - 40, "Hospital Inpatient Cost Report")
    c.setFont("Helvetica", 10)
    c.drawString(
        40,
        height - 60,
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}",
    )

    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, height - 90, "Key Figures")
    c.setFont("Helvetica", 10)
    c.drawString(60, height - 110, f"Years covered: {kpis['year_span']}")
    c.drawString(60, height - 125, f"Total discharges: {kpis['total_discharges']:,}")
    c.drawString(60, height - 140, f"Facilities: {kpis['facilities']:,}")
    c.drawString(60, height - 155, f"Average charge gap per record: ${kpis['avg_gap']:,.2f}")
    c.drawString(60, height - 170, f"Charge-to-cost ratio: {kpis['markup']}x")

    c.setFont("Helvetica-Bold", 12)
    c.drawString(40, height - 200, f"Top {len(ranking)} Facilities by Charge Gap")
    c.setFont("Helvetica", 9)
    y = height - 220
    for rank, row in enumerate(ranking.itertuples(index=False), start=1):
        c.drawString(60, y, f"{rank:>2}. {getattr(row, FACILITY_COL)}")
        c.drawRightString(width - 60, y, f"${row.total_gap:,.2f}")
        y -= 14

    c.showPage()
    c.save()
    buf.seek(0)
    return buf


# ------------------------------
# PAGE RENDERERS
# ------------------------------
def kpi_card(theme: dict, value: str, title: str, caption: str) -> str:
    return f"""
        <div class="kpi-card" style='background:{theme['CARD_GRADIENT']}; padding:1.5rem;
                    border-radius:20px; border:1px solid {theme['BORDER']}; text-align:center;'>
            <div style='font-weight:700; font-size:1.6rem; color:{theme['TEXT_COLOR']};'>
                {value}
            </div>
            <h4 style='margin-top:10px;'>{title}</h4>
            <p style='color:{theme['SUBTXT']}; font-size:0.9rem;'>{caption}</p>
        </div>
        """


def show_overview(theme: dict, table: CleanedTable, df: pd.DataFrame) -> None:
    """Render the Overview page: KPI cards, yearly totals and downloads."""
    TEXT_COLOR = theme["TEXT_COLOR"]
    SUBTXT = theme["SUBTXT"]

    kpis = compute_kpis(df)
    yearly = yearly_totals(df)
    ranking = charge_gap_ranking(df)
    averages = severity_averages(df)

    header_left, header_right = st.columns([3, 2])

    with header_left:
        st.markdown(
            f"""
            <h2 style='margin-bottom:-6px; color:{TEXT_COLOR};'>
                Hospital Inpatient Cost Dashboard
            </h2>
            <p style='color:{SUBTXT};'>Discharges, charges and costs by facility</p>
            """,
            unsafe_allow_html=True,
        )

    with header_right:
        st.download_button(
            "Download Aggregate Views (Excel)",
            data=build_views_excel(yearly, ranking, averages),
            file_name="aggregate_views.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )
        st.download_button(
            "Download Cost Report (PDF)",
            data=build_pdf(kpis, ranking),
            file_name="cost_report.pdf",
            mime="application/pdf",
        )

    k1, k2, k3, k4 = st.columns(4)
    with k1:
        st.markdown(
            kpi_card(theme, f"{kpis['total_discharges']:,}", "Total Discharges",
                     f"Patients released from care, {kpis['year_span']}."),
            unsafe_allow_html=True,
        )
    with k2:
        st.markdown(
            kpi_card(theme, f"{kpis['facilities']:,}", "Facilities",
                     "Hospitals with at least one complete record."),
            unsafe_allow_html=True,
        )
    with k3:
        st.markdown(
            kpi_card(theme, f"${kpis['avg_gap']:,.0f}", "Average Charge Gap",
                     "Mean charge minus mean cost, per record."),
            unsafe_allow_html=True,
        )
    with k4:
        st.markdown(
            kpi_card(theme, f"{kpis['markup']}×", "Charge-to-Cost Ratio",
                     "Billed amount for every dollar of cost."),
            unsafe_allow_html=True,
        )

    st.markdown("### Data Quality")
    st.markdown(
        f"""
        - **Rows read from source:** {table.raw_rows:,}
        - **Rows dropped for missing values:** {table.dropped_rows:,}
        - **Discharge values that could not be parsed:** {table.coerced_cells:,}
        - **Rows after current filters:** {len(df):,}
        """,
    )
    st.caption(f"Source: {table.source} · Last updated: {datetime.now().strftime('%d %b %Y, %H:%M')}")

    st.markdown("## 📊 Yearly Discharges by Facility")
    if yearly.empty:
        st.info("No data available for current filters.")
    else:
        options = facility_names(yearly)
        chosen = st.multiselect(
            "Facilities",
            options,
            default=busiest_facilities(yearly),
            key="yearly_facilities",
        )
        subset = yearly[yearly[FACILITY_COL].isin(chosen)]
        if subset.empty:
            st.info("Select at least one facility.")
        else:
            st.altair_chart(yearly_totals_chart(subset), use_container_width=True)

    insights = build_insights(yearly, ranking, averages)
    st.markdown("## 🔎 Key Insights")
    in1, in2, in3 = st.tabs(["Volume", "Charge Gap", "Severity"])
    with in1:
        st.markdown(insights["yearly"])
    with in2:
        st.markdown(insights["ranking"])
    with in3:
        st.markdown(insights["severity"])

    st.download_button(
        "Download Filtered Dataset (CSV)",
        df.to_csv(index=False).encode("utf-8"),
        "filtered_data_overview.csv",
        "text/csv",
    )


def show_data_explorer(df: pd.DataFrame) -> None:
    st.title("Data Explorer")

    search = st.text_input("Global search", placeholder="Search across all columns...")
    df_view = df.copy()
    if search:
        mask = df_view.apply(
            lambda col: col.astype(str).str.contains(search, case=False, na=False, regex=False)
        )
        df_view = df_view[mask.any(axis=1)]

    st.write(f"Showing **{len(df_view)}** rows after filters and search.")
    st.download_button(
        "Download Filtered CSV",
        df_view.to_csv(index=False).encode("utf-8"),
        "filtered_data.csv",
        "text/csv",
    )
    st.dataframe(df_view, use_container_width=True)


def show_charges(df: pd.DataFrame) -> None:
    """Render the charge gap ranking, a facility trend and severity averages."""
    st.title("Charges & Costs")

    ranking = charge_gap_ranking(df)
    averages = severity_averages(df)
    insights = build_insights(yearly_totals(df), ranking, averages)

    st.subheader(f"Top {TOP_N} Facilities by Charge Gap")
    if ranking.empty:
        st.info("No data available for current filters.")
    else:
        st.altair_chart(charge_gap_chart(ranking), use_container_width=True)
        st.markdown(insights["ranking"])

    st.subheader("Facility Trend: Discharges vs Mean Charge")
    names = facility_names(df)
    if not names:
        st.info("No facilities in the current filter selection.")
    else:
        default = names.index(ranking.iloc[0][FACILITY_COL]) if not ranking.empty else 0
        facility = st.selectbox("Facility", names, index=default)
        series = facility_time_series(df, facility)
        if series.empty:
            st.info("No records for this facility.")
        else:
            st.altair_chart(facility_trend_chart(series, facility), use_container_width=True)

    st.subheader("Average Cost and Charge by Severity of Illness")
    if averages.empty:
        st.info("No data available for current filters.")
    else:
        st.altair_chart(severity_chart(averages), use_container_width=True)
        st.markdown(insights["severity"])


def show_about_page() -> None:
    st.title("About This Dashboard")

    st.markdown(
        """
    ### Overview
    This dashboard summarizes **hospital inpatient discharges** together with the
    **mean charge** billed and the **mean cost** of care, by facility, year and
    severity of illness.

    - **Yearly discharges** per facility
    - **Top 15 facilities** by the summed gap between charge and cost
    - **Discharges vs mean charge** over time for one facility
    - **Average cost and charge** per severity of illness level

    ---

    ### Data Preparation
    - Discharge counts are published with thousands separators (`"1,234"`); separators
      are stripped and values that still are not numbers are treated as missing.
    - Column names are converted to lowercase with underscores.
    - Any row with a missing value in any column is removed before analysis.

    ---

    ### Dataset Information
    The data follow the New York State SPARCS *Hospital Inpatient Cost Transparency*
    release, which reports discharges, mean/median charges and mean/median costs per
    facility, APR-DRG and severity of illness.

    **Dataset link:**
    👉 https://health.data.ny.gov/
    """
    )
