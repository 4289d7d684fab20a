from pathlib import Path

import pandas as pd

import core
from core import (
    build_insights,
    build_pdf,
    build_views_excel,
    busiest_facilities,
    charge_gap_chart,
    compute_kpis,
    facility_trend_chart,
    filter_frame,
    severity_chart,
    yearly_totals_chart,
)
from pipeline import (
    LoadError,
    charge_gap_ranking,
    facility_names,
    facility_time_series,
    severity_averages,
    yearly_totals,
)


def test_filter_frame_by_year_and_severity(cleaned):
    out = filter_frame(cleaned, (2011, 2011), ["Major", "Minor"])
    assert set(out["year"]) == {2011}
    assert len(out) == 3


def test_compute_kpis(cleaned):
    kpis = compute_kpis(cleaned)
    assert kpis["total_discharges"] == 46
    assert kpis["facilities"] == 3
    assert kpis["year_span"] == "2010–2011"


def test_compute_kpis_empty(cleaned):
    kpis = compute_kpis(cleaned.iloc[0:0])
    assert kpis["total_discharges"] == 0
    assert kpis["year_span"] == "n/a"


def test_busiest_facilities(cleaned):
    assert busiest_facilities(yearly_totals(cleaned), 2) == ["A", "B"]


def test_yearly_totals_chart_has_tooltips_and_bottom_legend(cleaned):
    vl = yearly_totals_chart(yearly_totals(cleaned)).to_dict()
    enc = vl["encoding"]
    assert enc["x"]["field"] == "year"
    assert enc["y"]["field"] == "total_discharges"
    assert enc["color"]["legend"]["orient"] == "bottom"
    assert len(enc["tooltip"]) == 3


def test_charge_gap_chart_sorted_by_gap(cleaned):
    vl = charge_gap_chart(charge_gap_ranking(cleaned)).to_dict()
    assert vl["encoding"]["y"]["sort"] == "-x"
    assert vl["encoding"]["x"]["field"] == "total_gap"


def test_facility_trend_chart_uses_independent_axes(cleaned):
    vl = facility_trend_chart(facility_time_series(cleaned, "A"), "A").to_dict()
    assert len(vl["layer"]) == 2
    assert vl["resolve"]["scale"]["y"] == "independent"
    assert vl["title"] == "A"


def test_severity_chart_groups_cost_and_charge(cleaned):
    vl = severity_chart(severity_averages(cleaned)).to_dict()
    assert vl["encoding"]["xOffset"]["field"] == "metric"
    assert vl["encoding"]["x"]["sort"] == ["Minor", "Moderate", "Major"]


def test_build_insights(cleaned):
    insights = build_insights(
        yearly_totals(cleaned), charge_gap_ranking(cleaned), severity_averages(cleaned)
    )
    assert "**2011**" in insights["yearly"]
    assert "**A**" in insights["ranking"]
    assert "(Minor)" in insights["severity"]


def test_build_insights_empty_views(cleaned):
    empty = cleaned.iloc[0:0]
    insights = build_insights(
        yearly_totals(empty), charge_gap_ranking(empty), severity_averages(empty)
    )
    assert insights["yearly"].startswith("No ")
    assert insights["ranking"].startswith("No ")
    assert insights["severity"].startswith("No ")


def test_build_views_excel_has_one_sheet_per_view(cleaned):
    buf = build_views_excel(
        yearly_totals(cleaned), charge_gap_ranking(cleaned), severity_averages(cleaned)
    )
    sheets = pd.read_excel(buf, sheet_name=None, engine="openpyxl")
    assert set(sheets) == {"Yearly Totals", "Charge Gap Ranking", "Severity Averages"}
    assert list(sheets["Charge Gap Ranking"]["facility_name"]) == ["A", "B", "C"]


def test_build_pdf(cleaned):
    buf = build_pdf(compute_kpis(cleaned), charge_gap_ranking(cleaned))
    assert buf.getvalue().startswith(b"%PDF")


def test_get_table_shows_error_and_stops(monkeypatch):
    def fail(path):
        raise LoadError("Input file not found: missing.csv")

    errors, stops = [], []
    monkeypatch.setattr(core, "load_table", fail)
    monkeypatch.setattr(core.st, "error", errors.append)
    monkeypatch.setattr(core.st, "stop", lambda: stops.append(True))

    assert core.get_table(Path("missing.csv")) is None
    assert "missing.csv" in errors[0]
    assert stops == [True]


def test_compute_kpis_zero_cost_has_no_markup(cleaned):
    kpis = compute_kpis(cleaned.assign(mean_cost=0.0))
    assert kpis["markup"] == 0.0


def test_build_insights_severity_uses_cheapest_and_costliest_levels():
    averages = pd.DataFrame(
        {
            "apr_severity_of_illness_description": ["Minor", "Major", "Unclassified"],
            "avg_mean_cost": [100.0, 300.0, 50.0],
            "avg_mean_charge": [200.0, 600.0, 100.0],
        }
    )
    empty = pd.DataFrame(columns=["facility_name", "year", "total_discharges"])
    ranking = pd.DataFrame(columns=["facility_name", "total_gap"])
    text = build_insights(empty, ranking, averages)["severity"]
    assert "from **$50** (Unclassified) to **$300** (Major)" in text


def test_busiest_facilities_are_valid_facility_names():
    df = pd.DataFrame(
        {
            "facility_name": [3, 12, 3],
            "year": [2010, 2010, 2011],
            "discharges": [5.0, 40.0, 6.0],
        }
    )
    yearly = yearly_totals(df)
    names = facility_names(df)
    assert busiest_facilities(yearly) == [12, 3]
    assert all(name in names for name in busiest_facilities(yearly))


def test_page_prose_uses_plain_punctuation():
    pages = Path(__file__).resolve().parent.parent / "pages"
    for page in pages.glob("*.py"):
        assert "—" not in page.read_text(encoding="utf-8"), page.name
