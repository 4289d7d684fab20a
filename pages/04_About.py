import streamlit as st
from core import show_about_page

# ----------------------------
# ABOUT PAGE
# ----------------------------

show_about_page()

st.divider()

st.header("How the Numbers Are Built")

st.markdown(
    """
**Yearly discharges:** sum of discharges for every facility and year.  
**Charge gap:** for each record, mean charge minus mean cost; summed per facility across all
years and severity groups, then ranked from highest to lowest.  
**Facility trend:** the selected facility's discharges (summed per year) against its mean
charge (averaged per year).  
**Severity averages:** arithmetic mean of mean cost and mean charge within each severity of
illness level. Levels without any records are left out rather than shown as zero.
"""
)

st.divider()

st.header("Dataset Source")

st.caption(
    "Dashboard data source: New York State Department of Health, Statewide Planning and "
    "Research Cooperative System (SPARCS): Hospital Inpatient Cost Transparency."
)

st.success("Thank you for viewing this dashboard!")
