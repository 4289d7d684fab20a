import logging

import streamlit as st

# This MUST be the first Streamlit command in the whole app
st.set_page_config(
    page_title="Hospital Inpatient Cost Dashboard",
    page_icon="🏥",
    layout="wide",
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

st.title("Hospital Inpatient Cost Dashboard")
st.write(
    "Use the navigation in the left sidebar to open **Overview**, "
    "**Data Explorer**, **Charges**, and **About** pages."
)
