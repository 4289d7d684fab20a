import pandas as pd
import pytest

RAW_COLUMNS = [
    "Year",
    "Facility Name",
    "Discharges",
    "Mean Charge",
    "Mean Cost",
    "APR Severity Of Illness Description",
]


def raw_frame(rows):
    return pd.DataFrame(rows, columns=RAW_COLUMNS)


@pytest.fixture
def cleaned():
    """A small frame already in canonical form."""
    return pd.DataFrame(
        {
            "year": [2010, 2011, 2010, 2010, 2011, 2011],
            "facility_name": ["A", "A", "B", "A", "B", "C"],
            "discharges": [10.0, 20.0, 5.0, 7.0, 3.0, 1.0],
            "mean_charge": [100.0, 200.0, 50.0, 80.0, 60.0, 30.0],
            "mean_cost": [60.0, 90.0, 40.0, 50.0, 45.0, 20.0],
            "apr_severity_of_illness_description": [
                "Minor",
                "Major",
                "Minor",
                "Moderate",
                "Major",
                "Minor",
            ],
        }
    )
