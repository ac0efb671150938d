from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

BRAND_COLORS = ["#0088FE", "#00C49F", "#FFBB28", "#FF8042", "#AF19FF"]


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def _frame(items: List[Dict[str, Any]], columns: List[str]) -> pd.DataFrame:
    return pd.DataFrame(items, columns=columns) if items else pd.DataFrame(columns=columns)


def brand_share_chart(items: List[Dict[str, Any]]) -> alt.Chart:
    df = _frame(items, ["name", "value"])
    return (
        alt.Chart(df)
        .mark_arc(outerRadius=120)
        .encode(
            theta=alt.Theta("value:Q"),
            color=alt.Color("name:N", title="Brand", scale=alt.Scale(range=BRAND_COLORS)),
            tooltip=[alt.Tooltip("name:N", title="Brand"), alt.Tooltip("value:Q", title="Collaborations")],
        )
        .properties(height=300)
    )


def province_chart(items: List[Dict[str, Any]]) -> alt.Chart:
    df = _frame(items, ["name", "value"])
    return (
        alt.Chart(df)
        .mark_bar(color="#8884d8")
        .encode(
            x=alt.X("name:N", title="Province", sort=None, axis=alt.Axis(labelAngle=-30)),
            y=alt.Y("value:Q", title="KOCs", axis=alt.Axis(format="d", gridDash=[3, 3])),
            tooltip=[alt.Tooltip("name:N", title="Province"), alt.Tooltip("value:Q", title="KOCs")],
        )
        .properties(height=300)
    )


def trend_chart(items: List[Dict[str, Any]]) -> alt.Chart:
    df = _frame(items, ["name", "value"])
    return (
        alt.Chart(df)
        .mark_line(point=True, color="#82ca9d", strokeWidth=2)
        .encode(
            x=alt.X("name:N", title="Month", sort=None),
            y=alt.Y("value:Q", title="Collaborations", axis=alt.Axis(format="d", gridDash=[3, 3])),
            tooltip=[alt.Tooltip("name:N", title="Month"), alt.Tooltip("value:Q", title="Collaborations")],
        )
        .properties(height=300)
    )
