"""
Tabular summaries of analytics and listings for the operator CLI.
"""

from typing import List

import pandas as pd

from rxportal.models import Prescription, TopDrug


def top_drugs_frame(items: List[TopDrug]) -> pd.DataFrame:
    """One row per drug, with each drug's share of the window's total quantity."""
    df = pd.DataFrame(
        [it.to_dict() for it in items],
        columns=["drug_id", "drug_name", "total_quantity"],
    )
    total = df["total_quantity"].sum()
    df["share_pct"] = (df["total_quantity"] / total * 100).round(1) if total else 0.0
    return df


def prescriptions_frame(items: List[Prescription]) -> pd.DataFrame:
    columns = ["id", "prescribed_at", "patient_name", "physician_name", "drug_name", "quantity", "sig"]
    return pd.DataFrame([p.to_dict() for p in items], columns=columns)


def render(df: pd.DataFrame, max_rows: int) -> str:
    if df.empty:
        return "(no rows returned)"
    return df.head(max_rows).to_string(index=False)
