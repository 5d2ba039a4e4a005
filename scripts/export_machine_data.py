"""
Purpose: Export synthetic machine telemetry, optionally with a KPI formula column
Input: machine id from the catalog, row count, optional formula
Output: CSV file (one row per timestamp)

Pipeline Structure:
1. Row Generation
2. Formula Evaluation
3. Summary Statistics & Export

Usage:
    python scripts/export_machine_data.py cnc --rows 500 --output cnc.csv
    python scripts/export_machine_data.py cnc --formula "powerConsumption / feedRate" --aggregation median
"""

import argparse
import os
import sys

import numpy as np
import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kpi_dashboard.catalog import get_variable_names, list_machines
from kpi_dashboard.schemas import AggregationKind
from kpi_dashboard.services.data_generator import generate_machine_data
from kpi_dashboard.services.formula_engine import aggregate_results, evaluate_formula, validate_formula


# SECTION 1: ROW GENERATION

def build_frame(machine_id: str, rows: int, seed: int | None) -> pd.DataFrame:
    """Generate rows and index them by a UTC datetime column."""
    rng = np.random.default_rng(seed)
    data = generate_machine_data(machine_id, rows, rng=rng)
    df = pd.DataFrame(data, columns=['timestamp', *get_variable_names(machine_id)])
    df.insert(1, 'datetime', pd.to_datetime(df['timestamp'], unit='ms', utc=True))
    return df


# SECTION 2: FORMULA EVALUATION

def add_formula_column(df: pd.DataFrame, machine_id: str, formula: str, column: str) -> pd.DataFrame:
    check = validate_formula(formula, get_variable_names(machine_id))
    if not check.is_valid:
        raise SystemExit(f"[ERROR] {check.error}")

    records = df.drop(columns=['datetime']).to_dict(orient='records')
    evaluation = evaluate_formula(formula, records)
    if not evaluation.is_valid:
        raise SystemExit(f"[ERROR] {evaluation.error}")

    df[column] = evaluation.result
    return df


# SECTION 3: SUMMARY STATISTICS & EXPORT

def print_summary(df: pd.DataFrame, column: str | None, aggregation: str) -> None:
    print("[INFO] Export Summary")
    print(f"Rows: {len(df)}")
    if len(df):
        print(f"From: {df['datetime'].iloc[0]}")
        print(f"To:   {df['datetime'].iloc[-1]}")
    if column:
        value = aggregate_results(df[column].tolist(), aggregation)
        print(f"{aggregation.capitalize()} of {column}: {value:.4f}")
    print()


def main():
    machine_ids = [machine.id for machine in list_machines()]

    parser = argparse.ArgumentParser(description='Export synthetic machine data to CSV')
    parser.add_argument('machine_id', choices=machine_ids, help='Machine identifier')
    parser.add_argument('--rows', type=int, default=100, help='Number of rows (default: 100)')
    parser.add_argument('--seed', type=int, default=None, help='Random seed for reproducible output')
    parser.add_argument('--formula', help='Formula to evaluate as an extra column')
    parser.add_argument('--column', default='kpi', help='Name of the formula column (default: kpi)')
    parser.add_argument('--aggregation', default='average', choices=[k.value for k in AggregationKind],
                        help='Aggregation reported for the formula column')
    parser.add_argument('--output', default=None, help='Output CSV path (default: <machine_id>_data.csv)')

    args = parser.parse_args()

    df = build_frame(args.machine_id, args.rows, args.seed)

    column = None
    if args.formula:
        df = add_formula_column(df, args.machine_id, args.formula, args.column)
        column = args.column

    print_summary(df, column, args.aggregation)

    output = args.output or f"{args.machine_id}_data.csv"
    df.to_csv(output, index=False)
    print(f"✓ Wrote {len(df)} rows to {output}")


if __name__ == '__main__':
    main()
