#!/usr/bin/env python3
import argparse
from pathlib import Path

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402
import seaborn as sns  # noqa: E402

sns.set_theme(style="whitegrid", context="talk")


def plot_latency(df: pd.DataFrame, out_dir: Path) -> Path:
    fig, ax = plt.subplots(figsize=(12, 6))
    sns.lineplot(data=df, x="tick", y="average_latency", hue="edges", style="threshold", ax=ax)
    ax.set_xlabel("Tick")
    ax.set_ylabel("Average latency (ms)")
    ax.set_title("Average user latency over time")
    path = out_dir / "latency_over_time.png"
    fig.tight_layout()
    fig.savefig(path, dpi=120)
    plt.close(fig)
    return path


def plot_churn(df: pd.DataFrame, out_dir: Path) -> Path:
    churn = df.groupby(["edges", "threshold"], as_index=False)["switched"].sum()
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.barplot(data=churn, x="threshold", y="switched", hue="edges", ax=ax)
    ax.set_xlabel("Switching threshold")
    ax.set_ylabel("Total re-assignments")
    ax.set_title("Assignment churn vs. hysteresis")
    path = out_dir / "churn_vs_threshold.png"
    fig.tight_layout()
    fig.savefig(path, dpi=120)
    plt.close(fig)
    return path


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--csv", default="reports/sweep.csv")
    parser.add_argument("--out", default="reports/figures")
    args = parser.parse_args()

    df = pd.read_csv(args.csv)
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    for path in (plot_latency(df, out_dir), plot_churn(df, out_dir)):
        print(f"Saved {path}")


if __name__ == "__main__":
    main()
