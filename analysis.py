"""
Analysis program for street-robot simulation batch results.

This script loads batch_results.csv, computes derived metrics,
aggregates results by policy and robot density,
produces descriptive and inferential analyses, and
exports summary tables and plots:
 - distribution plots (boxplots)
 - means ± 95% confidence intervals
 - ANOVA + Tukey HSD post-hoc
 - effect sizes (eta-squared, Cohen's d)
 - regression with interaction
 - correlation analysis
"""

import os
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from scipy.stats import sem, t, pearsonr
from statsmodels.stats.multicomp import pairwise_tukeyhsd
import statsmodels.formula.api as smf
from statsmodels.stats.anova import anova_lm


def load_and_clean(file_path):
    """
    Load simulation results from CSV, ensure data validity, and cast types.

    Args: Path to the input CSV file containing batch results.

    Returns: Cleaned DataFrame with numeric columns cast, NaN iterations
    and robot-less runs removed.
    """

    # Read CSV into DataFrame:
    df = pd.read_csv(file_path)

    # Drop rows missing iteration identifiers:
    df = df.dropna(subset=["iteration"])

    # Cast key columns to float for subsequent calculations:
    cols = ["num_robots", "ticks", "arrivals", "planning_failures",
            "mean_moves", "mean_blocked", "iteration"]
    df[cols] = df[cols].astype(float)
    return df[df.num_robots > 0]


def augment(df):
    """
    Add derived performance metrics to the results DataFrame.

    Calculates:
      - throughput (arrivals per robot per tick)
      - moving_ratio (share of robots changing pose per tick)
      - blocked_ratio (share of robots refused their move per tick)
      - city_area (cells in the block grid)

    Args: Cleaned results DataFrame.

    Returns: A new DataFrame with additional metric columns.
    """

    df = df.copy()
    df["throughput"] = df["arrivals"] / (df["ticks"] * df["num_robots"])
    df["moving_ratio"] = df["mean_moves"] / df["num_robots"]
    df["blocked_ratio"] = df["mean_blocked"] / df["num_robots"]
    df["city_area"] = df["width_blocks"] * df["height_blocks"] * df["block_size"] ** 2
    return df


def aggregate(df):
    """
    Aggregate metrics by policy and robot density.

    Args: DataFrame with augmented metrics.

    Returns: Grouped summary with mean and std metrics per policy and density.
    """
    return (
        df.groupby(["policy", "robot_density"])
          .agg(mean_throughput=("throughput", "mean"),
               std_throughput=("throughput", "std"),
               mean_blocked=("blocked_ratio", "mean"),
               mean_moving=("moving_ratio", "mean"))
          .reset_index()
    )


def plot_distributions(df, output_dir):
    """
    Generate and save boxplots of throughput by policy and robot density.
    """
    plt.figure(figsize=(12, 6))
    sns.boxplot(data=df, x="robot_density", y="throughput", hue="policy")
    plt.title("Throughput distributions by policy & density")
    plt.tight_layout()
    plt.savefig(os.path.join(output_dir, "boxplot_throughput.png"))
    plt.close()


def compute_confidence_intervals(df, metric="throughput", alpha=0.05):
    """
    Compute 95% confidence intervals for a given metric by group.

    Args:
    df: Data with column `metric` and grouping columns.
    metric: Column name for which to compute CIs.
    alpha: Significance level (default 0.05 for 95% CI).

    Returns: Columns ['policy','robot_density', '<metric>_ci_lower', '<metric>_ci_upper'].
    """
    records = []
    for (policy, density), g in df.groupby(["policy", "robot_density"]):
        x = g[metric]
        half = sem(x) * t.ppf(1 - alpha / 2, len(x) - 1) if len(x) > 1 else np.nan
        records.append({
            "policy": policy,
            "robot_density": density,
            metric + "_ci_lower": x.mean() - half,
            metric + "_ci_upper": x.mean() + half,
        })
    return pd.DataFrame.from_records(records)


def plot_error_bars(metric, metric_col, ylabel, filename, agg, ci_df, output_dir):
    """
    Plot and save error-bar charts for a given aggregated metric.

    Args:
    metric: Base metric name (e.g. 'throughput').
    metric_col: Column in `agg` for the mean values.
    ylabel: Label for the Y-axis.
    filename: Output filename for the plot.
    agg: Aggregated metrics by policy and density.
    ci_df: Confidence interval DataFrame from compute_confidence_intervals.
    output_dir: Directory to save the plot.
    """
    plt.figure(figsize=(8, 5))
    merged = agg.merge(ci_df, on=["policy", "robot_density"])
    for policy, g in merged.groupby("policy"):
        plt.errorbar(
            g.robot_density,
            g[metric_col],
            yerr=[g[metric_col] - g[f"{metric}_ci_lower"], g[f"{metric}_ci_upper"] - g[metric_col]],
            marker='o', label=policy
        )
    plt.xlabel("Robot density")
    plt.ylabel(ylabel)
    plt.title(f"{ylabel} vs Robot Density")
    plt.legend()
    plt.tight_layout()
    plt.savefig(os.path.join(output_dir, filename))
    plt.close()


def run_anova(df):
    """
    Perform one-way ANOVA on throughput by policy.

    Returns: (fitted model, ANOVA DataFrame, eta_squared float)
    """
    model = smf.ols('throughput ~ C(policy)', data=df).fit()
    anova_res = anova_lm(model)
    eta2 = anova_res.loc['C(policy)', 'sum_sq'] / anova_res['sum_sq'].sum()
    return model, anova_res, eta2


def run_posthoc_tukey(df, alpha=0.05):
    return pairwise_tukeyhsd(endog=df.throughput, groups=df.policy, alpha=alpha)


def compute_cohens_d(df):
    """
    Compute Cohen's d effect size between all pairs of policies.

    Returns: Rows with 'pair' and 'cohens_d'.
    """
    policies = df.policy.unique()
    records = []
    for i in range(len(policies)):
        for j in range(i + 1, len(policies)):
            x1 = df[df.policy == policies[i]].throughput
            x2 = df[df.policy == policies[j]].throughput

            # Pooled standard deviation:
            pooled_sd = np.sqrt(((len(x1) - 1) * x1.std() ** 2 + (len(x2) - 1) * x2.std() ** 2)
                                / (len(x1) + len(x2) - 2))
            d = (x1.mean() - x2.mean()) / pooled_sd
            records.append({"pair": f"{policies[i]} vs {policies[j]}", "cohens_d": d})
    return pd.DataFrame.from_records(records)


def fit_regression(df):
    """
    Fit throughput ~ robot_density * policy, capturing how congestion
    hurts each policy differently.
    """
    return smf.ols('throughput ~ robot_density * C(policy)', data=df).fit()


def compute_correlations(df):
    """
    Compute Pearson correlations between key metrics.

    Returns: Mapping metric pair -> (correlation, p-value).
    """
    return {
        "throughput_vs_blocked": pearsonr(df.throughput, df.blocked_ratio),
        "blocked_vs_density": pearsonr(df.blocked_ratio, df.robot_density),
        "component_vs_density": pearsonr(df.mean_largest_component, df.robot_density),
    }


def main():
    """
    Entry point: parse arguments, run analyses, and save all outputs.

    Steps:
      1. Load and clean data
      2. Augment with derived metrics
      3. Generate descriptive plots and summaries
      4. Run inferential statistics (ANOVA, Tukey, effect sizes)
      5. Fit regression and export summary
      6. Compute correlations and save tables
    """
    import argparse
    p = argparse.ArgumentParser()
    p.add_argument("input_csv")
    p.add_argument("--output_dir", default="analysis_plots")
    args = p.parse_args()

    # Ensure output directory exists:
    os.makedirs(args.output_dir, exist_ok=True)

    # Data preparation:
    df = augment(load_and_clean(args.input_csv))

    # Descriptive plots:
    plot_distributions(df, args.output_dir)
    agg = aggregate(df)
    agg.to_csv(os.path.join(args.output_dir, "aggregated_metrics.csv"), index=False)

    # Error-bar plots for key metrics:
    mapping = {
        "throughput": ("mean_throughput", "Mean throughput (arrivals/robot/tick)", "throughput_CI.png"),
        "blocked_ratio": ("mean_blocked", "Mean share of blocked robots", "blocked_CI.png"),
    }
    for metric, (col_name, ylabel, fname) in mapping.items():
        ci = compute_confidence_intervals(df, metric)
        plot_error_bars(metric, col_name, ylabel, fname, agg, ci, args.output_dir)

    # Inferential statistics:
    _, anova_res, eta2 = run_anova(df)
    with open(os.path.join(args.output_dir, "anova_results.txt"), 'w') as f:
        f.write(anova_res.to_string())
        f.write(f"\nEta-squared: {eta2:.3f}\n")
    tukey = run_posthoc_tukey(df)
    with open(os.path.join(args.output_dir, "tukey_results.txt"), 'w') as f:
        f.write(tukey.summary().as_text())

    compute_cohens_d(df).to_csv(os.path.join(args.output_dir, "cohens_d.csv"), index=False)

    # Regression summary:
    with open(os.path.join(args.output_dir, "regression_summary.txt"), 'w') as f:
        f.write(fit_regression(df).summary().as_text())

    corrs = compute_correlations(df)
    pd.DataFrame.from_dict({k: tuple(v) for k, v in corrs.items()}, orient='index',
                           columns=['correlation', 'p_value']).to_csv(
        os.path.join(args.output_dir, "correlations.csv"))


if __name__ == '__main__':
    main()
