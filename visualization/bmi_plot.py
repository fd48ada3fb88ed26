"""
BMI by Comorbidity Plot

Box plot of BMI per comorbidity group with the individual patients drawn
as jittered points on top.
"""

from pathlib import Path
from typing import Optional, Union

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import structlog

logger = structlog.get_logger(__name__)


def plot_bmi_by_comorbidity(
    result: pd.DataFrame,
    column: str = "Hypertension",
    bmi_col: str = "BMI",
    output_path: Optional[Union[str, Path]] = None,
    jitter_width: float = 0.25,
    seed: int = 42,
) -> plt.Figure:
    """
    Plot BMI (y) per category of ``column`` (x).

    Args:
        result: Joined result table.
        column: Categorical column, e.g. "Hypertension".
        bmi_col: Numeric column to plot.
        output_path: Save the figure here when given.
        jitter_width: Total horizontal spread of the points.
        seed: Seed for the jitter.

    Returns:
        The matplotlib Figure.
    """
    rng = np.random.RandomState(seed)
    categories = sorted(result[column].dropna().unique())
    data = [result.loc[result[column] == c, bmi_col].astype(float).values for c in categories]
    positions = list(range(1, len(categories) + 1))
    palette = matplotlib.colormaps["Set2"].colors

    fig, ax = plt.subplots(figsize=(6, 5))

    if categories:
        boxes = ax.boxplot(data, positions=positions, patch_artist=True, widths=0.6)
        for i, patch in enumerate(boxes["boxes"]):
            patch.set_facecolor(palette[i % len(palette)])

        for position, values in zip(positions, data):
            offsets = rng.uniform(-jitter_width / 2, jitter_width / 2, size=len(values))
            ax.scatter(position + offsets, values, color="black", s=12, alpha=0.7, zorder=3)

    ax.set_xticks(positions)
    ax.set_xticklabels(categories)
    ax.set_xlabel(column)
    ax.set_ylabel(bmi_col)
    ax.grid(True, axis="y", alpha=0.3)
    fig.tight_layout()

    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches="tight")
        logger.info("Plot saved", path=str(output_path), groups=len(categories))

    return fig
