from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping

import matplotlib.pyplot as plt

from .filtering import REJECTION_REASONS

logger = logging.getLogger(__name__)


def plot_read_outcomes(
    *,
    counts: Mapping[str, object],
    out_png: str | Path,
    title: str = "Read outcomes",
) -> None:
    """Bar chart of kept, downsampled and per-reason rejected reads.

    ``counts`` is the ``FilterStats.as_dict()`` layout.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    rejected: Dict[str, int] = dict(counts.get("rejected", {}))  # type: ignore[arg-type]
    labels = ["kept", "downsampled"] + [r.replace("_", " ") for r in REJECTION_REASONS]
    values = [
        int(counts.get("reads_kept", 0)),  # type: ignore[arg-type]
        int(counts.get("reads_downsampled", 0)),  # type: ignore[arg-type]
    ] + [int(rejected.get(r, 0)) for r in REJECTION_REASONS]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("Read count")
    plt.title(title)
    plt.xticks(rotation=30, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
