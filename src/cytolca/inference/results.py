"""
Results of a complete latent-class analysis run.
"""

import os
import pickle
from dataclasses import dataclass, field
from typing import Dict, Optional

import pandas as pd

from ..core import BinBoundaries, LatentClassData
from ..draws import DrawCollection


@dataclass
class LCAResults:
    """
    Everything produced by ``run_lca``.

    Attributes
    ----------
    boundaries : BinBoundaries
        Cut points shared by every marker.
    data : LatentClassData
        Discretized model inputs.
    draws : DrawCollection
        Posterior draws.
    intervals : pd.DataFrame
        Class-membership probability intervals per condition.
    labels : Dict[int, str]
        Descriptive label per class (1-based).
    marker_distributions : pd.DataFrame
        Long-form class-conditional bin distributions.
    provisional : bool
        True when the solver did not converge.
    solver_results : Optional[object]
        Backend-specific results (``LatentClassSVIResults`` or
        ``LatentClassMCMCResults``).
    """

    boundaries: BinBoundaries
    data: LatentClassData
    draws: DrawCollection
    intervals: pd.DataFrame
    labels: Dict[int, str]
    marker_distributions: pd.DataFrame
    provisional: bool = False
    solver_results: Optional[object] = field(default=None, repr=False)

    # --------------------------------------------------------------------------

    def save(self, output_dir: str, prefix: str = "lca") -> Dict[str, str]:
        """
        Write the summary tables as CSV and the draws as a pickle.

        Returns
        -------
        Dict[str, str]
            Paths of the written files.
        """
        os.makedirs(output_dir, exist_ok=True)
        paths = {
            "intervals": os.path.join(output_dir, f"{prefix}_intervals.csv"),
            "labels": os.path.join(output_dir, f"{prefix}_labels.csv"),
            "marker_distributions": os.path.join(
                output_dir, f"{prefix}_marker_distributions.csv"
            ),
            "draws": os.path.join(output_dir, f"{prefix}_draws.pkl"),
        }
        self.intervals.to_csv(paths["intervals"], index=False)
        pd.DataFrame(
            {"class": list(self.labels), "label": list(self.labels.values())}
        ).to_csv(paths["labels"], index=False)
        self.marker_distributions.to_csv(
            paths["marker_distributions"], index=False
        )
        with open(paths["draws"], "wb") as f:
            pickle.dump(
                {
                    "samples": self.draws.samples,
                    "provisional": self.draws.provisional,
                    "method": self.draws.method,
                    "diagnostics": self.draws.diagnostics,
                    "cut_points": self.boundaries.cut_points,
                    "marker_names": self.data.marker_names,
                    "condition_levels": self.data.condition_levels,
                },
                f,
            )
        return paths
