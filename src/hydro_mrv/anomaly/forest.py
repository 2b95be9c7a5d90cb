"""Isolation forest over telemetry feature rows, backed by scikit-learn.

Liu, Ting & Zhou, "Isolation Forest", ICDM 2008. Each tree recursively
splits a random subsample on a random feature at a uniformly drawn value
between that feature's min and max, down to ``ceil(log2(psi))`` levels.
Anomalies isolate in fewer splits, so the score ``2 ** (-E[h(x)] / c(psi))``
approaches 1 for them and drops towards 0 for points deep inside dense
regions. scikit-learn's ``score_samples`` is the negation of that score.

Fitted trees are exposed as ``TreeArena`` views: scikit-learn stores each
tree as parallel arrays indexed by integer node id, node 0 being the root.

Missing feature values (NaN) are imputed with the training median before
they reach the trees.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from sklearn.ensemble import IsolationForest as SklearnIsolationForest
from sklearn.impute import SimpleImputer
from sklearn.pipeline import Pipeline

logger = logging.getLogger(__name__)

EULER_MASCHERONI = 0.5772156649015329
LEAF = -1  # child id of terminal nodes


def average_path_length(n: int) -> float:
    """Average path length of an unsuccessful BST search over n points, c(n)."""
    if n <= 1:
        return 0.0
    if n == 2:
        return 1.0
    return 2.0 * (math.log(n - 1) + EULER_MASCHERONI) - 2.0 * (n - 1) / n


@dataclass(frozen=True)
class TreeArena:
    """Read-only node arena of one fitted isolation tree."""

    feature: np.ndarray
    split: np.ndarray
    left: np.ndarray
    right: np.ndarray
    size: np.ndarray  # training points that reached the node

    @classmethod
    def from_estimator(cls, estimator) -> TreeArena:
        tree = estimator.tree_
        return cls(
            feature=tree.feature,
            split=tree.threshold,
            left=tree.children_left,
            right=tree.children_right,
            size=tree.n_node_samples,
        )

    @property
    def node_count(self) -> int:
        return len(self.left)

    def is_leaf(self, node: int) -> bool:
        return self.left[node] == LEAF

    def path_length(self, x: Sequence[float]) -> float:
        """Depth at which x lands in a leaf, plus c(size) for unresolved points."""
        # Trees compare in float32, as scikit-learn does when scoring
        row = np.asarray(x, dtype=np.float32)
        node = 0
        depth = 0
        while not self.is_leaf(node):
            if row[self.feature[node]] <= self.split[node]:
                node = self.left[node]
            else:
                node = self.right[node]
            depth += 1
        return depth + average_path_length(int(self.size[node]))


class IsolationForest:
    """Ensemble of isolation trees with median imputation in front.

    Given a fixed ``seed`` the forest built from the same rows is identical,
    so scores are reproducible across runs. With ``contamination`` set, the
    ``threshold`` is calibrated so that share of the training rows scores
    above it; otherwise it is the paper's 0.5.
    """

    def __init__(
        self,
        n_trees: int = 100,
        sample_size: int = 256,
        seed: int | None = None,
        contamination: float | None = None,
    ) -> None:
        if n_trees < 1:
            raise ValueError(f"n_trees must be >= 1, got {n_trees}")
        if sample_size < 2:
            raise ValueError(f"sample_size must be >= 2, got {sample_size}")
        if contamination is not None and not 0.0 < contamination <= 0.5:
            raise ValueError(f"contamination must be within (0, 0.5], got {contamination}")
        self.n_trees = n_trees
        self.sample_size = sample_size
        self.seed = seed
        self.contamination = contamination
        self.n_features = 0
        self.training_size = 0
        self._model: Pipeline | None = None

    @property
    def is_fitted(self) -> bool:
        return self._model is not None

    @property
    def _estimator(self) -> SklearnIsolationForest:
        if self._model is None:
            raise RuntimeError("IsolationForest used before fit()")
        return self._model.named_steps["forest"]

    @property
    def subsample_size(self) -> int:
        return int(self._estimator.max_samples_)

    @property
    def max_depth(self) -> int:
        return math.ceil(math.log2(max(self.subsample_size, 2)))

    @property
    def threshold(self) -> float:
        """Score above which a point counts as anomalous."""
        return float(-self._estimator.offset_)

    @property
    def trees(self) -> list[TreeArena]:
        return [TreeArena.from_estimator(e) for e in self._estimator.estimators_]

    @staticmethod
    def _as_matrix(rows: Sequence[Sequence[float]]) -> np.ndarray:
        widths = {len(r) for r in rows}
        if len(widths) > 1:
            raise ValueError(f"All rows must have the same number of features, got {sorted(widths)}")
        return np.asarray(rows, dtype=float)

    def fit(self, rows: Sequence[Sequence[float]]) -> IsolationForest:
        if len(rows) == 0:
            raise ValueError("fit() called with no rows")
        matrix = self._as_matrix(rows)

        forest = SklearnIsolationForest(
            n_estimators=self.n_trees,
            max_samples=min(self.sample_size, len(matrix)),
            contamination=self.contamination if self.contamination is not None else "auto",
            random_state=self.seed,
        )
        self._model = Pipeline([
            ("impute", SimpleImputer(strategy="median", keep_empty_features=True)),
            ("forest", forest),
        ]).fit(matrix)
        self.training_size, self.n_features = matrix.shape

        logger.debug(
            "Fitted %d trees on %d rows (psi=%d, max_depth=%d, threshold=%.4f)",
            self.n_trees, self.training_size, self.subsample_size, self.max_depth, self.threshold,
        )
        return self

    def _check_width(self, matrix: np.ndarray) -> None:
        if self._model is None:
            raise RuntimeError("IsolationForest.score() called before fit()")
        if matrix.shape[1] != self.n_features:
            raise ValueError(f"Expected {self.n_features} features, got {matrix.shape[1]}")

    def score_many(self, rows: Sequence[Sequence[float]]) -> list[float]:
        """Anomaly scores in (0, 1]; values near 1 indicate likely anomalies."""
        if len(rows) == 0:
            return []
        matrix = self._as_matrix(rows)
        self._check_width(matrix)
        return [float(v) for v in -self._model.score_samples(matrix)]

    def score(self, x: Sequence[float]) -> float:
        return self.score_many([x])[0]

    def mean_path_length(self, x: Sequence[float]) -> float:
        """E[h(x)] across the trees, walked over the imputed vector."""
        matrix = self._as_matrix([x])
        self._check_width(matrix)
        row = self._model.named_steps["impute"].transform(matrix)[0]
        trees = self.trees
        return sum(tree.path_length(row) for tree in trees) / len(trees)
