"""Two-group sample assignment."""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import EmptyGroupError, InvalidParameterError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupAssignment:
    """
    Sample id -> group label, in matrix column order.

    Fold changes are always reported as ``group_a`` relative to ``group_b``.
    """

    labels: pd.Series
    group_a: str
    group_b: str

    @property
    def comparison_name(self):
        return f"{self.group_a}_vs_{self.group_b}"

    @property
    def sample_ids(self):
        return list(self.labels.index)

    def members(self, label):
        if label not in (self.group_a, self.group_b):
            raise InvalidParameterError(f"Unknown group label: {label!r}")
        return list(self.labels.index[self.labels == label])

    def condition_vector(self):
        """1.0 for group A samples, 0.0 for group B, in column order."""
        return (self.labels == self.group_a).to_numpy(dtype=float)


def assign_groups(sample_ids, group_a_samples, group_a="A", group_b="B"):
    """
    Partition matrix columns into two labelled groups.

    Parameters
    ----------
    sample_ids : sequence of str
        Matrix columns, in order.
    group_a_samples : iterable of str
        Samples designated as group A; every other column is group B.
    group_a, group_b : str
        Group labels.

    Returns
    -------
    GroupAssignment

    Raises
    ------
    EmptyGroupError
        Either group ends up with no samples.
    """
    if group_a == group_b:
        raise InvalidParameterError(f"group labels must differ, got '{group_a}' twice")

    sample_ids = [str(s) for s in sample_ids]
    if len(set(sample_ids)) != len(sample_ids):
        raise InvalidParameterError("sample_ids must be unique")

    designated = {str(s) for s in group_a_samples}
    unknown = sorted(designated.difference(sample_ids))
    if unknown:
        logger.warning("Ignoring %d group %s sample(s) not in the matrix: %s",
                       len(unknown), group_a, ", ".join(unknown))

    in_a = np.array([s in designated for s in sample_ids], dtype=bool)
    labels = pd.Series(np.where(in_a, group_a, group_b), index=sample_ids,
                       name="group", dtype=object)

    for label, n in ((group_a, int(in_a.sum())), (group_b, int((~in_a).sum()))):
        if n == 0:
            raise EmptyGroupError(f"Group '{label}' has no samples")

    logger.info("Assigned %d sample(s) to %s and %d to %s",
                int(in_a.sum()), group_a, int((~in_a).sum()), group_b)
    return GroupAssignment(labels, group_a, group_b)
