from typing import List, Tuple

import numpy as np
from scipy import sparse as sps

# (user id, upvote)
Vote = Tuple[int, bool]
VoteList = List[Vote]

SignedVoteMatrix = sps.csr_matrix

# wait until better numpy stub support
DenseMatrix = np.ndarray
DenseScoreArray = np.ndarray
IndexArray = np.ndarray
