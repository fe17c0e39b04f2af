"""
Smoothness prior between 4-connected neighbouring cells.

Every pair of axis-aligned neighbours (i, j) carries the penalty
lambda_prior * (h_i - h_j)**2. In information form that is

    Lambda[i, i] += lambda_prior
    Lambda[j, j] += lambda_prior
    Lambda[i, j] -= lambda_prior
    Lambda[j, i] -= lambda_prior

i.e. lambda_prior times the graph Laplacian of the grid lattice. The
prior constrains height differences only, so it adds nothing to the
information vector.
"""

from typing import Tuple
import numpy as np
import scipy.sparse as sp


def prior_edges(rows: int, cols: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Flattened index pairs of all 4-connected neighbours, without wraparound.

    Args:
        rows: Number of grid rows
        cols: Number of grid columns

    Returns:
        i, j: Arrays of equal length with i < j for each edge

    Example:
        >>> i, j = prior_edges(2, 2)
        >>> list(zip(i.tolist(), j.tolist()))
        [(0, 1), (2, 3), (0, 2), (1, 3)]
    """
    index = np.arange(rows * cols, dtype=np.int64).reshape(rows, cols)

    # Horizontal edges: (r, c) -- (r, c+1)
    h_i = index[:, :-1].ravel()
    h_j = index[:, 1:].ravel()

    # Vertical edges: (r, c) -- (r+1, c)
    v_i = index[:-1, :].ravel()
    v_j = index[1:, :].ravel()

    return np.concatenate([h_i, v_i]), np.concatenate([h_j, v_j])


def count_prior_edges(rows: int, cols: int) -> int:
    """Number of prior edges in a rows x cols lattice."""
    return rows * (cols - 1) + cols * (rows - 1)


def build_prior_terms(shape: Tuple[int, int], lambda_prior: float) -> sp.csr_matrix:
    """
    Prior information matrix for a grid of the given shape.

    Args:
        shape: (rows, cols) of the grid
        lambda_prior: Precision of each neighbour difference, 1 / std_prior**2

    Returns:
        Symmetric (n x n) CSR matrix, n = rows * cols
    """
    if lambda_prior < 0:
        raise ValueError(f"lambda_prior must be non-negative, got {lambda_prior}")

    rows, cols = shape
    n = rows * cols
    i, j = prior_edges(rows, cols)

    if i.size == 0:
        return sp.csr_matrix((n, n), dtype=np.float64)

    off = np.full(i.size, -lambda_prior, dtype=np.float64)

    # Each edge appears once per endpoint on the diagonal
    degree = np.bincount(i, minlength=n) + np.bincount(j, minlength=n)
    diag = lambda_prior * degree.astype(np.float64)

    row_idx = np.concatenate([i, j, np.arange(n)])
    col_idx = np.concatenate([j, i, np.arange(n)])
    data = np.concatenate([off, off, diag])

    return sp.coo_matrix((data, (row_idx, col_idx)), shape=(n, n)).tocsr()
