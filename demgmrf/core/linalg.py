"""
Sparse linear-algebra helpers shared by the mean solver and the variance estimators.
"""

from dataclasses import dataclass
from typing import Optional
import numpy as np
import scipy.sparse as sp
from scipy.sparse.linalg import LinearOperator, cg


@dataclass
class CGResult:
    """Outcome of a conjugate gradient solve."""
    x: np.ndarray
    converged: bool
    iterations: int
    residual_norm: float


def jacobi_preconditioner(A: sp.spmatrix) -> LinearOperator:
    """
    Diagonal (Jacobi) preconditioner for a symmetric matrix.

    Rows with a zero diagonal (cells with neither observations nor prior
    coupling) are left unscaled.
    """
    d = A.diagonal().astype(np.float64)
    inv_d = np.ones_like(d)
    np.divide(1.0, d, out=inv_d, where=d > 0)
    n = A.shape[0]
    return LinearOperator((n, n), matvec=lambda v: inv_d * v, dtype=np.float64)


def solve_cg(
    A: sp.spmatrix,
    b: np.ndarray,
    x0: Optional[np.ndarray] = None,
    tolerance: float = 1e-8,
    max_iterations: Optional[int] = None,
) -> CGResult:
    """
    Jacobi-preconditioned conjugate gradient for A x = b.

    Args:
        A: Symmetric positive (semi-)definite sparse matrix
        b: Right-hand side
        x0: Initial guess (zeros if None)
        tolerance: Relative residual tolerance ||b - A x|| <= tolerance * ||b||
        max_iterations: Iteration cap (scipy default of 10 * n if None)

    Returns:
        CGResult with the best available solution, even if not converged
    """
    iterations = 0

    def _count(_xk):
        nonlocal iterations
        iterations += 1

    x, info = cg(
        A,
        b,
        x0=x0,
        rtol=tolerance,
        atol=0.0,
        maxiter=max_iterations,
        M=jacobi_preconditioner(A),
        callback=_count,
    )
    if info < 0:
        raise ValueError(f"Conjugate gradient failed with illegal input (info={info})")

    residual_norm = float(np.linalg.norm(b - A @ x))
    return CGResult(
        x=x,
        converged=(info == 0),
        iterations=iterations,
        residual_norm=residual_norm,
    )
