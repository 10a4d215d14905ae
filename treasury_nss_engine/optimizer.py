"""
Derivative-free minimisation over R^n.

Thin wrapper around scipy's Nelder-Mead that adds an explicit initial simplex,
a wall-clock budget and cooperative cancellation. The best point found is always
returned; hitting a cap is reported through ``status``/``message``, not raised.
"""
from __future__ import annotations

import time
import numpy as np
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from scipy.optimize import minimize

STATUS_CONVERGED = 0
STATUS_MAX_FEV = 1
STATUS_MAX_ITER = 2
STATUS_STOPPED = 99


@dataclass(frozen=True)
class SimplexResult:
    x: np.ndarray
    fun: float
    iterations: int
    function_evaluations: int
    status: int
    message: str

    @property
    def converged(self) -> bool:
        return self.status == STATUS_CONVERGED


class _Budget:
    """
    Callback run once per completed iteration; counts iterations and stops the
    search on cancellation or time budget.

    scipy's own ``nit`` starts at 1, so the count reported is taken from here.
    """

    def __init__(self, max_seconds: Optional[float], should_stop: Optional[Callable[[], bool]]):
        self.max_seconds = max_seconds
        self.should_stop = should_stop
        self.started = time.monotonic()
        self.reason: Optional[str] = None
        self.iterations = 0

    def __call__(self, xk: np.ndarray) -> None:
        self.iterations += 1
        if self.should_stop is not None and self.should_stop():
            self.reason = "Cancelled by caller."
            raise StopIteration
        if self.max_seconds is not None and time.monotonic() - self.started > self.max_seconds:
            self.reason = f"Time budget of {self.max_seconds:g}s exceeded."
            raise StopIteration


def initial_simplex(x0: Sequence[float], rel_step: float = 0.05, zero_step: float = 0.1) -> np.ndarray:
    """n+1 vertices: x0 plus one vertex per axis, relative step if x_i != 0 else absolute step."""
    x0 = np.asarray(x0, dtype=float)
    n = x0.size
    sim = np.empty((n + 1, n), dtype=float)
    sim[0] = x0
    for i in range(n):
        y = x0.copy()
        y[i] = y[i] * (1.0 + rel_step) if y[i] != 0.0 else zero_step
        sim[i + 1] = y
    return sim


def minimize_simplex(
    objective: Callable[[np.ndarray], float],
    x0: Sequence[float],
    max_iter: int = 5000,
    max_fev: int = 10000,
    xatol: float = 1e-8,
    fatol: float = 1e-10,
    max_seconds: Optional[float] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    rel_step: float = 0.05,
    zero_step: float = 0.1,
) -> SimplexResult:
    """
    Minimise ``objective`` from ``x0`` with the Nelder-Mead simplex method.

    Terminates on simplex tolerances, iteration/evaluation caps, the time budget,
    or when ``should_stop()`` returns True (polled once per iteration).

    Returns
    -------
    SimplexResult
        Best vertex found, its objective value and iteration/evaluation counts.
        Local search only: no guarantee of a global minimum.
    """
    x0 = np.asarray(x0, dtype=float)
    if x0.ndim != 1 or x0.size == 0:
        raise ValueError("x0 must be a non-empty 1-D vector.")

    budget = _Budget(max_seconds, should_stop)

    res = minimize(
        objective,
        x0,
        method="Nelder-Mead",
        callback=budget,
        options={
            "maxiter": int(max_iter),
            "maxfev": int(max_fev),
            "xatol": float(xatol),
            "fatol": float(fatol),
            "initial_simplex": initial_simplex(x0, rel_step, zero_step),
        },
    )

    status = int(res.status)
    message = str(res.message)
    if budget.reason is not None:
        status = STATUS_STOPPED
        message = budget.reason

    return SimplexResult(
        x=np.asarray(res.x, dtype=float),
        fun=float(res.fun),
        iterations=budget.iterations,
        function_evaluations=int(res.nfev),
        status=status,
        message=message,
    )
