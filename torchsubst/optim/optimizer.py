from __future__ import annotations

import abc
import logging
import math
from typing import Callable, NamedTuple

import numpy as np
from scipy.optimize import minimize

from ..typing import Variables

logger = logging.getLogger(__name__)


class OptimizationResult(NamedTuple):
    """Outcome of a minimization.

    :param variables: best point found, indexed from 1
    :param value: function value at the best point
    :param converged: False if the optimizer stopped before convergence
    :param evaluations: number of function evaluations
    """

    variables: Variables
    value: float
    converged: bool
    evaluations: int


class MultiDimensionalOptimizer(abc.ABC):
    """Minimizer of a function of bounded variables.

    Vectors are indexed from 1: element 0 of variables, lower and upper is
    not a parameter and is ignored.
    """

    @abc.abstractmethod
    def minimize(
        self,
        function: Callable[[Variables], float],
        variables: Variables,
        lower: Variables,
        upper: Variables,
        tolerance: float,
    ) -> OptimizationResult:
        ...


class BoundedOptimizer(MultiDimensionalOptimizer):
    """Minimization with scipy's L-BFGS-B and numerical gradients.

    :param int max_iterations: maximum number of iterations
    :param str method: a bounded method of :func:`scipy.optimize.minimize`
    """

    def __init__(self, max_iterations: int = 1000, method: str = 'L-BFGS-B') -> None:
        self.max_iterations = max_iterations
        self.method = method

    def minimize(
        self,
        function: Callable[[Variables], float],
        variables: Variables,
        lower: Variables,
        upper: Variables,
        tolerance: float,
    ) -> OptimizationResult:
        best_variables = np.array(variables, dtype=np.float64)
        best_value = math.inf
        evaluations = 0

        def objective(x: np.ndarray) -> float:
            nonlocal best_variables, best_value, evaluations
            full = np.empty(x.shape[0] + 1)
            full[0] = 0.0
            full[1:] = x
            value = float(function(full))
            evaluations += 1
            if value < best_value:
                best_value = value
                best_variables = full.copy()
            return value if math.isfinite(value) else math.inf

        x0 = np.clip(np.asarray(variables[1:], dtype=np.float64), lower[1:], upper[1:])
        result = minimize(
            objective,
            x0,
            method=self.method,
            bounds=list(zip(lower[1:], upper[1:])),
            tol=tolerance,
            options={'maxiter': self.max_iterations},
        )
        logger.debug(
            '%s finished after %d evaluations: %s',
            self.method,
            evaluations,
            result.message,
        )
        return OptimizationResult(
            best_variables, best_value, bool(result.success), evaluations
        )
