#!/usr/bin/env python3
"""
Test suite for all solvers in the proxsolver package.
"""

from proxsolver.algorithms import ITERATIONS, SOLVERS
from proxsolver.utils import check_solver_annotations, check_solver_function


def test_registry_lists_every_algorithm():
    assert set(SOLVERS) == {
        'minimize_forward_backward',
        'minimize_fast_forward_backward',
        'minimize_douglas_rachford',
        'minimize_panoc',
        'minimize_zerofpr',
        'minimize_drls',
        'minimize_lilin',
    }
    assert set(ITERATIONS) == set(SOLVERS)


def test_all_solvers():
    """Test all solvers on a sample lasso problem."""
    print("Testing solvers on sample problems...")
    solver_errors = []

    for solver_name, solver in SOLVERS.items():
        print(f"  Testing {solver_name}...")

        try:
            check_solver_annotations(solver)
            check_solver_function(solver)

        except (AssertionError, ArithmeticError, ValueError) as e:
            print(f"    ✗ {solver_name}: {str(e)}")
            solver_errors.append((solver_name, str(e)))
            # Don't raise here - just log the error and continue

    assert not solver_errors, f"Errors in solvers: {solver_errors}"
