"""
Guardrail net-price solver.

Finds the lowest net price at which a channel still reaches its target
contribution margin:

    net = (full_cost + fixed_fees) / (1 − (variable_pct + target_margin))

When the referral percentage depends on the resulting gross price (tiered
marketplace referral), the price and the percentage are iterated to a fixed
point. A non-positive denominator means no price can satisfy the guardrail and
is reported as Unsatisfiable, never as a numeric sentinel.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Union

DEFAULT_EPSILON = 0.01
DEFAULT_MAX_ITERATIONS = 5


@dataclass(frozen=True)
class Solved:
    net: float
    gross: float
    referral_pct: float
    iterations: int
    converged: bool = True


@dataclass(frozen=True)
class Unsatisfiable:
    reason: str
    denominator: float


SolverResult = Union[Solved, Unsatisfiable]


def _closed_form(
    fixed_costs: float,
    variable_pct: float,
    referral_pct: float,
    target_margin_pct: float,
) -> tuple[Optional[float], float]:
    denominator = 1 - (variable_pct + referral_pct + target_margin_pct) / 100
    if denominator <= 0:
        return None, denominator
    return fixed_costs / denominator, denominator


def _unsatisfiable(variable_pct, referral_pct, target_margin_pct, denominator) -> Unsatisfiable:
    return Unsatisfiable(
        reason=(
            f"Variable costs {variable_pct + referral_pct:.1f}% plus target margin "
            f"{target_margin_pct:.1f}% leave no room for cost recovery"
        ),
        denominator=denominator,
    )


def solve_guardrail_net(
    full_cost: float,
    fixed_fees: float,
    variable_pct: float,
    target_margin_pct: float,
    vat_pct: float,
    referral_pct_for: Callable[[float], float] = lambda gross: 0.0,
    seed_gross: float = 0.0,
    epsilon: float = DEFAULT_EPSILON,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> SolverResult:
    """
    Solve the minimum net price for a channel.

    Args:
        full_cost: Landed cost per unit
        fixed_fees: Absolute per-unit channel fees (shipping, fulfillment)
        variable_pct: Price-independent percent-of-price costs (ad, returns, ...)
        target_margin_pct: Required contribution margin in percent
        vat_pct: VAT used to turn net into gross for referral lookup
        referral_pct_for: Referral percentage as a function of gross price
        seed_gross: Gross price used for the initial referral guess
        epsilon: Convergence tolerance on the net price
        max_iterations: Upper bound on re-resolutions of the referral percentage

    Returns:
        Solved, or Unsatisfiable when any step has a non-positive denominator.
    """
    fixed_costs = full_cost + fixed_fees
    vat_factor = 1 + vat_pct / 100

    referral_pct = referral_pct_for(seed_gross)
    net, denominator = _closed_form(fixed_costs, variable_pct, referral_pct, target_margin_pct)
    if net is None:
        return _unsatisfiable(variable_pct, referral_pct, target_margin_pct, denominator)

    for iteration in range(1, max_iterations + 1):
        referral_pct = referral_pct_for(net * vat_factor)
        new_net, denominator = _closed_form(
            fixed_costs, variable_pct, referral_pct, target_margin_pct
        )
        if new_net is None:
            return _unsatisfiable(variable_pct, referral_pct, target_margin_pct, denominator)

        converged = abs(new_net - net) < epsilon
        net = new_net
        if converged:
            return Solved(
                net=net,
                gross=net * vat_factor,
                referral_pct=referral_pct,
                iterations=iteration,
            )

    return Solved(
        net=net,
        gross=net * vat_factor,
        referral_pct=referral_pct,
        iterations=max_iterations,
        converged=False,
    )
