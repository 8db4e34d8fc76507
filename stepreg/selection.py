"""
Stepwise Model Selection Module
===============================

Greedy backward elimination and forward selection over a term universe.

Both procedures respect the term hierarchy: a main effect is never dropped
while an interaction containing it survives, and an interaction only enters
once everything it requires is present. They are greedy and non-exhaustive,
so they need not find the best of all 2^k subsets.

Criteria:
    - 'adjr2': pick the step with the best adjusted R²; accept it when it
      does not lower adjusted R² (backward) or raises it by more than
      ``threshold`` (forward)
    - 'p': pick the highest p-value to remove (accepted above ``alpha``) or
      the lowest p-value to add (accepted below ``penter``)

Ties go to the term that comes first in the universe.
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .model import OLSModel
from .terms import Term

logger = logging.getLogger(__name__)

CRITERIA = ('adjr2', 'p')
DIRECTIONS = ('backward', 'forward', 'both')


@dataclass
class StepRecord:
    """One accepted removal or addition."""

    step: int
    action: str
    term: str
    p_value: float
    adj_r2_before: float
    adj_r2_after: float
    terms: List[str]

    def to_dict(self) -> Dict[str, Any]:
        record = asdict(self)
        record['p_value'] = None if np.isnan(self.p_value) else self.p_value
        return record


@dataclass
class SelectionResult:
    """Final model of a stepwise run plus the ordered trace of its steps."""

    direction: str
    criterion: str
    threshold: float
    initial_model: OLSModel
    model: OLSModel
    steps: List[StepRecord] = field(default_factory=list)

    @property
    def trace(self) -> List[str]:
        """Labels of the removed (backward) or added (forward) terms, in order."""
        return [step.term for step in self.steps]

    @property
    def selected_terms(self) -> List[str]:
        return self.model.term_labels

    def to_dict(self) -> Dict[str, Any]:
        return {
            'direction': self.direction,
            'criterion': self.criterion,
            'threshold': self.threshold,
            'initial_formula': self.initial_model.formula,
            'initial_adj_r2': self.initial_model.adj_r2,
            'final_formula': self.model.formula,
            'final_adj_r2': self.model.adj_r2,
            'trace': self.trace,
            'steps': [step.to_dict() for step in self.steps]
        }


def _check_criterion(criterion: str) -> None:
    if criterion not in CRITERIA:
        raise ValueError(f"Unknown criterion: {criterion}. Choose from: {', '.join(CRITERIA)}")


def _without(model: OLSModel, term: Term) -> List[Term]:
    return [t for t in model.terms if t != term]


def _ranked_p(p_value: float) -> float:
    """P-value used for ranking; an undefined p-value counts as 1.0."""
    return 1.0 if np.isnan(p_value) else p_value


def backward_elimination(
    model: OLSModel,
    criterion: str = 'adjr2',
    alpha: float = 0.10
) -> SelectionResult:
    """
    Remove the weakest term one at a time until no removal qualifies.

    Args:
        model: Fitted full model; its universe is the candidate set
        criterion: 'adjr2' or 'p'
        alpha: Removal threshold for the 'p' criterion (remove when p > alpha)

    Returns:
        SelectionResult with the trace of removed terms
    """
    _check_criterion(criterion)
    universe = model.universe
    current = model
    steps: List[StepRecord] = []

    logger.info("=" * 60)
    logger.info(f"BACKWARD ELIMINATION (criterion={criterion}, alpha={alpha})")
    logger.info("=" * 60)
    logger.info(f"Start: {current.formula} | adj R²={current.adj_r2:.4f}")

    while current.terms:
        candidates = [t for t in current.terms if universe.can_remove(t, current.terms)]
        skipped = [t.label for t in current.terms if t not in candidates]
        if skipped:
            logger.debug(f"Not removable while their interactions remain: {skipped}")
        if not candidates:
            break

        if criterion == 'p':
            pvalues = {t: current.term_pvalue(t) for t in candidates}
            best = candidates[0]
            for term in candidates[1:]:
                if _ranked_p(pvalues[term]) > _ranked_p(pvalues[best]):
                    best = term
            if not _ranked_p(pvalues[best]) > alpha:
                logger.info(f"Stop: highest p-value {best.label} p={pvalues[best]:.4f} <= {alpha}")
                break
            p_value = pvalues[best]
            reduced = current.refit(_without(current, best))
        else:
            best, reduced = None, None
            for term in candidates:
                trial = current.refit(_without(current, term))
                if reduced is None or trial.adj_r2 > reduced.adj_r2:
                    best, reduced = term, trial
            if reduced.adj_r2 < current.adj_r2:
                logger.info(
                    f"Stop: best removal {best.label} would lower adj R² "
                    f"{current.adj_r2:.4f} -> {reduced.adj_r2:.4f}"
                )
                break
            p_value = current.term_pvalue(best)

        steps.append(StepRecord(
            step=len(steps) + 1,
            action='remove',
            term=best.label,
            p_value=p_value,
            adj_r2_before=current.adj_r2,
            adj_r2_after=reduced.adj_r2,
            terms=reduced.term_labels
        ))
        logger.info(
            f"Step {len(steps)}: remove {best.label} (p={p_value:.4f}) | "
            f"adj R² {current.adj_r2:.4f} -> {reduced.adj_r2:.4f}"
        )
        current = reduced

    logger.info(f"Final: {current.formula} | adj R²={current.adj_r2:.4f}")

    return SelectionResult(
        direction='backward',
        criterion=criterion,
        threshold=alpha,
        initial_model=model,
        model=current,
        steps=steps
    )


def forward_selection(
    model: OLSModel,
    criterion: str = 'adjr2',
    penter: float = 0.10,
    threshold: float = 0.0
) -> SelectionResult:
    """
    Start from the intercept-only model and add the strongest term each step.

    Args:
        model: Fitted full model; only its universe, data and transform are used
        criterion: 'adjr2' or 'p'
        penter: Entry threshold for the 'p' criterion (add when p < penter)
        threshold: Minimum adjusted R² gain for the 'adjr2' criterion

    Returns:
        SelectionResult with the trace of added terms
    """
    _check_criterion(criterion)
    universe = model.universe
    current = model.refit([])
    steps: List[StepRecord] = []
    limit = penter if criterion == 'p' else threshold

    logger.info("=" * 60)
    logger.info(f"FORWARD SELECTION (criterion={criterion}, threshold={limit})")
    logger.info("=" * 60)
    logger.info(f"Start: {current.formula} | adj R²={current.adj_r2:.4f}")

    while True:
        candidates = [t for t in universe if universe.can_add(t, current.terms)]
        if not candidates:
            break

        best, best_model, best_p = None, None, np.nan
        for term in candidates:
            trial = current.refit(list(current.terms) + [term])
            trial_p = trial.term_pvalue(term)
            if best is None:
                better = True
            elif criterion == 'p':
                better = _ranked_p(trial_p) < _ranked_p(best_p)
            else:
                better = trial.adj_r2 > best_model.adj_r2
            if better:
                best, best_model, best_p = term, trial, trial_p

        if criterion == 'p':
            if not _ranked_p(best_p) < penter:
                logger.info(f"Stop: lowest p-value {best.label} p={best_p:.4f} >= {penter}")
                break
        elif not best_model.adj_r2 > current.adj_r2 + threshold:
            logger.info(
                f"Stop: best addition {best.label} gives adj R² {best_model.adj_r2:.4f}, "
                f"not above {current.adj_r2:.4f} + {threshold}"
            )
            break

        steps.append(StepRecord(
            step=len(steps) + 1,
            action='add',
            term=best.label,
            p_value=best_p,
            adj_r2_before=current.adj_r2,
            adj_r2_after=best_model.adj_r2,
            terms=best_model.term_labels
        ))
        logger.info(
            f"Step {len(steps)}: add {best.label} (p={best_p:.4f}) | "
            f"adj R² {current.adj_r2:.4f} -> {best_model.adj_r2:.4f}"
        )
        current = best_model

    logger.info(f"Final: {current.formula} | adj R²={current.adj_r2:.4f}")

    return SelectionResult(
        direction='forward',
        criterion=criterion,
        threshold=limit,
        initial_model=model,
        model=current,
        steps=steps
    )


def run_selection(
    model: OLSModel,
    direction: str = 'backward',
    criterion: str = 'adjr2',
    alpha: float = 0.10,
    penter: float = 0.10,
    threshold: float = 0.0
) -> Dict[str, SelectionResult]:
    """
    Run one or both stepwise procedures from a fitted full model.

    Args:
        model: Fitted full model
        direction: 'backward', 'forward' or 'both'
        criterion: 'adjr2' or 'p'
        alpha: Removal threshold for backward 'p'
        penter: Entry threshold for forward 'p'
        threshold: Minimum adjusted R² gain for forward 'adjr2'

    Returns:
        Dictionary of direction name to SelectionResult
    """
    if direction not in DIRECTIONS:
        raise ValueError(f"Unknown direction: {direction}. Choose from: {', '.join(DIRECTIONS)}")

    results: Dict[str, SelectionResult] = {}
    if direction in ('backward', 'both'):
        results['backward'] = backward_elimination(model, criterion=criterion, alpha=alpha)
    if direction in ('forward', 'both'):
        results['forward'] = forward_selection(
            model, criterion=criterion, penter=penter, threshold=threshold
        )
    return results


def trace_frame(result: SelectionResult) -> pd.DataFrame:
    """Selection steps as a DataFrame (one row per accepted step)."""
    columns = ['step', 'action', 'term', 'p_value', 'adj_r2_before', 'adj_r2_after', 'terms']
    rows = [step.to_dict() for step in result.steps]
    frame = pd.DataFrame(rows, columns=columns)
    frame['terms'] = frame['terms'].apply(lambda terms: ' + '.join(terms) or '1')
    return frame


def save_trace(result: SelectionResult, filepath: str) -> str:
    """
    Write the selection trace to JSON.

    Args:
        result: Selection result
        filepath: Output path

    Returns:
        Path of the written file
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w') as f:
        json.dump(result.to_dict(), f, indent=2)
    logger.info(f"Selection trace saved to {filepath}")
    return str(filepath)


def print_selection_report(result: SelectionResult) -> None:
    """
    Print the step-by-step trace and the final model.

    Args:
        result: Selection result
    """
    verb = 'Removed' if result.direction == 'backward' else 'Added'

    print("\n" + "=" * 70)
    print(f"{result.direction.upper()} SELECTION ({result.criterion}, threshold={result.threshold})")
    print("=" * 70)
    print(f"Start: {result.initial_model.formula}")
    print(f"       adj R² = {result.initial_model.adj_r2:.4f}")
    print("-" * 70)

    if result.steps:
        print(f"{'Step':<6} {verb:<20} {'p-value':>10} {'adj R² before':>15} {'adj R² after':>14}")
        for step in result.steps:
            p_text = 'nan' if np.isnan(step.p_value) else f"{step.p_value:.4f}"
            print(f"{step.step:<6} {step.term:<20} {p_text:>10} "
                  f"{step.adj_r2_before:>15.4f} {step.adj_r2_after:>14.4f}")
    else:
        print(f"No terms {verb.lower()}.")

    print("-" * 70)
    print(f"Final: {result.model.formula}")
    print(f"       adj R² = {result.model.adj_r2:.4f}")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n_samples = 150
    sample_df = pd.DataFrame({
        'x1': np.random.randn(n_samples),
        'x2': np.random.randn(n_samples),
        'noise': np.random.randn(n_samples)
    })
    sample_df['y'] = (1.0 + sample_df['x1'] + sample_df['x2']
                      + 2.0 * sample_df['x1'] * sample_df['x2']
                      + np.random.randn(n_samples) * 0.5)

    full = OLSModel('y', terms=['x1', 'x2', 'noise', 'x1:x2']).fit(sample_df)
    for selection in run_selection(full, direction='both').values():
        print_selection_report(selection)
