"""
Mixed models: specification and fitting of linear mixed models.

Public API:
    ModelSpec        - immutable model specification (also from_formula)
    FixedTerm        - fixed main effect or interaction
    RandomTerm       - random intercept (and slopes) for one grouping
    Criterion        - RESTRICTED (REML) or FULL (ML)
    fit()            - fit one specification
    fit_many()       - fit candidate specifications, optionally in parallel
    FittedModel      - result wrapper for a fitted model
    CandidateOutcome - per-candidate outcome of fit_many()
"""

from pynested.mixed.spec import Criterion, FixedTerm, RandomTerm, ModelSpec
from pynested.mixed.solvers import fit, fit_many, CandidateOutcome
from pynested.mixed.solution import FittedModel
from pynested.mixed._common import CoefficientEstimate, VarCompSummary

__all__ = [
    "Criterion",
    "FixedTerm",
    "RandomTerm",
    "ModelSpec",
    "fit",
    "fit_many",
    "CandidateOutcome",
    "FittedModel",
    "CoefficientEstimate",
    "VarCompSummary",
]
