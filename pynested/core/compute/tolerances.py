"""
Numerical thresholds shared by the fitting and comparison routines.

Kept in one place so that fitter, comparator and tests agree on what
"zero", "tied" and "singular" mean.
"""

# Relative standard deviation θ below which a variance component is
# considered collapsed onto the boundary (lme4's isSingular default).
SINGULAR_THETA_TOL = 1e-4

# Information-criterion values closer than this are treated as tied.
CRITERION_TIE_TOL = 1e-6

# Floor applied inside log-determinants of triangular factors.
LOG_DET_FLOOR = 1e-20

# Relative step for central finite differences (Satterthwaite df).
FINITE_DIFF_EPS = 1e-4

# Clip range for moment-based starting values of θ.
THETA_START_MIN = 0.1
THETA_START_MAX = 10.0

# Largest projected-gradient component of the profiled deviance accepted
# when the optimizer stops without reporting success (lme4's default).
GRADIENT_TOL = 2e-3
