"""Truncated Poisson probabilities for uniformization.

The transient probabilities of a uniformized chain are Poisson mixtures of
powers of the DTMC. The mixture is truncated at a right bound chosen such that
the neglected tail mass is below a tolerance, and the retained mass is used to
renormalise the truncated sum.
"""

from math import exp, log, floor, sqrt

import numpy
from scipy.special import gammaln
from scipy.stats import norm

from CPHSRM.errors import InvalidParameter, NumericalError

# Below this mean the bound is found by summing the probabilities directly,
# above it by the normal approximation of the Poisson quantile.
NORMAL_APPROXIMATION_LAMBDA = 3.0

# The largest truncation bound we are willing to work with. Beyond this the
# (eps, ufactor, t) combination is considered unusable.
RIGHTBOUND_LIMIT = 2 ** 24


def _check_lambda(lam):
    if not (numpy.isfinite(lam) and lam >= 0.0):
        raise InvalidParameter("Poisson mean must be finite and non-negative, got %r" % (lam,))


def rightbound(lam, eps):
    """Compute the right truncation bound of a Poisson distribution.

    :param lam: Mean of the Poisson distribution, qv * t.
    :type lam: float
    :param eps: Tolerance for the neglected tail mass.
    :type eps: float

    :returns: the index r such that the mass beyond r is below eps.
    :rtype: int
    """
    _check_lambda(lam)
    if not 0.0 < eps < 1.0:
        raise InvalidParameter("eps must be in (0, 1), got %r" % (eps,))

    if lam == 0.0:
        return 0

    if lam < NORMAL_APPROXIMATION_LAMBDA:
        right = 0
        term = exp(-lam)
        total = term
        while total < 1.0 - eps:
            right += 1
            term *= lam / right
            total += term
            if term == 0.0:
                # the remaining tail is below the floating point resolution
                break
            if right > RIGHTBOUND_LIMIT:
                raise NumericalError("no right bound for lambda=%g, eps=%g below %d"
                                     % (lam, eps, RIGHTBOUND_LIMIT))
        return right

    z = norm.isf(eps)
    tmp = z + sqrt(4.0 * lam - 1.0)
    right = int(tmp * tmp / 4.0 + 1.0)
    if right > RIGHTBOUND_LIMIT:
        raise NumericalError("right bound %d for lambda=%g, eps=%g exceeds the limit %d"
                             % (right, lam, eps, RIGHTBOUND_LIMIT))
    return right


def pmf(lam, left, right):
    """Poisson probabilities on [left, right] and their total.

    The probability at the mode (or the end point nearest to it) is evaluated
    on log scale and the others are obtained by the ratios
    p(j+1) / p(j) = lam / (j+1), so no factorials are formed.

    :param lam: Mean of the Poisson distribution.
    :type lam: float
    :param left: The first index to compute.
    :type left: int
    :param right: The last index to compute.
    :type right: int

    :returns: the probabilities prob[j - left] for j in [left, right] and the
     retained mass, weight.
    :rtype: (numpy.ndarray, float)
    """
    _check_lambda(lam)
    if left < 0 or right < left:
        raise InvalidParameter("invalid Poisson index range [%r, %r]" % (left, right))

    prob = numpy.zeros(right - left + 1)
    if lam == 0.0:
        if left == 0:
            prob[0] = 1.0
        return prob, float(prob.sum())

    mode = min(max(int(floor(lam)), left), right)
    prob[mode - left] = exp(-lam + mode * log(lam) - gammaln(mode + 1.0))
    for j in range(mode, left, -1):
        prob[j - 1 - left] = prob[j - left] * j / lam
    for j in range(mode, right):
        prob[j + 1 - left] = prob[j - left] * lam / (j + 1)
    return prob, float(prob.sum())
