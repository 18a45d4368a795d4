"""Distribution functions of canonical form 1 (CF1) phase-type distributions.

A CF1 distribution is given by an initial probability vector alpha over the
phases and the exit rates of the phases. A sample starts in phase i with
probability alpha[i], and then passes through phases i, i + 1, ..., n - 1,
spending an exponentially distributed time with rate rate[j] in phase j.
"""

import numpy

from CPHSRM.errors import InvalidParameter
from CPHSRM.CTMC import as_rate_vector, make_uniformized
from CPHSRM.mexp import transient, convolution

# How far the initial probabilities may be from summing to one.
ALPHA_SUM_TOLERANCE = 1.0e-6


def validate_cf1(alpha, rate):
    """Check that alpha and rate describe a CF1 distribution.

    :returns: alpha and rate as float vectors.
    :rtype: (numpy.ndarray, numpy.ndarray)
    """
    rate = as_rate_vector(rate)
    alpha = numpy.asarray(alpha, dtype=float)
    if alpha.ndim != 1 or len(alpha) != len(rate):
        raise InvalidParameter("alpha has shape %s but there are %d rates" % (alpha.shape, len(rate)))
    bad = numpy.flatnonzero(~(numpy.isfinite(alpha) & (alpha >= 0.0)))
    if len(bad) > 0:
        raise InvalidParameter("alpha[%d] = %r is not a probability" % (bad[0], alpha[bad[0]]))
    if abs(alpha.sum() - 1.0) > ALPHA_SUM_TOLERANCE:
        raise InvalidParameter("alpha sums to %r, not 1" % (alpha.sum(),))
    return alpha, rate


def validate_tolerance(eps, ufactor):
    """Check the truncation tolerance and the uniformization factor."""
    if not 0.0 < eps < 1.0:
        raise InvalidParameter("eps must be in (0, 1), got %r" % (eps,))
    if not ufactor > 1.0:
        raise InvalidParameter("ufactor must be larger than 1, got %r" % (ufactor,))


def _as_time_points(t):
    t = numpy.asarray(t, dtype=float)
    bad = numpy.flatnonzero(~(numpy.isfinite(t) & (t >= 0.0)))
    if len(bad) > 0:
        raise InvalidParameter("time point %r is not a non-negative number" % (t.flat[bad[0]],))
    return t


def _forward_vectors(t, alpha, rate, eps, ufactor):
    """The row vectors alpha exp(G t) for all time points.

    The time points are visited in increasing order and the vector is
    propagated over the differences, so the chain is only uniformized once.
    """
    P = make_uniformized(rate, ufactor)
    points = t.ravel()
    vectors = numpy.empty((len(points), len(alpha)))
    x = alpha
    previous = 0.0
    for k in numpy.argsort(points, kind='stable'):
        x = transient(P, x, points[k] - previous, eps, trans=True)
        previous = points[k]
        vectors[k] = x
    return vectors


def _shape_like(values, t):
    if t.ndim == 0:
        return float(values[0])
    return values.reshape(t.shape)


def pdf(t, alpha, rate, eps=1.0e-8, ufactor=1.01, log=False):
    """Probability density function.

    :param t: Time points.
    :type t: float | array_like
    :param alpha: Initial probabilities.
    :param rate: Exit rates.
    :param eps: Tolerance of the Poisson truncation.
    :param ufactor: Uniformization factor.
    :param log: Return the logarithm of the density.

    :returns: the density at each time point.
    """
    alpha, rate = validate_cf1(alpha, rate)
    validate_tolerance(eps, ufactor)
    t = _as_time_points(t)
    result = rate[-1] * _forward_vectors(t, alpha, rate, eps, ufactor)[:, -1]
    if log:
        with numpy.errstate(divide='ignore'):
            result = numpy.log(result)
    return _shape_like(result, t)


def cdf(t, alpha, rate, eps=1.0e-8, ufactor=1.01, lower=True, log=False):
    """Cumulative distribution function.

    The computation gives the survival probability, the probability mass left
    in the transient phases. lower=False returns that directly, lower=True its
    complement, either on natural or on log scale.

    :param t: Time points.
    :type t: float | array_like
    :param alpha: Initial probabilities.
    :param rate: Exit rates.
    :param eps: Tolerance of the Poisson truncation.
    :param ufactor: Uniformization factor.
    :param lower: Return P(X <= t) rather than P(X > t).
    :param log: Return the logarithm of the probability.
    """
    alpha, rate = validate_cf1(alpha, rate)
    validate_tolerance(eps, ufactor)
    t = _as_time_points(t)
    result = numpy.clip(_forward_vectors(t, alpha, rate, eps, ufactor).sum(axis=1), 0.0, 1.0)
    with numpy.errstate(divide='ignore'):
        if not lower and not log:
            value = result
        elif lower and not log:
            value = 1.0 - result
        elif not lower and log:
            value = numpy.log(result)
        else:
            value = numpy.log1p(-result)
    return _shape_like(value, t)


def sample(count, alpha, rate, rng=None):
    """Draw count independent samples.

    The number of samples that have entered the chain by phase l is drawn
    binomially among those not yet entered, with probability alpha[l] over
    the initial mass not yet allocated. Every entered sample then spends an
    exponential holding time in phase l.

    :param count: Number of samples.
    :type count: int
    :param rng: Source of random numbers with binomial, exponential and
     permutation methods, e.g. a numpy.random.Generator. Defaults to the
     numpy.random module.

    :rtype: numpy.ndarray
    """
    alpha, rate = validate_cf1(alpha, rate)
    if count < 0:
        raise InvalidParameter("cannot draw %r samples" % (count,))
    if rng is None:
        rng = numpy.random

    result = numpy.zeros(count)
    entered = 0
    remaining = 1.0
    for l in range(len(alpha)):
        p = alpha[l] / remaining if remaining > 0.0 else 1.0
        entered += rng.binomial(count - entered, min(max(p, 0.0), 1.0))
        remaining -= alpha[l]
        result[:entered] += rng.exponential(1.0 / rate[l], size=entered)
    # samples are grouped by entry phase above
    return rng.permutation(result)


def sojourn(alpha, rate, f, b, t, eps=1.0e-8, ufactor=1.01):
    """Sojourn statistics of the chain over [0, t].

    :param f: Forward (row) vector at time 0.
    :param b: Backward (column) vector at time t.
    :param t: Length of the time span.

    :returns: a vector H of length 2n with the convolution of f and b for
     the time spent in each phase (H[:n]) and for the transitions from
     phase i to i + 1 (H[n:2n-1]).
    :rtype: numpy.ndarray
    """
    alpha, rate = validate_cf1(alpha, rate)
    validate_tolerance(eps, ufactor)
    n = len(rate)
    f = numpy.asarray(f, dtype=float)
    b = numpy.asarray(b, dtype=float)
    if f.shape != (n,) or b.shape != (n,):
        raise InvalidParameter("forward and backward vectors must have length %d" % n)
    t = _as_time_points(t)
    if t.ndim != 0:
        raise InvalidParameter("sojourn needs a single time span")
    _, H = convolution(make_uniformized(rate, ufactor), f, b, float(t), eps)
    return H


def _swap(i, j, alpha, rate):
    w = rate[j] / rate[i]
    alpha[i] += (1.0 - w) * alpha[j]
    alpha[j] *= w
    rate[i], rate[j] = rate[j], rate[i]


def cf1_sort(alpha, rate):
    """Reorder the phases so the rates are non-decreasing.

    Neighbouring phases are swapped with an adjustment of the initial
    probabilities that leaves the distribution unchanged.

    :returns: new alpha and rate vectors.
    :rtype: (numpy.ndarray, numpy.ndarray)
    """
    alpha = numpy.array(alpha, dtype=float)
    rate = numpy.array(rate, dtype=float)
    n = len(rate)
    for i in range(n - 1):
        for j in range(n - 1, i, -1):
            if rate[j - 1] > rate[j]:
                _swap(j - 1, j, alpha, rate)
    return alpha, rate


def reform(alpha, rate):
    """Canonical form of a CF1 distribution."""
    alpha, rate = validate_cf1(alpha, rate)
    return cf1_sort(alpha, rate)


def mean(alpha, rate):
    """The expected value of the distribution."""
    alpha, rate = validate_cf1(alpha, rate)
    return float(numpy.dot(alpha, numpy.cumsum((1.0 / rate)[::-1])[::-1]))
