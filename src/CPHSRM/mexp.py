"""Matrix exponential-vector products through uniformization.

For a uniformized chain P = I + G / qv we have

    exp(G t) = sum_j poi(j; qv t) P^j,

so the action of the matrix exponential on a vector is a Poisson weighted sum
of DTMC steps. The sum is truncated at the right bound of the Poisson
distribution and renormalised by the retained Poisson mass.
"""

import numpy
from numpy import zeros

from CPHSRM.errors import InvalidParameter, NumericalError
from CPHSRM.poisson import rightbound, pmf


def _check_weight(weight):
    if not (numpy.isfinite(weight) and weight > numpy.finfo(float).tiny):
        raise NumericalError("Poisson weight %r cannot be used for renormalisation; "
                             "the tolerance or uniformization factor is unusable "
                             "for this time horizon" % (weight,))


def mexpv(P, prob, right, weight, x, trans=False):
    """Compute exp(G t) x (or x exp(G t) for trans=True).

    :param P: The uniformized chain.
    :type P: CPHSRM.CTMC.UniformizedCF1
    :param prob: Poisson probabilities poi(j; qv t) for j = 0 .. right.
    :type prob: numpy.ndarray
    :param right: The right truncation bound.
    :type right: int
    :param weight: The total of prob[0 .. right].
    :type weight: float
    :param x: The vector to multiply onto.
    :type x: numpy.ndarray
    :param trans: Propagate x as a row (forward) vector.
    :type trans: bool

    :returns: the product, a new vector.
    :rtype: numpy.ndarray
    """
    _check_weight(weight)
    xi = numpy.array(x, dtype=float)
    y = prob[0] * xi
    for j in range(1, right + 1):
        xi = P.dot(xi, trans)
        y += prob[j] * xi
    return y / weight


def mexp_conv(P, prob, right, weight, x, y):
    """Forward-backward convolution for the sojourn statistics.

    Computes the forward vector z = x exp(G t) and the CF1 entries of

        H = int_0^t (x exp(G u))^T (exp(G (t - u)) y)^T du.

    The backward part is first materialised in a (right + 2) x n buffer
    vc[l] = sum_{k >= l} poi(k) P^(k - l) y for l = 1 .. right + 1, and then
    combined with the forward vectors x P^l in a second, forward pass.

    :param P: The uniformized chain.
    :type P: CPHSRM.CTMC.UniformizedCF1
    :param prob: Poisson probabilities for j = 0 .. right + 1.
    :type prob: numpy.ndarray
    :param right: The right truncation bound.
    :type right: int
    :param weight: The total of prob.
    :type weight: float
    :param x: Forward (row) vector.
    :type x: numpy.ndarray
    :param y: Backward (column) vector.
    :type y: numpy.ndarray

    :returns: the forward vector z and the statistics H of length 2n, where
     H[i] is the expected time in phase i and H[n + i] the convolution term
     for the transition from phase i to i + 1.
    :rtype: (numpy.ndarray, numpy.ndarray)
    """
    _check_weight(weight)
    if len(prob) < right + 2:
        raise InvalidParameter("mexp_conv needs Poisson probabilities up to right + 1")

    y = numpy.asarray(y, dtype=float)
    vc = zeros((right + 2, P.n))
    vc[right + 1] = prob[right + 1] * y
    for l in range(right, 0, -1):
        vc[l] = P.dot(vc[l + 1]) + prob[l] * y

    xi = numpy.array(x, dtype=float)
    z = prob[0] * xi
    H = P.outer(xi, vc[1])
    for l in range(1, right + 1):
        xi = P.dot(xi, trans=True)
        z += prob[l] * xi
        H += P.outer(xi, vc[l + 1])

    return z / weight, H / (P.qv * weight)


def transient(P, x, t, eps=1.0e-8, trans=False):
    """Propagate x over a time span t, setting up the Poisson weights.

    :param P: The uniformized chain.
    :type P: CPHSRM.CTMC.UniformizedCF1
    :param x: The vector to propagate.
    :type x: numpy.ndarray
    :param t: Length of the time span.
    :type t: float
    :param eps: Tolerance of the Poisson truncation.
    :type eps: float
    :param trans: Propagate x as a row (forward) vector.
    :type trans: bool
    :rtype: numpy.ndarray
    """
    lam = P.qv * t
    right = rightbound(lam, eps)
    prob, weight = pmf(lam, 0, right)
    return mexpv(P, prob, right, weight, x, trans)


def convolution(P, x, y, t, eps=1.0e-8):
    """Set up the Poisson weights for a time span t and run mexp_conv.

    :rtype: (numpy.ndarray, numpy.ndarray)
    """
    lam = P.qv * t
    right = rightbound(lam, eps)
    prob, weight = pmf(lam, 0, right + 1)
    return mexp_conv(P, prob, right, weight, x, y)
