"""Code for the CTMC underlying a canonical form 1 (CF1) phase-type
distribution and for uniformizing it.

A CF1 chain with n phases moves from phase i to phase i + 1 at rate rate[i]
and from the last phase into the absorbing state at rate rate[n - 1]. The
generator is never stored as a matrix. It is represented by the rate vector
together with the matrix-vector products the transient computations need.
"""

import numpy
from numpy import zeros

from CPHSRM.errors import InvalidParameter


def as_rate_vector(rate):
    """Convert rate into a float vector and check it defines a generator.

    :param rate: Exit rates of the phases.
    :type rate: array_like

    :returns: the rates as a one-dimensional array.
    :rtype: numpy.ndarray
    """
    rate = numpy.asarray(rate, dtype=float)
    if rate.ndim != 1 or len(rate) == 0:
        raise InvalidParameter("rate must be a non-empty vector, got shape %s" % (rate.shape,))
    bad = numpy.flatnonzero(~(numpy.isfinite(rate) & (rate > 0.0)))
    if len(bad) > 0:
        raise InvalidParameter("rate[%d] = %r is not a positive finite rate" % (bad[0], rate[bad[0]]))
    return rate


class CF1Generator(object):
    """The infinitesimal generator of a CF1 chain restricted to the
    transient phases."""

    def __init__(self, rate):
        """Create the generator from the exit rates of the phases.

        :param rate: The rate of leaving each phase.
        :type rate: array_like
        """
        self.rate = as_rate_vector(rate)

    @property
    def n(self):
        """The number of phases."""
        return len(self.rate)

    def dot(self, x, trans=False):
        """Multiply the generator onto x.

        With trans=False this computes G x, which propagates backward (column)
        vectors. With trans=True it computes G^T x, i.e. the row vector x G,
        which propagates forward (probability) vectors.
        """
        y = -self.rate * x
        if trans:
            y[1:] += self.rate[:-1] * x[:-1]
        else:
            y[:-1] += self.rate[:-1] * x[1:]
        return y

    def exit_vector(self):
        """The rates into the absorbing state from each phase."""
        xi = zeros(self.n)
        xi[-1] = self.rate[-1]
        return xi

    def solve_left(self, r):
        """Solve x (-G) = r for the row vector x.

        Since -G is upper bidiagonal with rate on the diagonal and -rate on
        the super diagonal, x[j] rate[j] = r[j] + x[j-1] rate[j-1].
        """
        return numpy.cumsum(r) / self.rate

    def dense(self):
        """The generator as a dense matrix. Only meant for testing."""
        gen = numpy.diag(-self.rate)
        gen[numpy.arange(self.n - 1), numpy.arange(1, self.n)] = self.rate[:-1]
        return gen


class UniformizedCF1(object):
    """The uniformized DTMC P = I + G / qv of a CF1 chain."""

    def __init__(self, generator, qv):
        """Uniformize the generator with the rate qv.

        :param generator: The CF1 generator.
        :type generator: CF1Generator
        :param qv: The uniformization rate. Must exceed every outflow rate.
        :type qv: float
        """
        if not qv > generator.rate.max():
            raise InvalidParameter("uniformization rate %r does not exceed the maximal "
                                   "outflow rate %r" % (qv, generator.rate.max()))
        self.generator = generator
        self.qv = float(qv)
        self.prob = generator.rate / self.qv

    @property
    def n(self):
        """The number of phases."""
        return self.generator.n

    @property
    def rate(self):
        """The exit rates of the underlying generator."""
        return self.generator.rate

    def dot(self, x, trans=False):
        """Multiply P (trans=False) or P^T (trans=True) onto x."""
        p = self.prob
        y = (1.0 - p) * x
        if trans:
            y[1:] += p[:-1] * x[:-1]
        else:
            y[:-1] += p[:-1] * x[1:]
        return y

    def outer(self, x, y):
        """The entries of the outer product x y^T that the CF1 structure needs.

        The first n entries are the diagonal x[i] y[i], and entries n .. 2n-2
        are the super diagonal x[i] y[i+1]. The last entry stays zero.
        """
        n = self.n
        h = zeros(2 * n)
        h[:n] = x * y
        h[n:2 * n - 1] = x[:-1] * y[1:]
        return h


def uniformize(rate, ufactor=1.01):
    """Uniformize the CF1 generator given by rate.

    The uniformization rate is qv = ufactor * max(rate). A larger ufactor
    needs more Poisson terms for the same time horizon.

    :param rate: Exit rates of the phases.
    :type rate: array_like
    :param ufactor: The uniformization factor. Must be larger than one.
    :type ufactor: float

    :returns: the uniformized chain.
    :rtype: UniformizedCF1
    """
    if not ufactor > 1.0:
        raise InvalidParameter("ufactor must be larger than 1, got %r" % (ufactor,))
    generator = CF1Generator(rate)
    return UniformizedCF1(generator, ufactor * generator.rate.max())


# The same parameters are uniformized again and again when a model is
# evaluated for many time points, so the uniformized chains are cached.
from CPHSRM.cache import Cache
UNIFORMIZED_CACHE = Cache()


def make_uniformized(rate, ufactor=1.01):
    """Cached version of uniformize.

    :param rate: Exit rates of the phases.
    :type rate: array_like
    :param ufactor: The uniformization factor.
    :type ufactor: float
    :rtype: UniformizedCF1
    """
    cache_key = (tuple(numpy.asarray(rate, dtype=float)), float(ufactor))
    if cache_key not in UNIFORMIZED_CACHE:
        UNIFORMIZED_CACHE[cache_key] = uniformize(rate, ufactor)
    return UNIFORMIZED_CACHE[cache_key]
