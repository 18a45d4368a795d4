"""One step of the EM algorithm for the CF1 software reliability model.

The model is a non-homogeneous Poisson process whose mean value function is
omega F(t), with F a CF1 distribution. Each fault has a CF1 distributed
detection time; the complete data are the phase paths of all faults,
including the faults not yet detected at the end of the observation.

The E-step runs a forward sweep over the observation intervals to get the
row vectors f_k = alpha exp(G t_k), and a backward sweep to get, for each
interval, the column vector that weights the end of the interval by the
observations after it. Per interval the two are convolved to get the
expected sojourn times and transition counts. The M-step is closed form.
"""

from collections import namedtuple

import numpy
from scipy.special import gammaln

from CPHSRM.errors import InvalidParameter, NumericalError
from CPHSRM.CTMC import make_uniformized
from CPHSRM.cf1 import validate_cf1, validate_tolerance, cf1_sort
from CPHSRM.mexp import transient, convolution
from CPHSRM.faultdata import FaultData


CF1Params = namedtuple('CF1Params', ['omega', 'alpha', 'rate'])
EMStepResult = namedtuple('EMStepResult', ['param', 'pdiff', 'llf', 'total'])


def validate_params(params):
    """Check (omega, alpha, rate) and return them as a CF1Params."""
    omega, alpha, rate = params
    if len(numpy.atleast_1d(alpha)) == 0 or len(numpy.atleast_1d(rate)) == 0:
        raise InvalidParameter("the parameter vectors must not be empty")
    alpha, rate = validate_cf1(alpha, rate)
    if not (numpy.isfinite(omega) and omega > 0.0):
        raise InvalidParameter("omega must be a positive number, got %r" % (omega,))
    return CF1Params(float(omega), alpha, rate)


def _as_fault_data(data):
    if isinstance(data, FaultData):
        return data
    return FaultData(time=data['time'], fault=data['fault'], type=data['type'])


def forward_vectors(P, alpha, data, eps):
    """The row vectors alpha exp(G t_k) at the end points of the intervals,
    with alpha itself in row zero."""
    f = numpy.empty((len(data) + 1, len(alpha)))
    f[0] = alpha
    for k in range(len(data)):
        f[k + 1] = transient(P, f[k], data.time[k], eps, trans=True)
    return f


def _interval_terms(params, data, f):
    """Log-likelihood and per-record weights from the forward vectors."""
    omega, _, rate = params
    survival = f.sum(axis=1)
    prob = survival[:-1] - survival[1:]
    density = rate[-1] * f[1:, -1]

    observed = data.fault > 0
    bad = numpy.flatnonzero(observed & ~(prob > 0.0))
    if len(bad) > 0:
        raise NumericalError("record %d has %d faults but probability %r under the current parameters"
                             % (bad[0], data.fault[bad[0]], prob[bad[0]]))
    exact = data.type == 1
    bad = numpy.flatnonzero(exact & ~(density > 0.0))
    if len(bad) > 0:
        raise NumericalError("record %d ends with a fault but has density %r under the current parameters"
                             % (bad[0], density[bad[0]]))

    interval_weight = numpy.zeros(len(data))
    interval_weight[observed] = data.fault[observed] / prob[observed]
    exact_weight = numpy.zeros(len(data))
    exact_weight[exact] = 1.0 / density[exact]

    llf = numpy.sum(data.fault[observed] * numpy.log(prob[observed]) - gammaln(data.fault[observed] + 1.0))
    llf += numpy.sum(numpy.log(density[exact]))
    llf += data.total * numpy.log(omega) - omega * (1.0 - survival[-1])
    return float(llf), interval_weight, exact_weight


class ConvolveInterval(object):
    """Sojourn statistics for one record, picklable so it can be mapped
    over the records in a multiprocessing pool."""

    def __init__(self, P, forward, backward, time, eps):
        self.P = P
        self.forward = forward
        self.backward = backward
        self.time = time
        self.eps = eps

    def __call__(self, k):
        _, H = convolution(self.P, self.forward[k], self.backward[k], self.time[k], self.eps)
        return H


SufficientStatistics = namedtuple('SufficientStatistics', ['llf', 'initial', 'sojourn', 'exits'])


def _expected_statistics(params, data, eps, ufactor, pool):
    omega, alpha, rate = params
    n = len(alpha)

    P = make_uniformized(rate, ufactor)
    f = forward_vectors(P, alpha, data, eps)
    llf, interval_weight, exact_weight = _interval_terms(params, data, f)

    # Backward sweep. z is the backward vector at the end of interval k
    # without the contributions of interval k itself; y adds those.
    exit_rates = P.generator.exit_vector()
    backward = numpy.empty((len(data), n))
    z = numpy.full(n, omega)
    for k in range(len(data) - 1, -1, -1):
        y = z - interval_weight[k] + exact_weight[k] * exit_rates
        backward[k] = y
        z = transient(P, y, data.time[k], eps) + interval_weight[k]
    initial = alpha * z

    conv = ConvolveInterval(P, f, backward, data.time, eps)
    mapper = pool.map if pool is not None else map
    H = numpy.sum(list(mapper(conv, range(len(data)))), axis=0)

    # The constant part of the backward vectors, and the faults left after
    # the last observation, contribute integrals of the forward vectors.
    integrated = P.generator.solve_left(numpy.dot(interval_weight, f[:-1] - f[1:]) + omega * f[-1])

    sojourn_time = H[:n] + integrated
    exits = numpy.empty(n)
    exits[:-1] = rate[:-1] * (H[n:2 * n - 1] + integrated[:-1])
    # every fault leaves the last phase exactly once
    exits[-1] = initial.sum()
    return SufficientStatistics(llf, initial, sojourn_time, exits)


def expected_statistics(params, data, eps=1.0e-8, ufactor=1.01, pool=None):
    """The E-step: expected complete-data statistics under the parameters.

    :returns: the log-likelihood of the parameters (llf), the expected number
     of faults starting in each phase (initial), the expected total time
     spent in each phase (sojourn) and the expected number of transitions
     out of each phase (exits).
    :rtype: SufficientStatistics
    """
    params = validate_params(params)
    validate_tolerance(eps, ufactor)
    return _expected_statistics(params, _as_fault_data(data), eps, ufactor, pool)


def em_cf1_emstep(params, data, eps=1.0e-8, ufactor=1.01, pool=None):
    """Execute one EM step.

    :param params: The current parameters (omega, alpha, rate).
    :type params: CF1Params | tuple
    :param data: The observations.
    :type data: FaultData | dict
    :param eps: Tolerance of the Poisson truncation.
    :type eps: float
    :param ufactor: Uniformization factor.
    :type ufactor: float
    :param pool: Optional pool whose map is used for the per-record
     convolutions.
    :type pool: multiprocessing.Pool

    :returns: the updated parameters (param), the difference to the current
     parameters (pdiff), the log-likelihood of the current parameters (llf)
     and the expected total number of faults (total).
    :rtype: EMStepResult
    """
    params = validate_params(params)
    validate_tolerance(eps, ufactor)
    stats = _expected_statistics(params, _as_fault_data(data), eps, ufactor, pool)

    bad = numpy.flatnonzero(~(stats.sojourn > 0.0))
    if len(bad) > 0:
        raise NumericalError("expected time in phase %d is %r" % (bad[0], stats.sojourn[bad[0]]))

    new_omega = float(stats.initial.sum())
    new_alpha, new_rate = cf1_sort(stats.initial / new_omega, stats.exits / stats.sojourn)
    new_params = CF1Params(new_omega, new_alpha, new_rate)
    pdiff = CF1Params(new_omega - params.omega, new_alpha - params.alpha, new_rate - params.rate)
    return EMStepResult(new_params, pdiff, stats.llf, new_omega)


def llf_cf1(params, data, eps=1.0e-8, ufactor=1.01):
    """The log-likelihood of the parameters for the data."""
    params = validate_params(params)
    validate_tolerance(eps, ufactor)
    data = _as_fault_data(data)
    f = forward_vectors(make_uniformized(params.rate, ufactor), params.alpha, data, eps)
    llf, _, _ = _interval_terms(params, data, f)
    return llf


def init_params(phase, data):
    """Starting parameters for the EM algorithm.

    The initial probabilities are uniform and the rates are (1, ..., phase)
    divided by the mean detection time, which gives a distribution with that
    mean.
    """
    if phase < 1:
        raise InvalidParameter("a CF1 model needs at least one phase, got %r" % (phase,))
    data = _as_fault_data(data)
    omega = data.total + 1.0
    alpha = numpy.full(phase, 1.0 / phase)
    rate = numpy.arange(1, phase + 1) / data.mean
    return CF1Params(omega, alpha, rate)
