"""
Software reliability models based on non-homogeneous Poisson processes.
"""

from abc import ABCMeta, abstractmethod

import numpy

from CPHSRM.errors import InvalidParameter, CPHSRMError
from CPHSRM import cf1
from CPHSRM.emstep import em_cf1_emstep, llf_cf1, init_params, validate_params


class SRM(metaclass=ABCMeta):
    """Abstract class for NHPP software reliability models. The mean value
    function is omega times the failure time distribution of a single fault."""

    def __init__(self, name):
        self.name = name
        self.params = None

    @property
    @abstractmethod
    def df(self):
        """The number of free parameters."""
        pass

    @abstractmethod
    def init_params(self, data):
        """Set parameters suitable as the starting point of estimation."""
        pass

    @abstractmethod
    def em_step(self, data, params=None):
        """One EM step from params (default: the current parameters)."""
        pass

    @abstractmethod
    def llf(self, data, params=None):
        """Log-likelihood of params (default: the current parameters)."""
        pass

    @abstractmethod
    def mvf(self, t):
        """The expected number of faults detected by time t."""
        pass

    @abstractmethod
    def intensity(self, t):
        """The fault detection rate at time t."""
        pass

    def set_params(self, params):
        self.params = params

    def dmvf(self, t):
        """The expected number of faults in the intervals between
        consecutive time points, starting from zero.

        :param t: Increasing time points.
        :type t: array_like
        """
        return numpy.diff(self.mvf(numpy.concatenate(([0.0], numpy.atleast_1d(t)))))

    def reliab(self, t, s):
        """The probability of no fault in (s, s + t]."""
        return numpy.exp(-(self.mvf(numpy.asarray(s) + t) - self.mvf(s)))

    def __repr__(self):
        return '%s(%s)' % (self.name, self.params)


class CPHSRM(SRM):
    """Software reliability model with a CF1 phase-type failure time
    distribution."""

    def __init__(self, phase, eps=1.0e-8, ufactor=1.01):
        """Construct the model.

        :param phase: The number of phases.
        :type phase: int
        :param eps: Tolerance of the Poisson truncation.
        :type eps: float
        :param ufactor: Uniformization factor.
        :type ufactor: float
        """
        if phase < 1:
            raise InvalidParameter("a CF1 model needs at least one phase, got %r" % (phase,))
        super(CPHSRM, self).__init__(cph_name(phase))
        cf1.validate_tolerance(eps, ufactor)
        self.phase = phase
        self.eps = eps
        self.ufactor = ufactor

    @property
    def df(self):
        # omega, phase - 1 free initial probabilities and phase rates
        return 2 * self.phase

    def _current(self, params):
        if params is None:
            params = self.params
        if params is None:
            raise CPHSRMError("the parameters of %s have not been set" % self.name)
        return params

    def set_params(self, params):
        params = validate_params(params)
        if len(params.alpha) != self.phase:
            raise InvalidParameter("%s needs %d phases, got %d" % (self.name, self.phase, len(params.alpha)))
        self.params = params

    # noinspection PyMethodMayBeStatic
    def valid_parameters(self, params):
        """Predicate testing if params is a valid parameter point.

        :returns: True if the parameters are valid, otherwise False
        :rtype: bool
        """
        try:
            validate_params(params)
        except InvalidParameter:
            return False
        return len(params[1]) == self.phase

    def init_params(self, data):
        self.params = init_params(self.phase, data)
        return self.params

    def em_step(self, data, params=None, pool=None):
        return em_cf1_emstep(self._current(params), data, self.eps, self.ufactor, pool)

    def llf(self, data, params=None):
        return llf_cf1(self._current(params), data, self.eps, self.ufactor)

    def mvf(self, t):
        omega, alpha, rate = self._current(None)
        return omega * cf1.cdf(t, alpha, rate, self.eps, self.ufactor)

    def intensity(self, t):
        omega, alpha, rate = self._current(None)
        return omega * cf1.pdf(t, alpha, rate, self.eps, self.ufactor)

    def residual(self, t):
        """The expected number of faults remaining at time t."""
        omega, alpha, rate = self._current(None)
        return omega * cf1.cdf(t, alpha, rate, self.eps, self.ufactor, lower=False)


def cph_name(phase):
    if phase == 1:
        return 'cph1 (exp)'
    return 'cph%d' % phase


def cphsrm(phase, eps=1.0e-8, ufactor=1.01):
    """Create a model for phase phases, or a dict of models keyed by name if
    phase is a sequence of phase counts."""
    if numpy.ndim(phase) == 0:
        return CPHSRM(int(phase), eps, ufactor)
    return dict((cph_name(p), CPHSRM(int(p), eps, ufactor)) for p in phase)
