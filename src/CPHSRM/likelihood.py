"""Code for combining fault data with a model for computing and maximising
likelihoods.
"""

import time
import warnings
from collections import namedtuple

import numpy

from CPHSRM.errors import InvalidParameter, NumericalError
from CPHSRM.faultdata import FaultData
from CPHSRM.model import cphsrm


class Likelihood(object):
    """Combining model and data."""

    def __init__(self, model, data):
        """Bind a model to fault data.

        :param model: A software reliability model.
        :type model: CPHSRM.model.CPHSRM
        :param data: The observed faults.
        :type data: CPHSRM.faultdata.FaultData
        """
        super(Likelihood, self).__init__()
        self.model = model
        self.data = data

    def __call__(self, *parameters):
        """Compute the log-likelihood at a parameter point (omega, alpha, rate)."""
        if not self.model.valid_parameters(parameters):
            return -float('inf')
        return self.model.llf(self.data, parameters)


DEFAULT_OPTIONS = {
    'maxiter': 2000,
    'reltol': 1.0e-6,
    'abstol': 1.0e-3,
    'trace': False,
    'printsteps': 50,
}


def srm_options(**control):
    """Control options for emfit, with defaults for those not given.

    Unknown options are reported with a warning and ignored.
    """
    options = dict(DEFAULT_OPTIONS)
    unknown = sorted(name for name in control if name not in DEFAULT_OPTIONS)
    if unknown:
        warnings.warn("unknown names in control: %s" % ', '.join(unknown))
    options.update((name, value) for name, value in control.items() if name in DEFAULT_OPTIONS)
    return options


# Relative decrease of the log-likelihood between EM steps that is put down
# to the truncation of the Poisson sums rather than reported.
LLF_DECREASE_TOLERANCE = 1.0e-8

EMFitResult = namedtuple('EMFitResult', ['initial', 'srm', 'llf', 'df', 'convergence',
                                         'iter', 'aerror', 'rerror', 'aic', 'ctime'])


def _format_params(params):
    omega, alpha, rate = params
    return [str(omega)] + [str(a) for a in alpha] + [str(r) for r in rate]


def emfit(model, data, initialize=True, log_file=None, pool=None, **control):
    """Maximum likelihood estimation with the EM algorithm.

    The iteration stops when both the absolute and the relative change of the
    log-likelihood are below abstol and reltol, or after maxiter steps. If a
    log file is given and trace is set, the iteration is logged to that file
    every printsteps steps.

    :param model: The model to fit. It is updated with the estimate.
    :type model: CPHSRM.model.CPHSRM
    :param data: The observed faults.
    :type data: CPHSRM.faultdata.FaultData
    :param initialize: Start from the model's initial parameters for the
     data rather than its current parameters.
    :param log_file: Progress will be logged to this file/stream.
    :param pool: Optional pool for the per-record computations.

    :returns: the fitted model with the log-likelihood and convergence
     information.
    :rtype: EMFitResult
    """
    options = srm_options(**control)
    start = time.process_time()

    if initialize:
        model.init_params(data)
    initial = model.params

    log_callback = None
    if log_file and options['trace']:
        def log_callback(iteration, result):
            print('\t'.join([str(iteration), str(result.llf)] + _format_params(result.param)),
                  file=log_file)
            log_file.flush()

    previous = model.em_step(data, pool=pool)
    params = previous.param
    iteration = 1
    since_print = 1
    converged = False
    while True:
        result = model.em_step(data, params, pool=pool)
        params = result.param
        aerror = abs(result.llf - previous.llf)
        rerror = aerror / abs(previous.llf) if previous.llf != 0.0 else aerror

        if not numpy.isfinite(result.llf):
            raise NumericalError("log-likelihood %r at iteration %d" % (result.llf, iteration))
        if result.llf < previous.llf - LLF_DECREASE_TOLERANCE * abs(previous.llf):
            warnings.warn("log-likelihood decreased at iteration %d: %r -> %r"
                          % (iteration, previous.llf, result.llf))
        if log_callback and since_print >= options['printsteps']:
            log_callback(iteration, result)
            since_print = 0
        if aerror < options['abstol'] and rerror < options['reltol']:
            converged = True
            break
        if iteration >= options['maxiter']:
            warnings.warn("EM did not converge in %d iterations" % iteration)
            break
        iteration += 1
        since_print += 1
        previous = result

    model.set_params(params)
    llf = model.llf(data)
    return EMFitResult(initial=initial, srm=model, llf=llf, df=model.df,
                       convergence=converged, iter=iteration, aerror=aerror,
                       rerror=rerror, aic=-2.0 * llf + 2.0 * model.df,
                       ctime=time.process_time() - start)


def fit_srm_cph(data, phase=range(2, 11), selection='AIC', log_file=None,
                eps=1.0e-8, ufactor=1.01, **control):
    """Fit CF1 software reliability models.

    :param data: The observed faults, or a dict with time/fault/type/te.
    :type data: CPHSRM.faultdata.FaultData | dict
    :param phase: A number of phases, or a sequence of them.
    :param selection: The criterion for choosing among several phase
     counts. Only 'AIC' is supported; None returns every fit.
    :param log_file: Progress will be logged to this file/stream.

    :returns: the selected fit, or a dict of fits keyed by model name.
    :rtype: EMFitResult | dict[str, EMFitResult]
    """
    if not isinstance(data, FaultData):
        data = FaultData(**data)
    if selection not in (None, 'AIC'):
        raise InvalidParameter("unknown model selection criterion %r" % (selection,))

    models = cphsrm(phase, eps, ufactor)
    if not isinstance(models, dict):
        return emfit(models, data, log_file=log_file, **control)

    results = dict()
    for name, model in models.items():
        if log_file:
            print('# %s' % name, file=log_file)
        results[name] = emfit(model, data, log_file=log_file, **control)

    if selection is None:
        return results
    return min(results.values(), key=lambda result: result.aic)
