#!/usr/bin/env python

"""Script for estimating a CF1 phase-type software reliability model.
"""

from argparse import ArgumentParser

from CPHSRM.faultdata import FaultData
from CPHSRM.likelihood import fit_srm_cph


def main():
    """
    Run the main script.
    """
    usage = """%(prog)s [options] <fault data>

This program estimates the parameters of NHPP software reliability models
with canonical phase-type failure time distributions. The data file holds one
observation interval per line: the interval length, optionally followed by the
number of faults inside the interval and a 0/1 flag telling if a fault was
detected at the end of it. With only one column the data are times between
failures."""

    parser = ArgumentParser(usage=usage)
    parser.add_argument("--version", action="version", version="%(prog)s 1.0")

    parser.add_argument("--header",
                        action="store_true",
                        default=False,
                        help="Include a header on the output")
    parser.add_argument("-o", "--outfile",
                        type=str,
                        default="/dev/stdout",
                        help="Output file for the estimate (/dev/stdout)")
    parser.add_argument("--logfile",
                        type=str,
                        default=None,
                        help="Log for the EM iterations")

    parser.add_argument("--phases",
                        type=int,
                        nargs='+',
                        default=list(range(2, 11)),
                        help="Number of phases to fit; the best is selected by AIC (2 .. 10)")
    parser.add_argument("--all",
                        action="store_true",
                        default=False,
                        help="Report every fitted model instead of the one with the best AIC")
    parser.add_argument("--te",
                        type=float,
                        default=None,
                        help="Time from the last interval to the end of the observation")

    numeric_options = [
        ('eps', float, 'tolerance of the Poisson truncation', 1.0e-8),
        ('ufactor', float, 'uniformization factor', 1.01),
        ('maxiter', int, 'maximum number of EM iterations', 2000),
        ('reltol', float, 'relative tolerance of the log-likelihood', 1.0e-6),
        ('abstol', float, 'absolute tolerance of the log-likelihood', 1.0e-3),
        ('printsteps', int, 'iterations between log lines', 50),
    ]
    for option_name, option_type, description, default in numeric_options:
        parser.add_argument("--%s" % option_name,
                            type=option_type,
                            default=default,
                            help="The %s (%g)" % (description, default))

    parser.add_argument('data', help='Fault data file')

    options = parser.parse_args()

    data = FaultData.from_file(options.data, te=options.te)
    phases = options.phases[0] if len(options.phases) == 1 else options.phases
    control = dict(maxiter=options.maxiter, reltol=options.reltol, abstol=options.abstol,
                   printsteps=options.printsteps, trace=options.logfile is not None)
    selection = None if options.all else 'AIC'

    if options.logfile:
        with open(options.logfile, 'w') as logfile:
            fits = fit_srm_cph(data, phases, selection, log_file=logfile,
                               eps=options.eps, ufactor=options.ufactor, **control)
    else:
        fits = fit_srm_cph(data, phases, selection,
                           eps=options.eps, ufactor=options.ufactor, **control)
    if not isinstance(fits, dict):
        fits = {fits.srm.name: fits}

    with open(options.outfile, 'w') as outfile:
        if options.header:
            print('\t'.join(['model', 'llf', 'aic', 'converged', 'iterations',
                             'omega', 'alpha', 'rate']), file=outfile)
        for name in sorted(fits, key=lambda name: fits[name].srm.phase):
            fit = fits[name]
            omega, alpha, rate = fit.srm.params
            print('\t'.join([name, str(fit.llf), str(fit.aic), str(fit.convergence), str(fit.iter),
                             str(omega), ','.join(map(str, alpha)), ','.join(map(str, rate))]),
                  file=outfile)


if __name__ == '__main__':
    main()
