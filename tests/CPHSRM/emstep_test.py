import unittest
from math import exp
from multiprocessing.dummy import Pool

import numpy
from numpy.testing import assert_allclose
from scipy.linalg import expm
from scipy.integrate import quad_vec
from scipy.special import gammaln

from CPHSRM.errors import InvalidParameter, DataError
from CPHSRM.CTMC import CF1Generator
from CPHSRM.faultdata import FaultData
from CPHSRM.emstep import CF1Params, SufficientStatistics, em_cf1_emstep, expected_statistics, llf_cf1, init_params
from CPHSRM import cf1


END_TIME = 2.0


def sampled_times(seed=5, count=40):
    rng = numpy.random.default_rng(seed)
    times = numpy.sort(cf1.sample(count, [0.3, 0.7], [0.5, 2.0], rng))
    return times[times <= END_TIME]


def failure_time_data():
    times = sampled_times()
    return FaultData(time=numpy.diff(numpy.concatenate(([0.0], times))), te=END_TIME - times[-1])


def grouped_data():
    counts, _ = numpy.histogram(sampled_times(), bins=numpy.linspace(0.0, END_TIME, 9))
    return FaultData(time=numpy.full(8, END_TIME / 8), fault=counts)


PARAMS = CF1Params(45.0, numpy.array([0.2, 0.3, 0.5]), numpy.array([0.6, 1.5, 3.0]))
MIXED_DATA = FaultData(time=[0.5, 1.0, 0.7, 1.2], fault=[2, 0, 3, 1], type=[1, 0, 0, 1])


def brute_force_statistics(params, data):
    """Expected initial counts, sojourn times and transitions from the
    definition, integrating the forward and backward vectors with dense
    matrix exponentials."""
    omega, alpha, rate = params
    gen = CF1Generator(rate)
    dense = gen.dense()
    xi = gen.exit_vector()
    ones = numpy.ones(len(rate))
    t = numpy.concatenate(([0.0], data.cumulative_time))

    def survival(d):
        return expm(dense * d).dot(ones) if d > 0.0 else ones

    def backward(s):
        b = omega * survival(t[-1] - s)
        for k in range(len(data)):
            if s >= t[k + 1]:
                continue
            if data.fault[k] > 0:
                p = alpha.dot(survival(t[k]) - survival(t[k + 1]))
                b = b + data.fault[k] / p * (survival(t[k] - s) - survival(t[k + 1] - s))
            if data.type[k] == 1:
                exact = expm(dense * (t[k + 1] - s)).dot(xi)
                b = b + exact / alpha.dot(expm(dense * t[k + 1])).dot(xi)
        return b

    def integrand(s):
        a = alpha.dot(expm(dense * s))
        b = backward(s)
        return numpy.concatenate((a * b, rate[:-1] * a[:-1] * b[1:]))

    total = numpy.zeros(2 * len(rate) - 1)
    for k in range(len(data)):
        total += quad_vec(integrand, t[k], t[k + 1], epsrel=1e-10)[0]
    # after the last observation only the undetected faults remain
    tail = omega * numpy.linalg.solve(-dense.T, alpha.dot(expm(dense * t[-1])))
    total += numpy.concatenate((tail, rate[:-1] * tail[:-1]))

    n = len(rate)
    return SufficientStatistics(None, alpha * backward(0.0), total[:n], total[n:])


class LogLikelihoodTests(unittest.TestCase):
    def test_grouped_data(self):
        data = grouped_data()
        omega, alpha, rate = PARAMS
        cumulative = numpy.concatenate(([0.0], data.cumulative_time))
        F = cf1.cdf(cumulative, alpha, rate, eps=1e-12)
        expected = numpy.sum(data.fault * numpy.log(numpy.diff(F)) - gammaln(data.fault + 1.0))
        expected += data.total * numpy.log(omega) - omega * F[-1]
        self.assertAlmostEqual(llf_cf1(PARAMS, data, eps=1e-12), expected, places=6)

    def test_failure_time_data(self):
        data = failure_time_data()
        omega, alpha, rate = PARAMS
        t = data.cumulative_time
        expected = numpy.sum(numpy.log(cf1.pdf(t[:-1], alpha, rate, eps=1e-12)))
        expected += data.total * numpy.log(omega) - omega * cf1.cdf(t[-1], alpha, rate, eps=1e-12)
        self.assertAlmostEqual(llf_cf1(PARAMS, data, eps=1e-12), expected, places=6)

    def test_step_reports_likelihood_of_current_parameters(self):
        data = grouped_data()
        result = em_cf1_emstep(PARAMS, data)
        self.assertAlmostEqual(result.llf, llf_cf1(PARAMS, data), places=8)


class EMStepTests(unittest.TestCase):
    def test_llf_non_decreasing(self):
        for data in [grouped_data(), failure_time_data()]:
            params = init_params(3, data)
            llfs = []
            for _ in range(15):
                result = em_cf1_emstep(params, data, eps=1e-12)
                llfs.append(result.llf)
                params = result.param
            for before, after in zip(llfs, llfs[1:]):
                self.assertGreaterEqual(after, before - 1e-7)
            self.assertGreater(llfs[-1], llfs[0])

    def test_new_parameters(self):
        data = grouped_data()
        result = em_cf1_emstep(PARAMS, data)
        omega, alpha, rate = result.param
        self.assertAlmostEqual(alpha.sum(), 1.0)
        self.assertTrue(numpy.all(alpha >= 0.0))
        self.assertTrue(numpy.all(rate > 0.0))
        self.assertTrue(numpy.all(numpy.diff(rate) >= 0.0))
        self.assertEqual(result.total, omega)
        self.assertAlmostEqual(result.pdiff.omega, omega - PARAMS.omega)
        assert_allclose(result.pdiff.alpha, alpha - PARAMS.alpha)
        assert_allclose(result.pdiff.rate, rate - PARAMS.rate)

    def test_expected_total(self):
        # detected faults plus the expected number not yet detected
        for data in [grouped_data(), failure_time_data()]:
            result = em_cf1_emstep(PARAMS, data, eps=1e-12)
            survival = cf1.cdf(data.max, PARAMS.alpha, PARAMS.rate, eps=1e-12, lower=False)
            self.assertAlmostEqual(result.total, data.total + PARAMS.omega * survival, places=7)

    def test_initial_phase_counts(self):
        data = MIXED_DATA
        result = em_cf1_emstep(PARAMS, data, eps=1e-12)
        expected = brute_force_statistics(PARAMS, data)
        self.assertAlmostEqual(result.param.omega, expected.initial.sum(), places=7)

    def test_exponential_grouped(self):
        omega, rate, d, x = 5.0, 0.7, 2.0, 3
        data = FaultData(time=[d], fault=[x])
        result = em_cf1_emstep((omega, [1.0], [rate]), data, eps=1e-12)
        survival = exp(-rate * d)
        weight = x / (1.0 - survival)
        total = x + omega * survival
        sojourn = total / rate + d * survival * (omega - weight)
        self.assertAlmostEqual(result.param.omega, total, places=8)
        self.assertAlmostEqual(result.param.rate[0], total / sojourn, places=8)
        assert_allclose(result.param.alpha, [1.0])

    def test_exponential_failure_time(self):
        omega, rate, d = 4.0, 1.2, 1.5
        data = FaultData(time=[d])
        result = em_cf1_emstep((omega, [1.0], [rate]), data, eps=1e-12)
        survival = exp(-rate * d)
        total = 1.0 + omega * survival
        sojourn = d + omega * survival * (d + 1.0 / rate)
        self.assertAlmostEqual(result.param.omega, total, places=8)
        self.assertAlmostEqual(result.param.rate[0], total / sojourn, places=8)

    def test_pool(self):
        data = grouped_data()
        pool = Pool(2)
        try:
            parallel = em_cf1_emstep(PARAMS, data, pool=pool)
        finally:
            pool.close()
            pool.join()
        serial = em_cf1_emstep(PARAMS, data)
        self.assertAlmostEqual(parallel.llf, serial.llf)
        assert_allclose(parallel.param.rate, serial.param.rate)
        assert_allclose(parallel.param.alpha, serial.param.alpha)

    def test_dict_data(self):
        data = grouped_data()
        as_dict = {'time': data.time, 'fault': data.fault, 'type': data.type}
        self.assertAlmostEqual(em_cf1_emstep(PARAMS, as_dict).llf, em_cf1_emstep(PARAMS, data).llf)

    def test_invalid_input(self):
        data = grouped_data()
        self.assertRaises(InvalidParameter, em_cf1_emstep, (5.0, [], []), data)
        self.assertRaises(InvalidParameter, em_cf1_emstep, (0.0, [1.0], [1.0]), data)
        self.assertRaises(InvalidParameter, em_cf1_emstep, (5.0, [1.0], [-1.0]), data)
        self.assertRaises(InvalidParameter, em_cf1_emstep, PARAMS, data, eps=2.0)
        bad = {'time': [1.0, 0.0], 'fault': [1, 1], 'type': [0, 0]}
        self.assertRaises(DataError, em_cf1_emstep, PARAMS, bad)


class ExpectedStatisticsTests(unittest.TestCase):
    def test_matches_brute_force(self):
        for data in [MIXED_DATA, grouped_data()]:
            stats = expected_statistics(PARAMS, data, eps=1e-12)
            expected = brute_force_statistics(PARAMS, data)
            assert_allclose(stats.initial, expected.initial, rtol=1e-7)
            assert_allclose(stats.sojourn, expected.sojourn, rtol=1e-6)
            assert_allclose(stats.exits[:-1], expected.exits, rtol=1e-6)
            self.assertAlmostEqual(stats.exits[-1], stats.initial.sum())

    def test_step_is_closed_form_update(self):
        stats = expected_statistics(PARAMS, MIXED_DATA, eps=1e-12)
        result = em_cf1_emstep(PARAMS, MIXED_DATA, eps=1e-12)
        alpha, rate = cf1.cf1_sort(stats.initial / stats.initial.sum(), stats.exits / stats.sojourn)
        self.assertEqual(result.llf, stats.llf)
        assert_allclose(result.param.alpha, alpha)
        assert_allclose(result.param.rate, rate)


class InitParamsTests(unittest.TestCase):
    def test_mean_matches_data(self):
        data = failure_time_data()
        for phase in [1, 2, 5]:
            omega, alpha, rate = init_params(phase, data)
            self.assertEqual(omega, data.total + 1.0)
            self.assertEqual(len(alpha), phase)
            self.assertAlmostEqual(cf1.mean(alpha, rate), data.mean)

    def test_invalid_phase(self):
        self.assertRaises(InvalidParameter, init_params, 0, failure_time_data())


if __name__ == '__main__':
    unittest.main()
