"""Fault data for software reliability models.

The data is a sequence of observation intervals. For each interval we have
its length, the number of faults detected inside it (not counting a fault at
the end point), and a type flag which is 1 when a fault is detected exactly at
the end of the interval. Failure time data is the special case where every
interval ends with a fault; grouped data has type 0 everywhere.
"""

import numpy

from CPHSRM.errors import DataError


def _column(values, length, default, dtype):
    if values is None:
        return numpy.full(length, default, dtype=dtype)
    column = numpy.atleast_1d(numpy.asarray(values))
    if column.ndim != 1:
        raise DataError("data columns must be one-dimensional")
    if len(column) == 1 and length > 1:
        column = numpy.repeat(column, length)
    return column


class FaultData(object):
    """Observed faults over consecutive time intervals."""

    def __init__(self, time=None, fault=None, type=None, te=None):
        """Build the data.

        If neither fault nor type is given, time is taken to be the times
        between failures. If time is missing, every interval has length one.

        :param time: Lengths of the observation intervals.
        :type time: array_like
        :param fault: Number of faults inside each interval.
        :type fault: array_like
        :param type: 1 if a fault is detected at the end of the interval.
        :type type: array_like
        :param te: Time from the last interval to the end of the observation.
        :type te: float
        """
        if time is None and fault is None and type is None:
            raise DataError("no fault data given")

        if time is not None:
            length = len(numpy.atleast_1d(time))
        else:
            length = max(len(numpy.atleast_1d(column)) for column in (fault, type) if column is not None)

        if fault is None and type is None:
            fault = numpy.zeros(length, dtype=int)
            type = numpy.ones(length, dtype=int)

        time = _column(time, length, 1.0, float).astype(float)
        fault = _column(fault, length, 0, int)
        type = _column(type, length, 0, int)

        if te is not None:
            time = numpy.append(time, float(te))
            fault = numpy.append(fault, 0)
            type = numpy.append(type, 0)

        if not len(time) == len(fault) == len(type):
            raise DataError("time, fault and type have lengths %d, %d and %d"
                            % (len(time), len(fault), len(type)))
        if len(time) == 0:
            raise DataError("fault data is empty")

        bad = numpy.flatnonzero(~(numpy.isfinite(time) & (time > 0.0)))
        if len(bad) > 0:
            raise DataError("record %d has non-positive elapsed time %r" % (bad[0], time[bad[0]]))
        if numpy.any(fault != numpy.round(fault)) or numpy.any(fault < 0):
            bad = numpy.flatnonzero((fault != numpy.round(fault)) | (fault < 0))[0]
            raise DataError("record %d has invalid fault count %r" % (bad, fault[bad]))
        bad = numpy.flatnonzero((type != 0) & (type != 1))
        if len(bad) > 0:
            raise DataError("record %d has type %r, expected 0 or 1" % (bad[0], type[bad[0]]))

        self.time = time
        self.fault = fault.astype(int)
        self.type = type.astype(int)

    def __len__(self):
        return len(self.time)

    def __repr__(self):
        return 'FaultData(records=%d, total=%d, max=%g)' % (len(self), self.total, self.max)

    @property
    def cumulative_time(self):
        """The end points of the intervals."""
        return numpy.cumsum(self.time)

    @property
    def total(self):
        """The number of detected faults."""
        return int(self.fault.sum() + self.type.sum())

    @property
    def max(self):
        """The total observation time."""
        return float(self.time.sum())

    @property
    def mean(self):
        """The mean detection time of the faults.

        Faults inside an interval are counted at its end point.
        """
        if self.total == 0:
            return self.max
        return float(numpy.dot(self.cumulative_time, self.fault + self.type)) / self.total

    @classmethod
    def from_file(cls, filename, te=None):
        """Read data from a whitespace separated file.

        Each line holds the interval length followed optionally by the
        fault count and the type. Lines starting with # are ignored.
        """
        table = numpy.loadtxt(filename, comments='#', ndmin=2)
        if table.shape[1] == 1:
            return cls(time=table[:, 0], te=te)
        if table.shape[1] == 2:
            return cls(time=table[:, 0], fault=table[:, 1].astype(int), te=te)
        return cls(time=table[:, 0], fault=table[:, 1].astype(int), type=table[:, 2].astype(int), te=te)
