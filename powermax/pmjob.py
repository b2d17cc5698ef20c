#
# Copyright (c) 2021  StorPool.
# All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
""" Wait for asynchronous Unisphere jobs to complete.

Many of the array's modification requests may be executed asynchronously:
the array accepts the request and returns a job handle instead of the
result.  The JobPoller turns such a handle into a terminal result by
polling the job's status at a fixed interval until it either succeeds,
fails, or a deadline passes.

Whether a failed job is acceptable is decided by the caller, not by the
poller: a "volume already in the requested state" failure is harmless
when freeing tracks, but a genuine error elsewhere.  The BenignFailures
predicate holds the messages that the callers recognize as such; since
the wording varies between Unisphere releases, it may be overridden in
the configuration.
"""

import logging
import time

from . import pmtypes as pm

from .pmconfig import PMConfig
from .pmerror import (
    ApiError, JobFailedError, JobTimeoutError, TransportError,
)
from .pmutils import parseList, sec


LOG = logging.getLogger(__name__)

DEFAULT_BENIGN_MESSAGES = (
    'already in desired state',
    'already in the requested state',
)


def jobToString(job):
    """ Describe a job in a single line suitable for logging. """
    if job is None:
        return "<no job>"
    resource = ""
    elements = (job.resourceLink or "").split("/")
    if len(elements) > 5:
        resource = "/".join(elements[-3:])
    return "job id: {id} status: {status} completed: {completed} " \
        "({resource}) result: {result}".format(
            id=job.jobId, status=job.status,
            completed=job.completed_date or "", resource=resource,
            result=job.result or "")


class BenignFailures(object):
    """ Recognize job failures that mean "nothing needed to be done". """

    def __init__(self, messages=DEFAULT_BENIGN_MESSAGES):
        self._messages = tuple(msg.lower() for msg in messages if msg)

    @classmethod
    def fromConfig(klass, cfg=None):
        if cfg is None:
            cfg = PMConfig()
        return klass(parseList(cfg['PM_JOB_BENIGN_MESSAGES']))

    @property
    def messages(self):
        return self._messages

    def matches(self, failure):
        """ Check a failed job, a JobFailedError or an ApiError. """
        if isinstance(failure, JobFailedError):
            text = failure.desc
        elif isinstance(failure, pm.Job):
            text = failure.result
        elif isinstance(failure, ApiError):
            text = failure.desc
        else:
            text = failure
        text = (text or "").lower()
        return any(msg in text for msg in self._messages)


class JobPoller(object):
    """ Block until a Unisphere job reaches a terminal state. """

    def __init__(self, api, pollInterval=3 * sec, timeout=90 * sec,
                 transientRetries=6, transientSleep=10 * sec,
                 clock=time.monotonic, sleep=time.sleep):
        self._api = api
        self._pollInterval = pollInterval
        self._timeout = timeout
        self._transientRetries = transientRetries
        self._transientSleep = transientSleep
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def fromConfig(klass, api, cfg=None, **kwargs):
        if cfg is None:
            cfg = PMConfig()
        return klass(api, pollInterval=cfg.getint('PM_JOB_POLL_INTERVAL'),
                     timeout=cfg.getint('PM_JOB_TIMEOUT'), **kwargs)

    @property
    def api(self):
        return self._api

    def getJobIDList(self, symId, status=None):
        """ List the jobs on the array, optionally only those in
        the specified state. """
        params = {'status': status} if status else None
        return self._api.jobList(symId, params=params).jobIds

    def getJobByID(self, symId, jobId):
        return self._api.jobGet(symId, jobId)

    def waitOnJobCompletion(self, symId, jobId):
        """ Poll the job until it terminates; return the job record.

        A FAILED job raises JobFailedError carrying the record and the
        array's message; a job still running at the deadline raises
        JobTimeoutError and is left alone on the array.  Transient errors
        while polling are retried a bounded number of times without
        restarting the deadline. """
        start = self._clock()
        deadline = start + self._timeout
        transient = 0
        job = None

        while True:
            try:
                job = self._api.jobGet(symId, jobId)
            except (ApiError, TransportError) as err:
                if not err.transient or transient >= self._transientRetries:
                    LOG.error("Polling job %s on %s failed: %s",
                              jobId, symId, err)
                    raise
                transient += 1
                LOG.debug("Retrying job %s on %s after %s (attempt %d)",
                          jobId, symId, err, transient)
                self._wait(deadline, self._transientSleep, symId, jobId,
                           start, job)
                continue

            LOG.debug("%s", jobToString(job))
            if job.succeeded:
                return job
            if job.state == pm.JOB_FAILED:
                raise JobFailedError(job)

            self._wait(deadline, self._pollInterval, symId, jobId, start,
                       job)

    def _wait(self, deadline, interval, symId, jobId, start, job):
        now = self._clock()
        if now >= deadline:
            LOG.warning("Giving up on job %s on %s after %.0fs",
                        jobId, symId, now - start)
            raise JobTimeoutError(symId, jobId, now - start, job)
        self._sleep(min(interval, deadline - now))

    def waitOnJob(self, symId, res):
        """ Wait for the job if the array deferred the request, otherwise
        return the synchronous result as-is. """
        if isinstance(res, pm.Job):
            return self.waitOnJobCompletion(symId, res.jobId)
        return res
