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
""" The errors raised by the PowerMax API bindings.

Every error carries a short machine-readable name and a description;
errors reported by the array itself keep the array's message verbatim
in the description. """


TRANSIENT_STATUSES = frozenset([502, 503, 504])

TRANSIENT_MESSAGES = (
    'Cannot find role for user',
)

CONFLICT_MESSAGES = (
    'already exists',
)


class PowerMaxError(Exception):
    """ The base class for all the errors raised by the bindings. """

    name = 'powerMaxError'
    transient = False

    def __init__(self, desc):
        super(PowerMaxError, self).__init__(desc)
        self.desc = desc

    def __str__(self):
        return "{0}: {1}".format(self.name, self.desc)


class ApiError(PowerMaxError):
    """ An error response returned by the Unisphere REST API. """

    name = 'apiError'

    def __init__(self, status, json):
        if not isinstance(json, dict):
            json = {}
        super(ApiError, self).__init__(
            json.get('message', "<Missing error message>"))
        self.status = status
        self.json = json
        self.transient = status in TRANSIENT_STATUSES or any(
            msg in self.desc for msg in TRANSIENT_MESSAGES)


class NotFoundError(ApiError):
    """ The requested object does not exist on the array. """

    name = 'objectDoesNotExist'


class ConflictError(ApiError):
    """ An object with the same name was created in the meantime. """

    name = 'objectExists'


class VolumeNotFoundError(NotFoundError):
    """ A newly-created volume could not be found afterwards. """

    def __init__(self, desc):
        super(VolumeNotFoundError, self).__init__(None, {'message': desc})


def apiError(status, json):
    """ Build the most specific ApiError for an error response. """
    message = json.get('message', '') if isinstance(json, dict) else ''
    if status == 404:
        return NotFoundError(status, json)
    if status == 409 or any(
            msg in str(message).lower() for msg in CONFLICT_MESSAGES):
        return ConflictError(status, json)
    return ApiError(status, json)


class TransportError(PowerMaxError):
    """ The request could not be delivered or its response read. """

    name = 'transportError'

    def __init__(self, desc, transient=False):
        super(TransportError, self).__init__(desc)
        self.transient = transient


class ArrayNotAllowedError(PowerMaxError):
    """ A request referred to an array outside of the managed set. """

    name = 'arrayNotAllowed'

    def __init__(self, symId):
        super(ArrayNotAllowedError, self).__init__(
            "the requested array ({0}) is ignored as it is not managed"
            .format(symId))
        self.symId = symId


class ValidationError(PowerMaxError):
    """ An argument or a postcondition check failed. """

    name = 'invalidParam'


class SizeMismatchError(ValidationError):
    """ The array reports a capacity different from the requested one. """

    name = 'sizeMismatch'

    def __init__(self, volumeId, wanted, actual):
        super(SizeMismatchError, self).__init__(
            "volume {vol}: requested size {wanted} cyl, reported {actual} cyl"
            .format(vol=volumeId, wanted=wanted, actual=actual))
        self.volumeId = volumeId
        self.wanted = wanted
        self.actual = actual


class JobFailedError(PowerMaxError):
    """ An asynchronous job finished in the FAILED state. """

    name = 'jobFailed'

    def __init__(self, job):
        super(JobFailedError, self).__init__(job.result or "")
        self.job = job


class JobTimeoutError(PowerMaxError):
    """ A job did not reach a terminal state before the deadline.

    The job itself is left running on the array. """

    name = 'jobTimeout'

    def __init__(self, symId, jobId, waited, job=None):
        super(JobTimeoutError, self).__init__(
            "Symmetrix {symId} job {jobId} did not complete in {waited:.0f}s"
            .format(symId=symId, jobId=jobId, waited=waited))
        self.symId = symId
        self.jobId = jobId
        self.job = job


class PairNotFoundError(PowerMaxError):
    """ No RDF device pair could be found for a volume. """

    name = 'pairDoesNotExist'


class TeardownError(PowerMaxError):
    """ One or more steps of a multi-step teardown failed. """

    name = 'teardownFailed'

    def __init__(self, what, errors):
        super(TeardownError, self).__init__(
            "{what}: {errors}".format(
                what=what, errors="; ".join(str(err) for err in errors)))
        self.errors = list(errors)
