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
""" Query the recent performance metrics of storage groups and volumes.

The performance calls take a time window in milliseconds since the epoch
and return the metrics averaged over the array's sampling intervals in
that window; the most recent five minutes are requested.
"""

import logging
import time

from . import pmtypes as pm

from .pmerror import ValidationError
from .pmutils import sec


LOG = logging.getLogger(__name__)

DATA_FORMAT_AVERAGE = 'Average'

DEFAULT_WINDOW = 300 * sec


def _millis(seconds):
    return int(seconds * 1000)


class MetricsCollector(object):
    """ Fetch averaged performance metrics over a sliding window. """

    def __init__(self, api, window=DEFAULT_WINDOW, clock=time.time):
        self._api = api
        self._window = window
        self._clock = clock

    def _timeWindow(self):
        end = _millis(self._clock())
        return end - _millis(self._window), end

    def getStorageGroupMetrics(self, symId, storageGroupId, metrics):
        """ Fetch the named metrics (e.g. "HostReads") of a storage group. """
        symId = pm.SymId.handleVal(symId)
        self._api.checkAllowedArray(symId)
        if not metrics:
            raise ValidationError("no metrics specified")
        start, end = self._timeWindow()
        payload = {
            'symmetrixId': symId,
            'startDate': start,
            'endDate': end,
            'dataFormat': DATA_FORMAT_AVERAGE,
            'storageGroupId': pm.StorageGroupId.handleVal(storageGroupId),
            'metrics': list(metrics),
        }
        LOG.debug("Querying %s of storage group %s on %s",
                  ", ".join(metrics), storageGroupId, symId)
        return self._api.storageGroupMetrics(payload)

    def getVolumesMetrics(self, symId, storageGroups, metrics):
        """ Fetch the named metrics of the volumes in the storage groups,
        given either as a list or as a comma-separated string. """
        symId = pm.SymId.handleVal(symId)
        self._api.checkAllowedArray(symId)
        if not metrics:
            raise ValidationError("no metrics specified")
        if not isinstance(storageGroups, str):
            storageGroups = ",".join(
                pm.StorageGroupId.handleVal(sg) for sg in storageGroups)
        if not storageGroups:
            raise ValidationError("no storage groups specified")
        start, end = self._timeWindow()
        payload = {
            'systemId': symId,
            'startDate': start,
            'endDate': end,
            'dataFormat': DATA_FORMAT_AVERAGE,
            'commaSeparatedStorageGroupList': storageGroups,
            'metrics': list(metrics),
        }
        return self._api.volumeMetrics(payload)
