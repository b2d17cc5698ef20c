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
""" Coordinate SRDF remote replication between two PowerMax arrays.

A "protected" storage group is mirrored to a storage group on a remote
array through a numbered RDF group; adding a volume to it with the remote
storage group information creates the mirror volume on the remote array
and pairs the two.  The pair state of a protected storage group is
a single state machine on the array, so suspending and resuming it are
serialized per storage group here as well.
"""

import contextlib
import logging
import threading

from .pmerror import (
    ApiError, JobFailedError, NotFoundError, PairNotFoundError,
    PowerMaxError, TeardownError, ValidationError,
)
from .pmjob import BenignFailures
from .pmprov import (
    addVolumesPayload, createVolumePayload, remoteSGInfo,
    removeVolumesPayload,
)


LOG = logging.getLogger(__name__)

RDF_MODES = {
    'ASYNC': 'Asynchronous',
    'SYNC': 'Synchronous',
}

ACTION_SUSPEND = 'Suspend'
ACTION_RESUME = 'Resume'

# The pair states that mean an action has already taken effect.
ACTION_STATES = {
    ACTION_SUSPEND: frozenset(['Suspended']),
    ACTION_RESUME: frozenset([
        'Consistent', 'Synchronized', 'SyncInProg', 'ActiveActive',
        'ActiveBias',
    ]),
}


def _rdfMode(rdfMode):
    if rdfMode in RDF_MODES.values():
        return rdfMode
    try:
        return RDF_MODES[rdfMode]
    except KeyError:
        raise ValidationError(
            "unsupported RDF mode {0}, must be one of {1}".format(
                rdfMode, ", ".join(sorted(RDF_MODES))))


class _GroupLock(object):
    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class ReplicationCoordinator(object):
    """ Create, pair, suspend, resume and tear down mirrored volumes. """

    def __init__(self, api, poller, provisioner, volumes, benign=None):
        self._api = api
        self._poller = poller
        self._prov = provisioner
        self._volumes = volumes
        self._benign = benign if benign is not None else BenignFailures()
        self._locks = {}
        self._locksLock = threading.Lock()

    @contextlib.contextmanager
    def _groupLocked(self, symId, storageGroupId):
        """ Hold the lock of a storage group; it is dropped as soon as
        nobody holds or waits for it. """
        key = (symId, storageGroupId)
        with self._locksLock:
            group = self._locks.get(key)
            if group is None:
                group = self._locks[key] = _GroupLock()
            group.users += 1
        try:
            with group.lock:
                yield
        finally:
            with self._locksLock:
                group.users -= 1
                if not group.users:
                    del self._locks[key]

    def getRDFGroup(self, symId, rdfGroupNo):
        return self._api.rdfGroupGet(symId, rdfGroupNo)

    def getProtectedStorageGroup(self, symId, storageGroupId):
        return self._api.protectedStorageGroupGet(symId, storageGroupId)

    def getStorageGroupRDFInfo(self, symId, storageGroupId, rdfGroupNo):
        return self._api.storageGroupRDFGroupGet(
            symId, storageGroupId, rdfGroupNo)

    def getRDFDevicePairInfo(self, symId, rdfGroupNo, volumeId):
        return self._api.rdfDevicePairGet(symId, rdfGroupNo, volumeId)

    def createSGReplica(self, symId, remoteSymId, rdfMode, rdfGroupNo,
                        sourceStorageGroupId, remoteStorageGroupId,
                        remoteServiceLevel, establish=True):
        """ Create a storage group on the remote array mirroring the source
        one through the RDF group. """
        payload = {
            'replicationMode': _rdfMode(rdfMode),
            'remoteSLO': remoteServiceLevel,
            'remoteSymmId': remoteSymId,
            'rdfgNumber': int(rdfGroupNo),
            'remoteStorageGroupName': remoteStorageGroupId,
            'establish': establish,
            'executionOption': 'SYNCHRONOUS',
        }
        res = self._api.storageGroupRDFGroupCreate(
            symId, sourceStorageGroupId, payload)
        res = self._poller.waitOnJob(symId, res)
        LOG.info("Created the replica of storage group %s as %s on %s",
                 sourceStorageGroupId, remoteStorageGroupId, remoteSymId)
        return res

    def createRDFPair(self, symId, rdfGroupNo, volumeId, rdfMode, rdfType,
                      establish=True, exemptConsistency=False):
        payload = {
            'rdfMode': _rdfMode(rdfMode),
            'rdfType': rdfType,
            'establish': establish,
            'exempt': exemptConsistency,
            'localDeviceListCriteria': {'localDeviceList': [volumeId]},
            'executionOption': 'SYNCHRONOUS',
        }
        res = self._api.rdfDevicePairCreate(
            symId, rdfGroupNo, volumeId, payload)
        res = self._poller.waitOnJob(symId, res)
        LOG.info("Created an RDF pair for volume %s in RDF group %s",
                 volumeId, rdfGroupNo)
        return res

    def addVolumesToProtectedStorageGroup(self, symId, storageGroupId,
                                          remoteSymId, remoteStorageGroupId,
                                          volumeIds, force=False):
        remote = remoteSGInfo(remoteSymId, remoteStorageGroupId, force)
        return self._prov.updateStorageGroup(
            symId, storageGroupId,
            addVolumesPayload(volumeIds, sync=True, remote=remote))

    def removeVolumesFromProtectedStorageGroup(self, symId, storageGroupId,
                                               remoteSymId,
                                               remoteStorageGroupId,
                                               volumeIds, force=False):
        """ Remove volumes from a protected storage group and their mirrors
        from the remote one, breaking the pairs. """
        remote = remoteSGInfo(remoteSymId, remoteStorageGroupId, force)
        res = self._prov.updateStorageGroup(
            symId, storageGroupId,
            removeVolumesPayload(volumeIds, remote=remote))
        LOG.info("Removed volumes %s from protected storage group %s",
                 ", ".join(volumeIds), storageGroupId)
        return res

    def createProtectedVolume(self, symId, remoteSymId, storageGroupId,
                              remoteStorageGroupId, volumeName, sizeCyl):
        """ Create a volume in a protected storage group; the array creates
        and pairs its mirror on the remote array. """
        remote = remoteSGInfo(remoteSymId, remoteStorageGroupId)
        self._prov.updateStorageGroup(
            symId, storageGroupId,
            createVolumePayload(volumeName, sizeCyl, sync=False,
                                remote=remote))
        vol = self._volumes.findNewVolume(
            symId, storageGroupId, volumeName, sizeCyl)
        LOG.info("Created protected volume %s (%s) in storage group %s",
                 vol.volumeId, volumeName, storageGroupId)
        return vol

    def executeReplicationAction(self, symId, action, storageGroupId,
                                 rdfGroupNo, force=False, star=False,
                                 exemptConsistency=False):
        """ Suspend or resume the replication of a protected storage group.

        If the array refuses because the group is already in the target
        state, the state is fetched to confirm it before reporting
        success. """
        if action not in ACTION_STATES:
            raise ValidationError(
                "{0} is not a supported action on a protected storage "
                "group".format(action))

        flags = {
            'force': force,
            'symForce': False,
            'star': star,
            'hop2': False,
        }
        if action == ACTION_SUSPEND:
            flags.update(immediate=False, consExempt=exemptConsistency)
        else:
            flags.update(remote=False, recoverPoint=False)
        payload = {
            'action': action,
            action.lower(): flags,
            'executionOption': 'SYNCHRONOUS',
        }

        with self._groupLocked(symId, storageGroupId):
            try:
                res = self._api.storageGroupRDFGroupModify(
                    symId, storageGroupId, rdfGroupNo, payload)
                self._poller.waitOnJob(symId, res)
            except (ApiError, JobFailedError) as err:
                if not self._benign.matches(err):
                    raise
                info = self.getStorageGroupRDFInfo(
                    symId, storageGroupId, rdfGroupNo)
                if not info.states or \
                        not set(info.states) <= ACTION_STATES[action]:
                    LOG.error("%s of storage group %s failed, its RDF state "
                              "is %s: %s", action, storageGroupId,
                              ", ".join(info.states), err)
                    raise
                LOG.warning("%s of storage group %s: %s", action,
                            storageGroupId, err.desc)
                return info

        LOG.info("Action %s on protected storage group %s with RDF group %s "
                 "is successful", action, storageGroupId, rdfGroupNo)
        return None

    def teardownPair(self, symId, remoteSymId, storageGroupId,
                     remoteStorageGroupId, rdfGroupNo, volumeId, force=True):
        """ Break the pair of a mirrored volume and delete both sides.

        The remote volume's identity is assigned by the array, so it is
        looked up first; nothing is touched if the pair cannot be found. """
        try:
            pair = self.getRDFDevicePairInfo(symId, rdfGroupNo, volumeId)
        except NotFoundError as err:
            raise PairNotFoundError(
                "no RDF pair for volume {vol} in RDF group {rdfg} on {sym}: "
                "{err}".format(vol=volumeId, rdfg=rdfGroupNo, sym=symId,
                               err=err.desc))
        remoteVolumeId = pair.remoteVolumeName
        if not remoteVolumeId:
            raise PairNotFoundError(
                "the RDF pair of volume {vol} in RDF group {rdfg} on {sym} "
                "has no remote volume".format(
                    vol=volumeId, rdfg=rdfGroupNo, sym=symId))

        self.removeVolumesFromProtectedStorageGroup(
            symId, storageGroupId, remoteSymId, remoteStorageGroupId,
            [volumeId], force=force)

        errors = []
        for sym, vol in ((symId, volumeId), (remoteSymId, remoteVolumeId)):
            try:
                self._volumes.teardown(sym, vol)
            except PowerMaxError as err:
                LOG.error("Could not delete volume %s on %s: %s",
                          vol, sym, err)
                errors.append(err)
        if errors:
            raise TeardownError(
                "tearing down the RDF pair of volume {0}".format(volumeId),
                errors)

        LOG.info("Tore down the RDF pair %s on %s / %s on %s",
                 volumeId, symId, remoteVolumeId, remoteSymId)
        return pair
