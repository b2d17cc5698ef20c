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
""" Create, expand and tear down PowerMax volumes.

A volume may only be deleted once it is no longer a member of any storage
group and its tracks have been released, so teardown() performs the
steps in a fixed order: mark the volume for deletion by renaming it,
remove it from its storage groups, free its tracks, and delete it.
"""

import logging

from . import pmtypes as pm

from .pmerror import (
    ApiError, JobFailedError, NotFoundError, PowerMaxError,
    SizeMismatchError, TeardownError, ValidationError, VolumeNotFoundError,
)
from .pmjob import BenignFailures
from .pmprov import createVolumePayload


LOG = logging.getLogger(__name__)

DELETION_PREFIX = '_DEL'


def deletionName(name):
    """ The identifier that marks a volume as about to be deleted. """
    return (DELETION_PREFIX + (name or ''))[:pm.MAX_VOL_IDENTIFIER_LENGTH]


class VolumeManager(object):
    """ The multi-step lifecycle operations on volumes. """

    def __init__(self, api, poller, provisioner, benign=None):
        self._api = api
        self._poller = poller
        self._prov = provisioner
        self._benign = benign if benign is not None else BenignFailures()

    def getVolume(self, symId, volumeId):
        return self._api.volumeGet(symId, volumeId)

    def createInGroup(self, symId, storageGroupId, volumeName, sizeCyl,
                      sync=False):
        """ Create a volume in a storage group and return it.

        The creation job does not report the identity of the new volume,
        so it is looked up by name afterwards. """
        volumeName = pm.VolumeIdentifier.handleVal(volumeName)
        self._prov.updateStorageGroup(
            symId, storageGroupId,
            createVolumePayload(volumeName, sizeCyl, sync=sync))
        vol = self.findNewVolume(symId, storageGroupId, volumeName, sizeCyl)
        LOG.info("Created volume %s (%s) in storage group %s",
                 vol.volumeId, volumeName, storageGroupId)
        return vol

    def findNewVolume(self, symId, storageGroupId, volumeName, sizeCyl):
        """ Find a volume with the specified name, storage group and size. """
        volumeIds = self._prov.getVolumeIDList(symId, volumeName)
        if len(volumeIds) > 1:
            LOG.warning("Found multiple volumes matching the identifier %s",
                        volumeName)
        for volumeId in volumeIds:
            try:
                vol = self.getVolume(symId, volumeId)
            except NotFoundError:
                continue
            if storageGroupId in vol.storageGroupId and \
                    vol.cap_cyl == sizeCyl:
                return vol

        msg = "Failed to find newly created volume with name: {0} in SG: " \
            "{1}".format(volumeName, storageGroupId)
        LOG.error("%s", msg)
        raise VolumeNotFoundError(msg)

    def addToStorageGroup(self, symId, storageGroupId, volumeIds, sync=True):
        return self._prov.addVolumesToStorageGroup(
            symId, storageGroupId, volumeIds, sync=sync)

    def removeFromStorageGroup(self, symId, storageGroupId, volumeIds):
        return self._prov.removeVolumesFromStorageGroup(
            symId, storageGroupId, volumeIds)

    def _update(self, symId, volumeId, payload):
        res = self._api.volumeUpdate(symId, volumeId, payload)
        res = self._poller.waitOnJob(symId, res)
        if isinstance(res, pm.Volume):
            return res
        return self.getVolume(symId, volumeId)

    def rename(self, symId, volumeId, newName):
        newName = pm.VolumeIdentifier.handleVal(newName)
        vol = self._update(symId, volumeId, {
            'editVolumeActionParam': {
                'modifyVolumeIdentifierParam': {
                    'volumeIdentifier': {
                        'volumeIdentifierChoice': 'identifier_name',
                        'identifier_name': newName,
                    },
                },
            },
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        })
        LOG.info("Renamed volume %s to %s", volumeId, newName)
        return vol

    def expand(self, symId, volumeId, newSizeCyl, rdfGroupNo=None):
        """ Grow a volume to exactly newSizeCyl cylinders.

        For a volume in a remote replication pair, the RDF group number
        must be passed so that the array expands both sides. """
        vol = self.getVolume(symId, volumeId)
        if vol.cap_cyl is not None and newSizeCyl < vol.cap_cyl:
            raise ValidationError(
                "volume {vol}: cannot shrink from {old} to {new} cyl".format(
                    vol=volumeId, old=vol.cap_cyl, new=newSizeCyl))
        if vol.cap_cyl == newSizeCyl:
            return vol

        expandParam = {
            'volumeAttribute': {
                'volume_size': str(newSizeCyl),
                'capacityUnit': 'CYL',
            },
        }
        if rdfGroupNo is not None:
            expandParam['rdfGroupNumber'] = int(rdfGroupNo)
        self._update(symId, volumeId, {
            'editVolumeActionParam': {'expandVolumeParam': expandParam},
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        })

        vol = self.getVolume(symId, volumeId)
        if vol.cap_cyl != newSizeCyl:
            raise SizeMismatchError(volumeId, newSizeCyl, vol.cap_cyl)
        LOG.info("Expanded volume %s to %d cyl", volumeId, newSizeCyl)
        return vol

    def initiateDeallocationOfTracks(self, symId, volumeId):
        """ Submit the request to free the volume's tracks; returns
        the job handle without waiting for it. """
        return self._api.volumeUpdate(symId, volumeId, {
            'editVolumeActionParam': {
                'freeVolumeParam': {'free_volume': True},
            },
            'executionOption': pm.EXECUTION_ASYNCHRONOUS,
        })

    def freeTracks(self, symId, volumeId):
        """ Free the volume's tracks and wait for it; a volume that has
        already been freed is fine. """
        try:
            res = self.initiateDeallocationOfTracks(symId, volumeId)
            return self._poller.waitOnJob(symId, res)
        except (ApiError, JobFailedError) as err:
            if not self._benign.matches(err):
                raise
            LOG.warning("Freeing the tracks of volume %s: %s",
                        volumeId, err.desc)
            return getattr(err, 'job', None)

    def delete(self, symId, volumeId):
        self._api.volumeDelete(symId, volumeId)
        LOG.info("Deleted volume %s", volumeId)

    def teardown(self, symId, volumeId):
        """ Remove a volume from the array, step by step.

        Raises NotFoundError if the volume does not exist, e.g. if it has
        already been torn down.  The rename and the storage group
        removals are attempted independently of one another; every error
        encountered is reported in a single TeardownError. """
        vol = self.getVolume(symId, volumeId)
        errors = []
        what = "tearing down volume {0}".format(volumeId)

        name = vol.volume_identifier or ''
        if not name.startswith(DELETION_PREFIX):
            try:
                self.rename(symId, volumeId, deletionName(name))
            except PowerMaxError as err:
                LOG.error("Could not rename volume %s: %s", volumeId, err)
                errors.append(err)

        removed = True
        for storageGroupId in vol.storageGroupId:
            try:
                self.removeFromStorageGroup(
                    symId, storageGroupId, [volumeId])
            except PowerMaxError as err:
                LOG.error("Could not remove volume %s from storage group "
                          "%s: %s", volumeId, storageGroupId, err)
                errors.append(err)
                removed = False
        if not removed:
            raise TeardownError(what, errors)

        try:
            self.freeTracks(symId, volumeId)
            self.delete(symId, volumeId)
        except PowerMaxError as err:
            LOG.error("Could not delete volume %s: %s", volumeId, err)
            errors.append(err)

        if errors:
            raise TeardownError(what, errors)
        return vol
