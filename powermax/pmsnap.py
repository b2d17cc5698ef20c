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
""" Manage SnapVX snapshots of PowerMax volumes.

A snapshot is identified by its name and the source volumes it was taken
of; every time a snapshot with the same name is taken of the same source
volume, a new generation is created.  Generations are numbered per
(name, source volume) starting from 0 for the newest one, so anything
but the newest generation must be looked up before acting on it.
"""

import contextlib
import logging

from . import pmtypes as pm

from .pmerror import PowerMaxError, ValidationError
from .pmutils import uniq


LOG = logging.getLogger(__name__)


def _volumeList(volumeIds):
    return [pm.VolumeList(name=volumeId) for volumeId in uniq(volumeIds)]


class SnapshotManager(object):
    """ Create, link, unlink, rename, restore and delete snapshots. """

    def __init__(self, api, poller):
        self._api = api
        self._poller = poller

    def getSnapVolumeList(self, symId, params=None):
        """ List the volumes matching the query parameters,
        e.g. {'includeDetails': 'true', 'snapshot': 'true'}. """
        return self._api.snapVolumeList(symId, params=params)

    def getVolumeSnapInfo(self, symId, volumeId):
        return self._api.volumeSnapshotList(symId, volumeId)

    def getSnapshotInfo(self, symId, volumeId, snapId):
        return self._api.volumeSnapshotGet(symId, volumeId, snapId)

    def getSnapshotGenerations(self, symId, volumeId, snapId):
        """ The generation numbers of a snapshot of a volume, in order. """
        res = self._api.volumeSnapshotGenerationList(symId, volumeId, snapId)
        return sorted(set(res.generation))

    def getSnapshotGenerationInfo(self, symId, volumeId, snapId, generation):
        return self._api.volumeSnapshotGenerationGet(
            symId, volumeId, snapId, generation)

    def getLinkedTargets(self, symId, volumeId, snapId):
        """ Return (generation, target volume) for each generation of the
        snapshot that is linked to a target. """
        res = []
        for generation in self.getSnapshotGenerations(
                symId, volumeId, snapId):
            info = self.getSnapshotGenerationInfo(
                symId, volumeId, snapId, generation)
            if info.snapshotSrc is None:
                continue
            res.extend((generation, link.targetDevice)
                       for link in info.snapshotSrc.linkedDevices)
        return res

    def create(self, symId, snapId, sourceVolumeIds, ttl=0,
               timeInHours=False, bothSides=False, star=False, force=False):
        """ Take a new generation of a snapshot of the source volumes.

        A ttl of 0 keeps the snapshot until it is deleted. """
        payload = {
            'deviceNameListSource': _volumeList(sourceVolumeIds),
            'bothSides': bothSides,
            'star': star,
            'force': force,
            'timeInHours': timeInHours,
            'timeToLive': ttl,
            'executionOption': pm.EXECUTION_ASYNCHRONOUS,
        }
        res = self._api.snapshotCreate(symId, snapId, payload)
        self._poller.waitOnJob(symId, res)
        LOG.info("Created snapshot %s of %s", snapId,
                 ", ".join(uniq(sourceVolumeIds)))

    def modify(self, symId, snapId, action, sourceVolumeIds,
               targetVolumeIds=None, newSnapId=None, generation=0,
               **flags):
        """ Link, unlink, rename or restore a snapshot generation.

        Any additional flags (copy, remote, force, star, ...) are passed
        on to the array unchanged. """
        action = pm.SnapshotAction.handleVal(action)
        targets = list(targetVolumeIds or [])
        if action in ('Link', 'Unlink') and not targets:
            raise ValidationError(
                "{0} requires target volumes".format(action))
        if action == 'Rename':
            if not newSnapId:
                raise ValidationError("Rename requires a new snapshot name")
            newSnapId = pm.SnapshotName.handleVal(newSnapId)

        payload = {
            'deviceNameListSource': _volumeList(sourceVolumeIds),
            'deviceNameListTarget': _volumeList(targets),
            'action': action,
            'newsnapshotname': newSnapId if action == 'Rename' else None,
            'generation': generation,
            'executionOption': pm.EXECUTION_ASYNCHRONOUS,
        }
        payload.update(flags)
        res = self._api.snapshotModify(symId, snapId, payload)
        self._poller.waitOnJob(symId, res)
        LOG.info("%s snapshot %s generation %d of %s", action, snapId,
                 generation, ", ".join(uniq(sourceVolumeIds)))

    def link(self, symId, snapId, sourceVolumeIds, targetVolumeIds,
             generation=0, copy=False):
        self.modify(symId, snapId, 'Link', sourceVolumeIds, targetVolumeIds,
                    generation=generation, copy=copy)

    def unlink(self, symId, snapId, sourceVolumeIds, targetVolumeIds,
               generation=0):
        self.modify(symId, snapId, 'Unlink', sourceVolumeIds,
                    targetVolumeIds, generation=generation)

    def rename(self, symId, snapId, newSnapId, sourceVolumeIds,
               generation=0):
        """ Rename a snapshot; renaming it to its current name is left to
        the array, which treats it as a no-op. """
        self.modify(symId, snapId, 'Rename', sourceVolumeIds,
                    newSnapId=newSnapId, generation=generation)

    def restore(self, symId, snapId, sourceVolumeIds, generation=0):
        self.modify(symId, snapId, 'Restore', sourceVolumeIds,
                    generation=generation)

    @contextlib.contextmanager
    def linked(self, symId, snapId, sourceVolumeIds, targetVolumeIds,
               generation=0, copy=False):
        """ Keep a snapshot generation linked to the targets while the
        block runs; the link is removed even if the block fails, so that
        it does not prevent the targets from being deleted. """
        self.link(symId, snapId, sourceVolumeIds, targetVolumeIds,
                  generation=generation, copy=copy)
        try:
            yield
        except BaseException:
            try:
                self.unlink(symId, snapId, sourceVolumeIds, targetVolumeIds,
                            generation=generation)
            except PowerMaxError as err:
                LOG.error("Could not unlink snapshot %s from %s: %s", snapId,
                          ", ".join(targetVolumeIds), err)
            raise
        self.unlink(symId, snapId, sourceVolumeIds, targetVolumeIds,
                    generation=generation)

    def delete(self, symId, snapId, sourceVolumeIds, generation=0):
        payload = {
            'deviceNameListSource': _volumeList(sourceVolumeIds),
            'generation': generation,
            'executionOption': pm.EXECUTION_ASYNCHRONOUS,
        }
        res = self._api.snapshotDelete(symId, snapId, payload)
        self._poller.waitOnJob(symId, res)
        LOG.info("Deleted snapshot %s generation %d of %s", snapId,
                 generation, ", ".join(uniq(sourceVolumeIds)))
