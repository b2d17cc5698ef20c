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
""" Non-disruptive migration of storage groups between two arrays.

A migration environment pairs the local array with a remote one; within
it, a migration session moves a storage group with its volumes and
masking views to the remote array.  The session is then driven through
its states (Sync, Cutover, Commit, ...) by modifying it.
"""

import logging

from . import pmtypes as pm

from .pmprov import createStorageGroupPayload


LOG = logging.getLogger(__name__)


class MigrationManager(object):
    def __init__(self, api, poller):
        self._api = api
        self._poller = poller

    def createMigrationEnvironment(self, symId, remoteSymId):
        """ Set up (or validate) the migration environment between the
        local and the remote array. """
        payload = {
            'otherArrayId': pm.SymId.handleVal(remoteSymId),
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        }
        res = self._api.migrationEnvironmentCreate(symId, payload)
        LOG.info("Created the migration environment between %s and %s",
                 symId, remoteSymId)
        return res

    def deleteMigrationEnvironment(self, symId, remoteSymId):
        self._api.migrationEnvironmentDelete(symId, remoteSymId)
        LOG.info("Deleted the migration environment between %s and %s",
                 symId, remoteSymId)

    def createSGMigration(self, symId, remoteSymId, storageGroupId):
        payload = {
            'otherArrayId': pm.SymId.handleVal(remoteSymId),
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        }
        res = self._api.migrationSessionCreate(
            symId, storageGroupId, payload)
        LOG.info("Started migrating storage group %s from %s to %s",
                 storageGroupId, symId, remoteSymId)
        return res

    def getMigrationSession(self, symId, storageGroupId):
        return self._api.migrationSessionGet(symId, storageGroupId)

    def modifyMigrationSession(self, symId, action, storageGroupId):
        """ Move the migration session of a storage group along:
        Sync, Cutover, Commit and so on. """
        payload = {
            'action': pm.MigrationAction.handleVal(action),
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        }
        res = self._api.migrationSessionModify(
            symId, storageGroupId, payload)
        LOG.info("%s on the migration session of storage group %s: %s",
                 action, storageGroupId, res.state)
        return res

    def getStorageGroupMigrationList(self, symId):
        return self._api.migrationStorageGroupList(symId)

    def migrateStorageGroup(self, symId, storageGroupId, srpId,
                            serviceLevel, thickVolumes=False):
        """ Create the storage group that a migration session will move
        the volumes into; an srpId of "None" creates a non-managed one. """
        res = self._api.migrationStorageGroupCreate(
            symId, createStorageGroupPayload(
                storageGroupId, srpId, serviceLevel, thickVolumes))
        if not isinstance(res, pm.StorageGroup):
            self._poller.waitOnJob(symId, res)
            res = self._api.storageGroupGet(symId, storageGroupId)
        LOG.info("Created migration storage group %s on %s",
                 storageGroupId, symId)
        return res
