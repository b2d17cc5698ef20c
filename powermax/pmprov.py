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
""" Idempotent provisioning of named PowerMax objects.

Storage groups, hosts, port groups and masking views are all identified
by caller-supplied names that must be unique on the array.  The
Provisioner looks them up by name before creating them and treats
"not found" as success when deleting them, so that the same request may
be safely repeated.

The array remains the only source of truth: two independent callers may
race to create the same object, in which case one of them gets a
conflict and simply looks the object up again.  An existing object is
returned as-is even if its attributes differ from the requested ones
(e.g. a different service level); the Provisioner does not reconcile.
"""

import logging

from . import pmtypes as pm

from .pmerror import ApiError, ConflictError, NotFoundError, ValidationError
from .pmutils import uniq


LOG = logging.getLogger(__name__)

NON_MANAGED_POOL = 'None'


def remoteSGInfo(remoteSymId, remoteStorageGroupId, force=False):
    """ The parameters for applying a storage group change to the mirror
    storage group on the remote array as well. """
    return {
        'remote_symmetrix_1_id': remoteSymId,
        'remote_symmetrix_1_sgs': [remoteStorageGroupId],
        'force': force,
    }


def createStorageGroupPayload(storageGroupId, srpId, serviceLevel,
                              thickVolumes=False):
    payload = {
        'storageGroupId': storageGroupId,
        'emulation': 'FBA',
        'executionOption': pm.EXECUTION_SYNCHRONOUS,
    }
    if not srpId or srpId == NON_MANAGED_POOL:
        payload['srpId'] = NON_MANAGED_POOL
        return payload

    payload['srpId'] = srpId
    payload['sloBasedStorageGroupParam'] = [{
        'sloId': serviceLevel,
        'workloadSelection': 'None',
        'volumeAttributes': [{
            'volume_size': '0',
            'capacityUnit': 'CYL',
            'num_of_vols': 0,
        }],
        'allocate_capacity_for_each_vol': thickVolumes,
        'noCompression': thickVolumes,
    }]
    return payload


def createVolumePayload(volumeName, sizeCyl, sync=False, remote=None):
    """ Create a single new volume in a storage group. """
    addVolumeParam = {
        'create_new_volumes': True,
        'emulation': 'FBA',
        'volumeAttributes': [{
            'num_of_vols': 1,
            'volumeIdentifier': {
                'volumeIdentifierChoice': 'identifier_name',
                'identifier_name': volumeName,
            },
            'capacityUnit': 'CYL',
            'volume_size': str(sizeCyl),
        }],
    }
    if remote is not None:
        addVolumeParam['remoteSymmSGInfoParam'] = remote
    return {
        'editStorageGroupActionParam': {
            'expandStorageGroupParam': {
                'addVolumeParam': addVolumeParam,
            },
        },
        'executionOption': pm.EXECUTION_SYNCHRONOUS if sync
        else pm.EXECUTION_ASYNCHRONOUS,
    }


def addVolumesPayload(volumeIds, sync=True, remote=None):
    """ Add existing volumes to a storage group. """
    param = {'volumeId': list(volumeIds)}
    if remote is not None:
        param['remoteSymmSGInfoParam'] = remote
    return {
        'editStorageGroupActionParam': {
            'expandStorageGroupParam': {
                'addSpecificVolumeParam': param,
            },
        },
        'executionOption': pm.EXECUTION_SYNCHRONOUS if sync
        else pm.EXECUTION_ASYNCHRONOUS,
    }


def removeVolumesPayload(volumeIds, remote=None):
    param = {'volumeId': list(volumeIds)}
    if remote is not None:
        param['remoteSymmSGInfoParam'] = remote
    return {
        'editStorageGroupActionParam': {
            'removeVolumeParam': param,
        },
        'executionOption': pm.EXECUTION_SYNCHRONOUS,
    }


def _portKeys(ports):
    return [pm.PortKey(port) for port in ports]


def _portTuple(port):
    return (port.directorId, port.portId)


class Provisioner(object):
    """ Create, look up and delete storage groups, hosts, port groups and
    masking views, list the volumes on the array and discover its ports. """

    def __init__(self, api, poller, conflictRetries=3):
        self._api = api
        self._poller = poller
        self._conflictRetries = conflictRetries

    @property
    def api(self):
        return self._api

    def _createOrGet(self, kind, name, get, create):
        lastErr = None
        for _ in range(self._conflictRetries + 1):
            try:
                return get()
            except NotFoundError:
                LOG.debug("%s %s not found, creating it", kind, name)

            try:
                res = create()
            except ConflictError as err:
                LOG.warning("%s %s was created concurrently, looking it "
                            "up again: %s", kind, name, err)
                lastErr = err
                continue

            LOG.info("Created %s %s", kind, name)
            return res

        LOG.error("Could not create or find %s %s after %d attempts",
                  kind, name, self._conflictRetries + 1)
        raise lastErr

    @staticmethod
    def _deleteIfExists(kind, name, delete):
        try:
            delete()
        except NotFoundError:
            LOG.debug("%s %s does not exist, nothing to delete", kind, name)
            return False
        LOG.info("Deleted %s %s", kind, name)
        return True

    def _settle(self, symId, res, expected, get):
        """ Wait for a deferred creation and fetch the created object. """
        if isinstance(res, expected):
            return res
        self._poller.waitOnJob(symId, res)
        return get()

    # Arrays and storage resource pools

    def getSymmetrixIDList(self):
        return uniq(self._api.symmetrixList().symmetrixId)

    def getSymmetrix(self, symId):
        return self._api.symmetrixGet(symId)

    def getStoragePoolList(self, symId):
        return uniq(self._api.storagePoolList(symId).srpId)

    def getStoragePool(self, symId, srpId):
        return self._api.storagePoolGet(symId, srpId)

    # Storage groups

    def getStorageGroup(self, symId, storageGroupId):
        return self._api.storageGroupGet(symId, storageGroupId)

    def getStorageGroupIDList(self, symId):
        return uniq(self._api.storageGroupList(symId).storageGroupId)

    def createStorageGroup(self, symId, storageGroupId, srpId, serviceLevel,
                           thickVolumes=False):
        """ Create a storage group; an srpId of "None" creates
        a non-managed one without a service level. """
        res = self._api.storageGroupCreate(
            symId, createStorageGroupPayload(
                storageGroupId, srpId, serviceLevel, thickVolumes))
        return self._settle(
            symId, res, pm.StorageGroup,
            lambda: self.getStorageGroup(symId, storageGroupId))

    def createOrGetStorageGroup(self, symId, storageGroupId, srpId,
                                serviceLevel, thickVolumes=False):
        return self._createOrGet(
            'storage group', storageGroupId,
            lambda: self.getStorageGroup(symId, storageGroupId),
            lambda: self.createStorageGroup(
                symId, storageGroupId, srpId, serviceLevel, thickVolumes))

    def updateStorageGroup(self, symId, storageGroupId, payload):
        """ Send an edit request and wait for it if the array deferred it;
        return the storage group or the completed job. """
        res = self._api.storageGroupUpdate(symId, storageGroupId, payload)
        return self._poller.waitOnJob(symId, res)

    def addVolumesToStorageGroup(self, symId, storageGroupId, volumeIds,
                                 sync=True):
        volumeIds = uniq(volumeIds)
        res = self.updateStorageGroup(
            symId, storageGroupId, addVolumesPayload(volumeIds, sync=sync))
        LOG.info("Added volumes %s to storage group %s",
                 ", ".join(volumeIds), storageGroupId)
        return res

    def removeVolumesFromStorageGroup(self, symId, storageGroupId,
                                      volumeIds):
        volumeIds = uniq(volumeIds)
        res = self.updateStorageGroup(
            symId, storageGroupId, removeVolumesPayload(volumeIds))
        LOG.info("Removed volumes %s from storage group %s",
                 ", ".join(volumeIds), storageGroupId)
        return res

    def deleteStorageGroup(self, symId, storageGroupId):
        self._api.storageGroupDelete(symId, storageGroupId)

    def deleteStorageGroupIfExists(self, symId, storageGroupId):
        return self._deleteIfExists(
            'storage group', storageGroupId,
            lambda: self.deleteStorageGroup(symId, storageGroupId))

    # Hosts and initiators

    def getHost(self, symId, hostId):
        return self._api.hostGet(symId, hostId)

    def getHostIDList(self, symId):
        return uniq(self._api.hostList(symId).hostId)

    def createHost(self, symId, hostId, initiatorIds, hostFlags=None):
        payload = {
            'hostId': hostId,
            'initiatorId': uniq(initiatorIds),
            'hostFlags': hostFlags,
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        }
        return self._api.hostCreate(symId, payload)

    def createOrGetHost(self, symId, hostId, initiatorIds, hostFlags=None):
        return self._createOrGet(
            'host', hostId,
            lambda: self.getHost(symId, hostId),
            lambda: self.createHost(symId, hostId, initiatorIds, hostFlags))

    def updateHostInitiators(self, symId, host, initiatorIds):
        """ Make the host's initiators exactly the specified ones. """
        if host is None:
            raise ValidationError("no host specified")
        current = list(host.initiator)
        initAdd = [init for init in uniq(initiatorIds) if init not in current]
        initRemove = [init for init in current if init not in initiatorIds]

        updated = host
        if initAdd:
            updated = self._api.hostUpdate(symId, host.hostId, {
                'editHostActionParam': {
                    'addInitiatorParam': {'initiator': initAdd},
                },
                'executionOption': pm.EXECUTION_SYNCHRONOUS,
            })
            LOG.info("Added initiators %s to host %s",
                     ", ".join(initAdd), host.hostId)
        if initRemove:
            updated = self._api.hostUpdate(symId, host.hostId, {
                'editHostActionParam': {
                    'removeInitiatorParam': {'initiator': initRemove},
                },
                'executionOption': pm.EXECUTION_SYNCHRONOUS,
            })
            LOG.info("Removed initiators %s from host %s",
                     ", ".join(initRemove), host.hostId)
        return updated

    def updateHostName(self, symId, oldHostId, newHostId):
        return self._api.hostUpdate(symId, oldHostId, {
            'editHostActionParam': {
                'renameHostParam': {'new_host_name': newHostId},
            },
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        })

    def deleteHost(self, symId, hostId):
        self._api.hostDelete(symId, hostId)

    def deleteHostIfExists(self, symId, hostId):
        return self._deleteIfExists(
            'host', hostId, lambda: self.deleteHost(symId, hostId))

    def getInitiatorList(self, symId, initiatorHBA=None, isISCSI=False,
                         inHost=False):
        params = {}
        if inHost:
            params['in_a_host'] = 'true'
        if initiatorHBA:
            params['initiator_hba'] = initiatorHBA
        if isISCSI:
            params['iscsi'] = 'true'
        res = self._api.initiatorList(symId, params=params or None)
        return uniq(res.initiatorId)

    def getInitiator(self, symId, initiatorId):
        return self._api.initiatorGet(symId, initiatorId)

    # Directors and ports

    def getDirectorIDList(self, symId):
        return uniq(self._api.directorList(symId).directorId)

    def getPortList(self, symId, directorId, params=None):
        """ The keys of the director's ports, optionally filtered, e.g. by
        {'type': 'Gige'} or {'iscsi_target': 'true'}. """
        return self._api.portList(symId, directorId,
                                  params=params).symmetrixPortKey

    def getPort(self, symId, directorId, portId):
        return self._api.portGet(symId, directorId, portId)

    def _gigePorts(self, symId):
        """ Yield the directors that have GigE ports along with their
        port keys; directors that cannot be queried are skipped. """
        for directorId in self.getDirectorIDList(symId):
            try:
                ports = self.getPortList(
                    symId, directorId, {'type': pm.PORT_TYPE_GIGE})
            except ApiError as err:
                LOG.warning("Listing the ports of director %s on %s: %s",
                            directorId, symId, err)
                continue
            if ports:
                yield directorId, ports

    def _portsOf(self, symId, keys):
        for key in keys:
            try:
                yield self.getPort(symId, key.directorId, key.portId)
            except ApiError as err:
                LOG.warning("Querying port %s:%s on %s: %s",
                            key.directorId, key.portId, symId, err)

    def getListOfTargetAddresses(self, symId):
        """ The portal IP addresses of all the GigE ports of the array. """
        addresses = []
        for directorId, ports in self._gigePorts(symId):
            for port in self._portsOf(symId, ports):
                addresses.extend(port.symmetrixPort.ip_addresses)
        return addresses

    def getISCSITargets(self, symId):
        """ The iSCSI targets of the array with their portal addresses.

        The targets are the virtual iSCSI ports defined on the GigE
        directors; their identifier is the target IQN. """
        targets = []
        for directorId, _ in self._gigePorts(symId):
            virtual = self.getPortList(
                symId, directorId, {'iscsi_target': 'true'})
            for port in self._portsOf(symId, virtual):
                sport = port.symmetrixPort
                if not sport.identifier:
                    continue
                targets.append(pm.ISCSITarget(
                    iqn=sport.identifier, portalIPs=sport.ip_addresses))
        return targets

    # Port groups

    def getPortGroup(self, symId, portGroupId):
        return self._api.portGroupGet(symId, portGroupId)

    def getPortGroupIDList(self, symId, portGroupType=None):
        """ List the port groups, optionally only the "fibre" or the
        "iscsi" ones. """
        params = {portGroupType: 'true'} if portGroupType else None
        return uniq(self._api.portGroupList(symId, params=params).portGroupId)

    def createPortGroup(self, symId, portGroupId, ports, protocol=None):
        payload = {
            'portGroupId': portGroupId,
            'symmetrixPortKey': _portKeys(ports),
            'port_group_protocol': protocol,
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        }
        return self._api.portGroupCreate(symId, payload)

    def createOrGetPortGroup(self, symId, portGroupId, ports, protocol=None):
        return self._createOrGet(
            'port group', portGroupId,
            lambda: self.getPortGroup(symId, portGroupId),
            lambda: self.createPortGroup(symId, portGroupId, ports, protocol))

    def updatePortGroup(self, symId, portGroupId, ports):
        """ Make the port group contain exactly the specified ports. """
        current = self.getPortGroup(symId, portGroupId)
        have = [_portTuple(port) for port in current.symmetrixPortKey]
        wanted = _portKeys(ports)
        wantedTuples = [_portTuple(port) for port in wanted]

        add = [port for port in wanted if _portTuple(port) not in have]
        remove = [port for port in current.symmetrixPortKey
                  if _portTuple(port) not in wantedTuples]
        if not add and not remove:
            return current

        if add:
            res = self._api.portGroupUpdate(symId, portGroupId, {
                'editPortGroupActionParam': {'addPortParam': {'port': add}},
                'executionOption': pm.EXECUTION_SYNCHRONOUS,
            })
            self._poller.waitOnJob(symId, res)
        if remove:
            res = self._api.portGroupUpdate(symId, portGroupId, {
                'editPortGroupActionParam': {
                    'removePortParam': {'port': remove},
                },
                'executionOption': pm.EXECUTION_SYNCHRONOUS,
            })
            self._poller.waitOnJob(symId, res)
        LOG.info("Updated port group %s: %d ports added, %d removed",
                 portGroupId, len(add), len(remove))
        return self.getPortGroup(symId, portGroupId)

    def deletePortGroup(self, symId, portGroupId):
        self._api.portGroupDelete(symId, portGroupId)

    def deletePortGroupIfExists(self, symId, portGroupId):
        return self._deleteIfExists(
            'port group', portGroupId,
            lambda: self.deletePortGroup(symId, portGroupId))

    # Masking views

    def getMaskingView(self, symId, maskingViewId):
        return self._api.maskingViewGet(symId, maskingViewId)

    def getMaskingViewIDList(self, symId):
        return uniq(self._api.maskingViewList(symId).maskingViewId)

    def createMaskingView(self, symId, maskingViewId, storageGroupId,
                          hostOrHostGroupId, portGroupId, isHost=True):
        """ Tie a storage group, a host (or host group) and a port group
        together; all three must already exist on the array. """
        if isHost:
            hostSelection = {
                'useExistingHostParam': {'hostId': hostOrHostGroupId},
            }
        else:
            hostSelection = {
                'useExistingHostGroupParam': {
                    'hostGroupId': hostOrHostGroupId,
                },
            }
        payload = {
            'maskingViewId': maskingViewId,
            'hostOrHostGroupSelection': hostSelection,
            'portGroupSelection': {
                'useExistingPortGroupParam': {'portGroupId': portGroupId},
            },
            'storageGroupSelection': {
                'useExistingStorageGroupParam': {
                    'storageGroupId': storageGroupId,
                },
            },
            'executionOption': pm.EXECUTION_SYNCHRONOUS,
        }
        res = self._api.maskingViewCreate(symId, payload)
        return self._settle(
            symId, res, pm.MaskingView,
            lambda: self.getMaskingView(symId, maskingViewId))

    def createOrGetMaskingView(self, symId, maskingViewId, storageGroupId,
                               hostOrHostGroupId, portGroupId, isHost=True):
        return self._createOrGet(
            'masking view', maskingViewId,
            lambda: self.getMaskingView(symId, maskingViewId),
            lambda: self.createMaskingView(
                symId, maskingViewId, storageGroupId, hostOrHostGroupId,
                portGroupId, isHost))

    def deleteMaskingView(self, symId, maskingViewId):
        self._api.maskingViewDelete(symId, maskingViewId)

    def deleteMaskingViewIfExists(self, symId, maskingViewId):
        return self._deleteIfExists(
            'masking view', maskingViewId,
            lambda: self.deleteMaskingView(symId, maskingViewId))

    def getMaskingViewConnections(self, symId, maskingViewId, volumeId=None):
        params = {'volume_id': volumeId} if volumeId else None
        res = self._api.maskingViewConnections(
            symId, maskingViewId, params=params)
        return res.maskingViewConnection

    # Volume lists

    def getVolumeIDList(self, symId, identifierMatch=None, like=False):
        """ List the volumes on the array, optionally only those whose
        identifier is (or, with like set, contains) identifierMatch. """
        params = None
        if identifierMatch:
            if like:
                identifierMatch = '<like>' + identifierMatch
            params = {'volume_identifier': identifierMatch}
        iterator = self._api.volumeList(symId, params=params)
        return self._iteratorToIDList(iterator)

    def getVolumeIDListInStorageGroup(self, symId, storageGroupId):
        if not storageGroupId:
            raise ValidationError("no storage group specified")
        iterator = self._api.volumeList(
            symId, params={'storageGroupId': storageGroupId})
        return self._iteratorToIDList(iterator)

    def deleteVolumeIDsIterator(self, iterator):
        if iterator.id:
            self._api.iteratorDelete(iterator.id)

    def _iteratorToIDList(self, iterator):
        result = iterator.resultList
        ids = [item.volumeId for item in result.result]
        pageSize = iterator.maxPageSize or len(ids) or iterator.count

        try:
            start = getattr(result, 'to') or len(ids)
            while start < iterator.count and pageSize > 0:
                end = min(start + pageSize, iterator.count)
                page = self._api.iteratorPage(
                    iterator.id, params={'from': start + 1, 'to': end})
                if not page.result:
                    break
                ids.extend(item.volumeId for item in page.result)
                start += len(page.result)
        finally:
            if iterator.count > len(result.result):
                self.deleteVolumeIDsIterator(iterator)

        res = uniq(ids)
        if len(res) != len(ids) or len(ids) != iterator.count:
            LOG.warning("Volume list: expected %d ids, got %d, %d unique",
                        iterator.count, len(ids), len(res))
        return res
