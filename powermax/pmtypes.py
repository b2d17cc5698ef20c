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
""" Value objects and argument validators for the PowerMax API bindings.

Only the attributes that the bindings inspect, and a few that are
commonly useful for display, are declared; any other attributes
returned by Unisphere are silently dropped. """

from .pmtype import JsonObject, maybe, nameValidator, oneOf, regex


MAX_VOL_IDENTIFIER_LENGTH = 64

SymId = regex('SymmetrixId', r'^[0-9A-Za-z]+$')
VolumeId = regex('VolumeId', r'^[0-9A-Fa-f]{5}$')
JobId = regex('JobId', r'^[0-9A-Za-z_.-]+$')
ObjectName = regex('ObjectName', r'^[0-9A-Za-z_.:/ -]+$')
StorageGroupId = ObjectName
HostId = ObjectName
PortGroupId = ObjectName
MaskingViewId = ObjectName
InitiatorId = regex('InitiatorId', r'^[0-9A-Za-z_.:-]+$')
SnapshotName = regex('SnapshotName', r'^[0-9A-Za-z_-]+$')
RDFGroupNumber = regex('RDFGroupNumber', r'^[0-9]+$')
PoolId = ObjectName
DirectorId = ObjectName
PortId = regex('PortId', r'^[0-9]+$')
IteratorId = regex('IteratorId', r'^[0-9A-Za-z_-]+$')
VolumeIdentifier = nameValidator(
    'VolumeIdentifier', r'^[^\x00-\x1f]*$', MAX_VOL_IDENTIFIER_LENGTH)

SnapshotAction = oneOf('SnapshotAction', 'Link', 'Unlink', 'Rename',
                       'Restore')
ReplicationAction = oneOf('ReplicationAction', 'Suspend', 'Resume')
MigrationAction = oneOf('MigrationAction', 'Cutover', 'Sync', 'StopSync',
                        'Commit', 'Recover', 'ReadyTgt')


# Job states as reported by Unisphere.
JOB_CREATED = 'CREATED'
JOB_SCHEDULED = 'SCHEDULED'
JOB_RUNNING = 'RUNNING'
JOB_VALIDATING = 'VALIDATING'
JOB_VALIDATED = 'VALIDATED'
JOB_SUCCEEDED = 'SUCCEEDED'
JOB_FAILED = 'FAILED'

JOB_TERMINAL = frozenset([JOB_SUCCEEDED, JOB_FAILED])

EXECUTION_SYNCHRONOUS = 'SYNCHRONOUS'
EXECUTION_ASYNCHRONOUS = 'ASYNCHRONOUS'


@JsonObject(execution_order=maybe(int), description=maybe(str))
class JobTask(object):
    pass


@JsonObject(jobId=str, name=maybe(str), status=maybe(str),
            username=maybe(str), last_modified_date=maybe(str),
            scheduled_date=maybe(str), completed_date=maybe(str),
            resourceLink=maybe(str), result=maybe(str),
            task=[JobTask])
class Job(object):
    '''
    jobId: The identifier of the job on the array.
    status: One of CREATED, SCHEDULED, RUNNING, VALIDATING, VALIDATED, SUCCEEDED, FAILED.
    resourceLink: The REST path of the object the job operates on.
    result: Free text filled in by the array when the job terminates.
    '''

    @property
    def state(self):
        return (self.status or '').upper()

    @property
    def finished(self):
        return self.state in JOB_TERMINAL

    @property
    def succeeded(self):
        return self.state == JOB_SUCCEEDED


@JsonObject(jobIds=[str])
class JobIDList(object):
    pass


@JsonObject(volumeId=str, type=maybe(str), emulation=maybe(str),
            cap_gb=maybe(float), cap_mb=maybe(float), cap_cyl=maybe(int),
            status=maybe(str), volume_identifier=maybe(str), wwn=maybe(str),
            num_of_storage_groups=maybe(int),
            num_of_front_end_paths=maybe(int),
            storageGroupId=[str], snapvx_source=maybe(bool),
            snapvx_target=maybe(bool))
class Volume(object):
    '''
    volumeId: The five-hex-digit device identifier assigned by the array.
    cap_cyl: The capacity in cylinders.
    volume_identifier: The user-visible name of the volume.
    storageGroupId: The storage groups the volume is a member of.
    '''


@JsonObject(volumeId=str)
class VolumeIDItem(object):
    pass


@JsonObject(result=[VolumeIDItem], **{'from': maybe(int), 'to': maybe(int)})
class VolumeResultList(object):
    pass


@JsonObject(resultList=VolumeResultList, id=maybe(str), count=int,
            expirationTime=maybe(int), maxPageSize=maybe(int))
class VolumeIterator(object):
    '''
    resultList: The first page of results.
    id: The iterator to fetch any further pages from; absent if none.
    count: The total number of results.
    '''


@JsonObject(storageGroupId=[str])
class StorageGroupIDList(object):
    pass


@JsonObject(storageGroupId=str, slo=maybe(str), service_level=maybe(str),
            srp=maybe(str), workload=maybe(str), num_of_vols=maybe(int),
            num_of_masking_views=maybe(int), cap_gb=maybe(float),
            device_emulation=maybe(str), type=maybe(str),
            unprotected=maybe(bool), maskingview=[str],
            compression=maybe(bool))
class StorageGroup(object):
    '''
    slo: The service level; absent for a non-managed storage group.
    srp: The storage resource pool; absent for a non-managed storage group.
    unprotected: False if the storage group is protected by remote replication.
    '''


@JsonObject(srpId=[str])
class StoragePoolList(object):
    pass


@JsonObject(srpId=str, emulation=maybe(str), num_of_disk_groups=maybe(int),
            description=maybe(str), service_levels=[str],
            compression_state=maybe(str))
class StoragePool(object):
    pass


@JsonObject(symmetrixId=[str])
class SymmetrixIDList(object):
    pass


@JsonObject(symmetrixId=str, device_count=maybe(int), ucode=maybe(str),
            model=maybe(str), local=maybe(bool))
class Symmetrix(object):
    pass


@JsonObject(directorId=str, portId=str)
class PortKey(object):
    pass


@JsonObject(hostId=str, num_of_masking_views=maybe(int),
            num_of_initiators=maybe(int), type=maybe(str),
            initiator=[str], maskingview=[str],
            consistent_lun=maybe(bool))
class Host(object):
    pass


@JsonObject(hostId=[str])
class HostList(object):
    pass


@JsonObject(initiatorId=str, symmetrixPortKey=[PortKey], host=maybe(str),
            type=maybe(str), logged_in=maybe(bool), on_fabric=maybe(bool),
            maskingview=[str])
class Initiator(object):
    pass


@JsonObject(initiatorId=[str])
class InitiatorList(object):
    pass


@JsonObject(portGroupId=str, symmetrixPortKey=[PortKey],
            num_of_ports=maybe(int), num_of_masking_views=maybe(int),
            type=maybe(str), maskingview=[str],
            port_group_protocol=maybe(str))
class PortGroup(object):
    pass


@JsonObject(portGroupId=[str])
class PortGroupList(object):
    pass


@JsonObject(maskingViewId=str, hostId=maybe(str), hostGroupId=maybe(str),
            portGroupId=maybe(str), storageGroupId=maybe(str))
class MaskingView(object):
    '''
    hostId: The host of the masking view; absent for host group views.
    hostGroupId: The host group of the masking view, if any.
    '''


@JsonObject(maskingViewId=[str])
class MaskingViewList(object):
    pass


@JsonObject(volume_id=maybe(str), host_lun_address=maybe(str),
            cap_gb=maybe(str), initiator_id=maybe(str),
            dir_port=maybe(str), logged_in=maybe(bool))
class MaskingViewConnection(object):
    pass


@JsonObject(maskingViewConnection=[MaskingViewConnection])
class MaskingViewConnectionList(object):
    pass


@JsonObject(rdfgNumber=int, label=maybe(str), remoteRdfgNumber=maybe(int),
            remoteSymmetrix=maybe(str), numDevices=maybe(int),
            totalDeviceCapacity=maybe(float), modes=[str], type=maybe(str),
            **{'async': maybe(bool)})
class RDFGroup(object):
    '''
    rdfgNumber: The local RDF group number.
    remoteSymmetrix: The array at the other end of the group.
    numDevices: The number of device pairs in the group.
    '''


@JsonObject(name=str, symmetrixId=maybe(str), totalTracks=maybe(int),
            largerRdfSide=[str], rdfGroupNumbers=[int], states=[str],
            modes=[str])
class RDFStorageGroup(object):
    pass


@JsonObject(rdfGroupNumber=int, volumeRdfTypes=[str], states=[str],
            modes=[str], largerRdfSides=[str])
class SGRDFInfo(object):
    '''
    states: The RDF pair states of the volumes in the storage group.
    '''


@JsonObject(rdfGroupNumber=[int])
class StorageGroupRDFGroupList(object):
    pass


@JsonObject(localSymmID=maybe(str), remoteSymmID=maybe(str),
            localVolumeName=maybe(str), remoteVolumeName=maybe(str),
            localRdfGroupNumber=maybe(int), remoteRdfGroupNumber=maybe(int),
            volumeConfig=maybe(str), rdfMode=maybe(str),
            rdfpairState=maybe(str), largerRdfSide=maybe(str))
class RDFDevicePair(object):
    '''
    remoteVolumeName: The identifier of the mirror volume on the remote array.
    rdfpairState: The state of the pair, e.g. Consistent or Suspended.
    '''


@JsonObject(devicePair=[RDFDevicePair])
class RDFDevicePairList(object):
    pass


@JsonObject(name=str)
class VolumeList(object):
    pass


@JsonObject(targetDevice=str, timestamp=maybe(str), state=maybe(str),
            trackSize=maybe(int), tracks=maybe(int),
            percentageCopied=maybe(int), linked=maybe(bool),
            restored=maybe(bool), defined=maybe(bool), copy=maybe(bool),
            destage=maybe(bool), modified=maybe(bool))
class LinkedVolume(object):
    pass


@JsonObject(snapshotName=str, generation=int, timestamp=maybe(str),
            state=maybe(str), ttl=maybe(int), expired=maybe(bool),
            linkedDevices=[LinkedVolume])
class VolumeSnapshotSource(object):
    pass


@JsonObject(targetDevice=maybe(str), timestamp=maybe(str), state=maybe(str),
            linkSource=maybe(str), snapshotName=maybe(str),
            generation=maybe(int), defined=maybe(bool), linked=maybe(bool))
class VolumeSnapshotLink(object):
    pass


@JsonObject(deviceName=str, snapshotName=str,
            snapshotSrc=[VolumeSnapshotSource],
            snapshotLnk=[VolumeSnapshotLink])
class VolumeSnapshot(object):
    pass


@JsonObject(deviceName=str, snapshotName=maybe(str), generation=[int],
            snapshotSrc=[VolumeSnapshotSource],
            snapshotLnk=[VolumeSnapshotLink])
class VolumeSnapshotGenerations(object):
    pass


@JsonObject(deviceName=str, snapshotName=maybe(str), generation=int,
            snapshotSrc=maybe(VolumeSnapshotSource),
            snapshotLnk=[VolumeSnapshotLink])
class VolumeSnapshotGeneration(object):
    '''
    snapshotSrc: The snapshot generation, including its linked devices.
    '''


@JsonObject(deviceName=str, snapshotSrcs=[VolumeSnapshotSource],
            snapshotLnks=[VolumeSnapshotLink])
class SnapshotVolumeGeneration(object):
    pass


@JsonObject(name=str, generation=int, linked=maybe(bool),
            restored=maybe(bool), timestamp=maybe(str), state=maybe(str))
class SymSnapshot(object):
    pass


@JsonObject(symmetrixId=maybe(str), name=str, snapshot=[SymSnapshot],
            rdfgNumbers=[int])
class SymDevice(object):
    pass


@JsonObject(name=[str], device=[SymDevice])
class SymVolumeList(object):
    '''
    name: The identifiers of the volumes matching the query.
    device: Per-volume snapshot details, when requested.
    '''


# Directors and ports

PORT_TYPE_GIGE = 'Gige'


@JsonObject(directorId=[str])
class DirectorIDList(object):
    pass


@JsonObject(symmetrixPortKey=[PortKey])
class PortList(object):
    pass


@JsonObject(symmetrixPortKey=maybe(PortKey), type=maybe(str),
            identifier=maybe(str), ip_addresses=[str],
            iscsi_target=maybe(bool), port_status=maybe(str),
            director_status=maybe(str), num_of_port_groups=maybe(int),
            num_of_masking_views=maybe(int))
class SymmetrixPort(object):
    '''
    identifier: The WWN of a fibre channel port or the IQN of an iSCSI target.
    ip_addresses: The portal addresses of a GigE or iSCSI target port.
    '''


@JsonObject(symmetrixPort=SymmetrixPort)
class Port(object):
    pass


@JsonObject(iqn=str, portalIPs=[str])
class ISCSITarget(object):
    pass


# Performance metrics

@JsonObject(HostReads=maybe(float), HostWrites=maybe(float),
            HostMBReads=maybe(float), HostMBWritten=maybe(float),
            ReadResponseTime=maybe(float), WriteResponseTime=maybe(float),
            AllocatedCapacity=maybe(float), timestamp=maybe(int))
class StorageGroupMetric(object):
    pass


@JsonObject(result=[StorageGroupMetric],
            **{'from': maybe(int), 'to': maybe(int)})
class StorageGroupMetricsResultList(object):
    pass


@JsonObject(resultList=StorageGroupMetricsResultList, id=maybe(str),
            count=maybe(int), expirationTime=maybe(int),
            maxPageSize=maybe(int))
class StorageGroupMetricsIterator(object):
    pass


@JsonObject(MBRead=maybe(float), MBWritten=maybe(float),
            Reads=maybe(float), Writes=maybe(float),
            ReadResponseTime=maybe(float), WriteResponseTime=maybe(float),
            timestamp=maybe(int))
class VolumeMetric(object):
    pass


@JsonObject(volumeResult=[VolumeMetric], volumeId=str,
            storageGroups=maybe(str))
class VolumeResult(object):
    '''
    storageGroups: The comma-separated storage groups of the volume.
    '''


@JsonObject(result=[VolumeResult],
            **{'from': maybe(int), 'to': maybe(int)})
class VolumeMetricsResultList(object):
    pass


@JsonObject(resultList=VolumeMetricsResultList, id=maybe(str),
            count=maybe(int), expirationTime=maybe(int),
            maxPageSize=maybe(int))
class VolumeMetricsIterator(object):
    pass


# Non-disruptive migration

@JsonObject(arrayId=str, storageGroupCount=maybe(int),
            migrationSessionCount=maybe(int), local=maybe(bool))
class MigrationEnv(object):
    '''
    arrayId: The remote array the migration environment connects to.
    '''


@JsonObject(srcVolumeName=maybe(str), invalidSrc=maybe(bool),
            missingSrc=maybe(bool), tgtVolumeName=maybe(str),
            invalidTgt=maybe(bool), missingTgt=maybe(bool))
class MigrationDevicePair(object):
    pass


@JsonObject(name=maybe(str), invalid=maybe(bool), missing=maybe(bool))
class MigrationMaskingView(object):
    pass


@JsonObject(sourceArray=str, targetArray=str, storageGroup=str,
            state=maybe(str), totalCapacity=maybe(float),
            remainingCapacity=maybe(float), offline=maybe(bool),
            type=maybe(str), devicePairs=[MigrationDevicePair],
            sourceMaskingView=[MigrationMaskingView],
            targetMaskingView=[MigrationMaskingView])
class MigrationSession(object):
    '''
    state: One of Created, CutoverReady, CutoverSync, Synchronized,
        Migrating, Failed and so on, as reported by the array.
    '''


@JsonObject(storageGroupIdList=[str], migratingNameList=[str])
class MigrationStorageGroups(object):
    pass
