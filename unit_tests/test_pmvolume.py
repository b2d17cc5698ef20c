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
""" Tests for the powermax.pmvolume volume lifecycle operations. """

import unittest

import mock
import pytest

from powermax import pmapi
from powermax import pmerror
from powermax import pmjob
from powermax import pmprov
from powermax import pmtypes as pm
from powermax import pmvolume


SYM_ID = '000197900123'


class VolumeTestBase(unittest.TestCase):
    """ Set up a volume manager around fake collaborators that record
    the order of all the calls made to them. """

    def setUp(self):
        self.calls = mock.Mock()
        self.api = mock.Mock(spec=pmapi.Api)
        self.poller = mock.Mock(spec=pmjob.JobPoller)
        self.prov = mock.Mock(spec=pmprov.Provisioner)
        self.calls.attach_mock(self.api, 'api')
        self.calls.attach_mock(self.poller, 'poller')
        self.calls.attach_mock(self.prov, 'prov')
        self.poller.waitOnJob.side_effect = lambda symId, res: res
        self.api.volumeUpdate.side_effect = \
            lambda symId, volumeId, payload: pm.Volume(volumeId=volumeId)
        self.volumes = pmvolume.VolumeManager(
            self.api, self.poller, self.prov)

    def call_names(self):
        return [call[0] for call in self.calls.mock_calls]

    def update_params(self):
        return [call[0][2]['editVolumeActionParam']
                for call in self.api.volumeUpdate.call_args_list]


class TestCreate(VolumeTestBase):
    # pylint: disable=no-self-use
    """ Create volumes in storage groups. """

    def test_create_in_group(self):
        """ The new volume is found by its name, group and size. """
        self.prov.getVolumeIDList.return_value = ['0012A', '0012B', '0012C']
        self.api.volumeGet.side_effect = [
            pm.Volume(volumeId='0012A', storageGroupId=['SG2'], cap_cyl=547),
            pmerror.NotFoundError(404, {'message': 'gone'}),
            pm.Volume(volumeId='0012C', storageGroupId=['SG1'], cap_cyl=547,
                      volume_identifier='vol1'),
        ]

        vol = self.volumes.createInGroup(SYM_ID, 'SG1', 'vol1', 547)
        assert vol.volumeId == '0012C'

        self.prov.updateStorageGroup.assert_called_once_with(
            SYM_ID, 'SG1', pmprov.createVolumePayload('vol1', 547))
        payload = self.prov.updateStorageGroup.call_args[0][2]
        attrs = payload['editStorageGroupActionParam'][
            'expandStorageGroupParam']['addVolumeParam']['volumeAttributes']
        assert attrs[0]['volume_size'] == '547'
        assert attrs[0]['capacityUnit'] == 'CYL'
        assert payload['executionOption'] == 'ASYNCHRONOUS'
        self.prov.getVolumeIDList.assert_called_once_with(SYM_ID, 'vol1')

    def test_create_not_found(self):
        """ A volume that cannot be found afterwards is an error. """
        self.prov.getVolumeIDList.return_value = ['0012A']
        self.api.volumeGet.return_value = pm.Volume(
            volumeId='0012A', storageGroupId=['SG1'], cap_cyl=30)

        with pytest.raises(pmerror.VolumeNotFoundError) as err:
            self.volumes.createInGroup(SYM_ID, 'SG1', 'vol1', 547)
        assert isinstance(err.value, pmerror.NotFoundError)
        assert err.value.desc == 'Failed to find newly created volume ' \
            'with name: vol1 in SG: SG1'

    def test_create_invalid_name(self):
        """ Names longer than the array allows are refused up front. """
        with pytest.raises(pmerror.ValidationError):
            self.volumes.createInGroup(SYM_ID, 'SG1', 'v' * 65, 547)
        self.prov.updateStorageGroup.assert_not_called()

    def test_storage_group_membership(self):
        self.volumes.addToStorageGroup(SYM_ID, 'SG1', ['0012A'])
        self.prov.addVolumesToStorageGroup.assert_called_once_with(
            SYM_ID, 'SG1', ['0012A'], sync=True)
        self.volumes.removeFromStorageGroup(SYM_ID, 'SG1', ['0012A'])
        self.prov.removeVolumesFromStorageGroup.assert_called_once_with(
            SYM_ID, 'SG1', ['0012A'])


class TestExpand(VolumeTestBase):
    # pylint: disable=no-self-use
    """ Grow volumes and verify the result. """

    def test_expand(self):
        """ A 1 cylinder volume grows to 30 cylinders. """
        self.api.volumeGet.side_effect = [
            pm.Volume(volumeId='0012A', cap_cyl=1),
            pm.Volume(volumeId='0012A', cap_cyl=30),
        ]
        vol = self.volumes.expand(SYM_ID, '0012A', 30, rdfGroupNo='7')
        assert vol.cap_cyl == 30
        assert self.update_params() == [{
            'expandVolumeParam': {
                'volumeAttribute': {
                    'volume_size': '30',
                    'capacityUnit': 'CYL',
                },
                'rdfGroupNumber': 7,
            },
        }]

    def test_expand_mismatch(self):
        """ The array reporting another size is an error. """
        self.api.volumeGet.side_effect = [
            pm.Volume(volumeId='0012A', cap_cyl=1),
            pm.Volume(volumeId='0012A', cap_cyl=29),
        ]
        with pytest.raises(pmerror.SizeMismatchError) as err:
            self.volumes.expand(SYM_ID, '0012A', 30)
        assert err.value.wanted == 30
        assert err.value.actual == 29
        assert 'rdfGroupNumber' not in \
            self.update_params()[0]['expandVolumeParam']

    def test_expand_noop_and_shrink(self):
        """ The same size is a no-op; a smaller one is refused. """
        self.api.volumeGet.return_value = pm.Volume(
            volumeId='0012A', cap_cyl=30)
        assert self.volumes.expand(SYM_ID, '0012A', 30).cap_cyl == 30
        with pytest.raises(pmerror.ValidationError):
            self.volumes.expand(SYM_ID, '0012A', 10)
        self.api.volumeUpdate.assert_not_called()

    def test_rename_job(self):
        """ A deferred update is waited for and the volume refetched. """
        job = pm.Job(jobId='17', status='RUNNING')
        self.api.volumeUpdate.side_effect = None
        self.api.volumeUpdate.return_value = job
        self.poller.waitOnJob.side_effect = None
        self.poller.waitOnJob.return_value = pm.Job(
            jobId='17', status='SUCCEEDED')
        self.api.volumeGet.return_value = pm.Volume(
            volumeId='0012A', volume_identifier='vol2')

        assert self.volumes.rename(SYM_ID, '0012A', 'vol2') \
            .volume_identifier == 'vol2'
        self.poller.waitOnJob.assert_called_once_with(SYM_ID, job)


class TestTeardown(VolumeTestBase):
    # pylint: disable=no-self-use
    """ Tear down volumes step by step. """

    def setUp(self):
        super(TestTeardown, self).setUp()
        self.api.volumeGet.return_value = pm.Volume(
            volumeId='0012A', volume_identifier='vol1',
            storageGroupId=['SG1', 'SG2'], cap_cyl=30)

    def test_teardown_order(self):
        """ Rename, leave the storage groups, free the tracks, delete. """
        vol = self.volumes.teardown(SYM_ID, '0012A')
        assert vol.volumeId == '0012A'

        assert self.call_names() == [
            'api.volumeGet',
            'api.volumeUpdate',
            'poller.waitOnJob',
            'prov.removeVolumesFromStorageGroup',
            'prov.removeVolumesFromStorageGroup',
            'api.volumeUpdate',
            'poller.waitOnJob',
            'api.volumeDelete',
        ]
        params = self.update_params()
        assert params[0]['modifyVolumeIdentifierParam'][
            'volumeIdentifier']['identifier_name'] == '_DELvol1'
        assert params[1] == {'freeVolumeParam': {'free_volume': True}}
        assert self.api.volumeUpdate.call_args_list[1][0][2][
            'executionOption'] == 'ASYNCHRONOUS'
        assert [call[0][1] for call in
                self.prov.removeVolumesFromStorageGroup.call_args_list] == \
            ['SG1', 'SG2']
        self.api.volumeDelete.assert_called_once_with(SYM_ID, '0012A')

    def test_teardown_twice(self):
        """ A volume that is already gone is reported as not found. """
        self.api.volumeGet.side_effect = pmerror.NotFoundError(
            404, {'message': 'Cannot find Volume 0012A'})
        with pytest.raises(pmerror.NotFoundError):
            self.volumes.teardown(SYM_ID, '0012A')
        self.api.volumeUpdate.assert_not_called()
        self.api.volumeDelete.assert_not_called()

    def test_teardown_already_renamed(self):
        """ A volume marked for deletion is not renamed again. """
        self.api.volumeGet.return_value = pm.Volume(
            volumeId='0012A', volume_identifier='_DELvol1')
        self.volumes.teardown(SYM_ID, '0012A')
        assert self.update_params() == [
            {'freeVolumeParam': {'free_volume': True}},
        ]
        self.prov.removeVolumesFromStorageGroup.assert_not_called()

    def test_teardown_long_name(self):
        assert pmvolume.deletionName('v' * 64) == '_DEL' + 'v' * 60
        assert pmvolume.deletionName(None) == '_DEL'

    def test_teardown_group_failure(self):
        """ A volume still in a storage group is not deleted. """
        self.prov.removeVolumesFromStorageGroup.side_effect = [
            pmerror.ApiError(400, {'message': 'Device is in use'}),
            None,
        ]
        with pytest.raises(pmerror.TeardownError) as err:
            self.volumes.teardown(SYM_ID, '0012A')
        assert len(err.value.errors) == 1
        assert 'Device is in use' in str(err.value)
        assert self.prov.removeVolumesFromStorageGroup.call_count == 2
        assert len(self.update_params()) == 1
        self.api.volumeDelete.assert_not_called()

    def test_teardown_benign_free(self):
        """ Tracks that have already been freed are fine. """
        failed = pm.Job(jobId='18', status='FAILED',
                        result='Volume already in desired state')
        results = [None, pmerror.JobFailedError(failed)]

        def wait(symId, res):
            outcome = results.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return res

        self.poller.waitOnJob.side_effect = wait
        self.volumes.teardown(SYM_ID, '0012A')
        self.api.volumeDelete.assert_called_once_with(SYM_ID, '0012A')

    def test_teardown_benign_free_refused(self):
        """ The array may refuse to free the tracks right away if they
        have already been freed; the volume is still deleted. """
        self.api.volumeUpdate.side_effect = [
            pm.Volume(volumeId='0012A'),
            pmerror.ApiError(400, {
                'message': 'Device 0012A is already in the requested state'}),
        ]
        vol = self.volumes.teardown(SYM_ID, '0012A')
        assert vol.volumeId == '0012A'
        assert self.poller.waitOnJob.call_count == 1
        self.api.volumeDelete.assert_called_once_with(SYM_ID, '0012A')

    def test_free_refused(self):
        """ Other refusals to free the tracks are passed on. """
        self.api.volumeUpdate.side_effect = pmerror.ApiError(
            400, {'message': 'Device 0012A is mapped'})
        with pytest.raises(pmerror.ApiError):
            self.volumes.freeTracks(SYM_ID, '0012A')
        self.poller.waitOnJob.assert_not_called()

    def test_teardown_errors_collected(self):
        """ Every failure is reported together. """
        self.api.volumeUpdate.side_effect = [
            pmerror.ApiError(400, {'message': 'Cannot rename'}),
            pm.Job(jobId='18', status='RUNNING'),
        ]
        self.poller.waitOnJob.side_effect = pmerror.JobFailedError(
            pm.Job(jobId='18', status='FAILED', result='Device is busy'))

        with pytest.raises(pmerror.TeardownError) as err:
            self.volumes.teardown(SYM_ID, '0012A')
        assert [type(exc) for exc in err.value.errors] == [
            pmerror.ApiError, pmerror.JobFailedError]
        assert 'Cannot rename' in str(err.value)
        assert 'Device is busy' in str(err.value)
        assert self.prov.removeVolumesFromStorageGroup.call_count == 2
        self.api.volumeDelete.assert_not_called()
