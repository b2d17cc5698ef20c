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
""" Classes for accessing the Unisphere for PowerMax REST API.

The Api class provides methods corresponding to the Unisphere REST calls
that the PowerMax bindings use.  The most common way to initialize it is
to use the Api.fromConfig() class method that will parse the client
configuration and set up the connection parameters.

The methods are generated from the declarative table at the end of this
module: each one validates its path arguments, checks that the array is
one of the managed ones, sends a single request, and converts the JSON
response into the declared value object type.  Retrying and sequencing
of multi-step operations is left to the managers in the pmjob, pmprov,
pmvolume, pmsnap, pmrepl, pmmetrics and pmmigrate modules.
"""

import base64
import errno
import logging
import socket as sock
import ssl
import time
import urllib.parse as uquote

from http import client as http

from . import pmjson as js
from . import pmtypes as pm

from .pmconfig import PMConfig
from .pmerror import ArrayNotAllowedError, TransportError, apiError
from .pmtype import PmType, intRange, pmType
from .pmutils import parseList


VERSION = '1.0.0'

LOG = logging.getLogger(__name__)

PM_API_PREFIX = '/univmax/restapi'

HTTP_SUCCESS = frozenset([http.OK, http.CREATED, http.ACCEPTED])

TRANSIENT_ERRNOS = frozenset([
    errno.ECONNREFUSED, errno.ECONNRESET, errno.ECONNABORTED, errno.EPIPE,
])


def _format_path(version, query, private=False, versioned=True):
    """ Return the HTTP path to send an actual query to; the performance
    calls are not versioned. """
    return "{pref}/{private}{version}{query}".format(
        pref=PM_API_PREFIX,
        private="private/" if private else "",
        version=version + "/" if versioned else "",
        query=query)


class _API_ARG(object):
    def __init__(self, name, validate):
        self._name = name
        self._type = pmType(validate)


SymId = _API_ARG('symId', pm.SymId)
VolumeId = _API_ARG('volumeId', pm.VolumeId)
StorageGroupId = _API_ARG('storageGroupId', pm.StorageGroupId)
PoolId = _API_ARG('srpId', pm.PoolId)
HostId = _API_ARG('hostId', pm.HostId)
InitiatorId = _API_ARG('initiatorId', pm.InitiatorId)
PortGroupId = _API_ARG('portGroupId', pm.PortGroupId)
MaskingViewId = _API_ARG('maskingViewId', pm.MaskingViewId)
JobId = _API_ARG('jobId', pm.JobId)
IteratorId = _API_ARG('iteratorId', pm.IteratorId)
RDFGroupNumber = _API_ARG('rdfGroupNo', pm.RDFGroupNumber)
SnapshotName = _API_ARG('snapId', pm.SnapshotName)
Generation = _API_ARG('generation', intRange('generation', 0, 1023))
DirectorId = _API_ARG('directorId', pm.DirectorId)
PortId = _API_ARG('portId', pm.PortId)
RemoteSymId = _API_ARG('remoteSymId', pm.SymId)


def jobOr(returns):
    """ The result of a call that the array may either execute in place or
    defer: a Job handle if the response describes one. """
    subType = pmType(returns)

    def handleVal(res):
        if isinstance(res, dict) and 'jobId' in res:
            return pm.Job(res)
        return subType.handleVal(res)

    return PmType("Either(Job, {0})".format(subType.name), handleVal,
                  lambda: None)


class _API_METHOD(object):
    def __init__(self, method, query, args, json, returns, private,
                 versioned=True):
        self.method = method
        self.query = query
        self.args = args
        self.json = json
        self.returns = pmType(returns) if returns is not None else None
        self.private = private
        self.versioned = versioned

    @property
    def argNames(self):
        return [arg._name for arg in self.args]

    def compile(self):
        def commas(xs):
            return ", ".join(xs)

        def fmtEq(x):
            return "{x}={x}".format(x=x)

        method, query, args, returns = \
            self.method, self.query, self.args, self.returns
        names = self.argNames

        ftext = 'def func(self, {args}{json}params=None):\n'.format(
            args=''.join(name + ", " for name in names),
            json='json, ' if self.json else '')
        for name in names:
            ftext += '    {arg} = _validate_{arg}({arg})\n'.format(arg=name)
        if 'symId' in names:
            ftext += '    self.checkAllowedArray(symId)\n'

        ftext += '    query = "{query}"'.format(query=query)
        if names:
            ftext += '.format({args})'.format(
                args=commas(fmtEq(name) for name in names))
        ftext += '\n'

        ftext += ('    res = self("{method}", query, {json}, '
                  'private={private}, params=params{versioned})\n').format(
                      method=method, private=repr(self.private),
                      json='json' if self.json else 'None',
                      versioned='' if self.versioned else ', versioned=False')
        ftext += '    if res is None:\n'
        ftext += '        return None\n'
        if returns is None:
            ftext += '    return res\n'
        else:
            ftext += '    return returns(res)\n'

        globalz = dict(("_validate_{0}".format(arg._name),
                        arg._type.handleVal) for arg in args)
        if returns is not None:
            globalz['returns'] = returns.handleVal

        exec(ftext, globalz)
        func = globalz['func']
        del globalz['func']

        doc = "HTTP: {method} {path}\n\n".format(
            method=method, path=_format_path('{version}', query,
                                              self.private, self.versioned))
        if args or self.json:
            doc += "    Arguments:\n"
            for arg in args:
                doc += "        {argName}: {argType}\n".format(
                    argName=arg._name, argType=arg._type.name)
            if self.json:
                doc += "        json: {0}\n".format(self.json)
            doc += "\n"
        if returns is not None:
            doc += "    Returns: {res}\n".format(res=returns.name)

        func.__doc__ = doc
        func.pmCall = self

        return func


def GET(query, *args, **kwargs):
    assert 'returns' in kwargs, 'GET requests must specify a return type'
    return _API_METHOD('GET', query, args, None, kwargs['returns'],
                       kwargs.get('private', False))


def POST(query, *args, **kwargs):
    return _API_METHOD('POST', query, args, kwargs.get('json', 'payload'),
                       kwargs.get('returns', None),
                       kwargs.get('private', False),
                       kwargs.get('versioned', True))


def PUT(query, *args, **kwargs):
    return _API_METHOD('PUT', query, args, kwargs.get('json', 'payload'),
                       kwargs.get('returns', None),
                       kwargs.get('private', False))


def DELETE(query, *args, **kwargs):
    return _API_METHOD('DELETE', query, args, kwargs.get('json', None),
                       kwargs.get('returns', None),
                       kwargs.get('private', False))


class ApiMeta(type):
    def __setattr__(cls, name, meth):
        func = meth.compile()
        func.__name__ = func.__qualname__ = name
        func.__module__ = __name__
        type.__setattr__(cls, name, func)


class Api(object, metaclass=ApiMeta):
    '''Unisphere for PowerMax REST API abstraction'''

    def __init__(self, host='127.0.0.1', port=8443, user='', password='',
                 version='100', insecure=False, timeout=120,
                 transientRetries=5, transientSleep=lambda retry: 2 ** retry,
                 allowedArrays=None):
        self._host = host
        self._port = port
        self._version = str(version)
        self._timeout = timeout
        self._transientRetries = transientRetries
        self._transientSleep = transientSleep
        token = base64.b64encode(
            "{0}:{1}".format(user, password).encode('utf-8'))
        self._headers = {
            "Authorization": "Basic " + token.decode('ascii'),
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        self._context = ssl.create_default_context()
        if insecure:
            self._context.check_hostname = False
            self._context.verify_mode = ssl.CERT_NONE

        self._allowedArrays = []
        self.setAllowedArrays(allowedArrays or [])

    @classmethod
    def fromConfig(klass, cfg=None, **kwargs):
        if cfg is None:
            cfg = PMConfig()
        return klass(host=cfg['PM_API_HOST'],
                     port=cfg.getint('PM_API_PORT'),
                     user=cfg['PM_API_USER'],
                     password=cfg['PM_API_PASSWORD'],
                     version=cfg['PM_API_VERSION'],
                     insecure=cfg.getbool('PM_API_INSECURE'),
                     timeout=cfg.getint('PM_API_TIMEOUT'),
                     allowedArrays=parseList(cfg['PM_ALLOWED_ARRAYS']),
                     **kwargs)

    @property
    def version(self):
        return self._version

    def setAllowedArrays(self, arrays):
        """ Restrict the bindings to the specified arrays; an empty list
        allows all of them. """
        self._allowedArrays = [pm.SymId.handleVal(arr) for arr in arrays]

    def getAllowedArrays(self):
        return list(self._allowedArrays)

    def isAllowedArray(self, symId):
        if not self._allowedArrays:
            return True
        return symId in self._allowedArrays

    def checkAllowedArray(self, symId):
        if not self.isAllowedArray(symId):
            raise ArrayNotAllowedError(symId)

    def __call__(self, method, query, json=None, private=False, params=None,
                 versioned=True):
        if json is not None:
            json = js.dumps(js.compact(json)).encode('utf-8')

        path = _format_path(self._version, query, private, versioned)
        if params:
            path += "?" + uquote.urlencode(js.compact(params), doseq=True)

        def is_transient_error(err):
            if isinstance(err, (http.HTTPException, sock.timeout)):
                return True
            return err.errno in TRANSIENT_ERRNOS

        retry, lastErr = 0, None
        while True:
            conn = None
            try:
                conn = http.HTTPSConnection(
                    self._host, self._port, timeout=self._timeout,
                    context=self._context)
                LOG.debug("%s %s", method, path)
                conn.request(method, path, json, self._headers)
                response = conn.getresponse()
                status, body = response.status, response.read()

                if status == http.NO_CONTENT:
                    return None
                try:
                    jres = js.loads(body) if body else None
                except js.JSONDecodeError as jerr:
                    if status in HTTP_SUCCESS:
                        raise TransportError(
                            "invalid JSON in the response: {0}".format(jerr))
                    jres = {'message': body.decode('utf-8', 'replace')}

                if status in HTTP_SUCCESS:
                    return jres

                err = apiError(status, jres)
                if self._transientRetries and err.transient:
                    LOG.debug("%s %s: transient error %s", method, path, err)
                    lastErr = err
                else:
                    LOG.debug("%s %s: %s", method, path, err)
                    raise err
            except (sock.error, http.HTTPException) as err:
                if self._transientRetries and is_transient_error(err):
                    LOG.debug("%s %s: transient error %s", method, path, err)
                    lastErr = TransportError(str(err), transient=True)
                else:
                    raise TransportError(
                        str(err), transient=is_transient_error(err)) from err
            finally:
                if conn:
                    conn.close()

            if retry < self._transientRetries:
                retrySleep = self._transientSleep(retry)
                time.sleep(retrySleep)
                retry += 1
            else:
                LOG.error("%s %s: giving up after %d retries: %s",
                          method, path, retry, lastErr)
                raise lastErr


# System
Api.symmetrixList = GET('system/symmetrix', returns=pm.SymmetrixIDList)
Api.symmetrixGet = GET('system/symmetrix/{symId}', SymId,
                       returns=pm.Symmetrix)
Api.jobList = GET('system/symmetrix/{symId}/job', SymId,
                  returns=pm.JobIDList)
Api.jobGet = GET('system/symmetrix/{symId}/job/{jobId}', SymId, JobId,
                 returns=pm.Job)

# Directors and ports
Api.directorList = GET('system/symmetrix/{symId}/director', SymId,
                       returns=pm.DirectorIDList)
Api.portList = GET(
    'system/symmetrix/{symId}/director/{directorId}/port',
    SymId, DirectorId, returns=pm.PortList)
Api.portGet = GET(
    'system/symmetrix/{symId}/director/{directorId}/port/{portId}',
    SymId, DirectorId, PortId, returns=pm.Port)

# Storage resource pools
Api.storagePoolList = GET('sloprovisioning/symmetrix/{symId}/srp', SymId,
                          returns=pm.StoragePoolList)
Api.storagePoolGet = GET('sloprovisioning/symmetrix/{symId}/srp/{srpId}',
                         SymId, PoolId, returns=pm.StoragePool)

# Storage groups
Api.storageGroupList = GET(
    'sloprovisioning/symmetrix/{symId}/storagegroup', SymId,
    returns=pm.StorageGroupIDList)
Api.storageGroupGet = GET(
    'sloprovisioning/symmetrix/{symId}/storagegroup/{storageGroupId}',
    SymId, StorageGroupId, returns=pm.StorageGroup)
Api.storageGroupCreate = POST(
    'sloprovisioning/symmetrix/{symId}/storagegroup', SymId,
    json='CreateStorageGroupParam', returns=jobOr(pm.StorageGroup))
Api.storageGroupUpdate = PUT(
    'sloprovisioning/symmetrix/{symId}/storagegroup/{storageGroupId}',
    SymId, StorageGroupId, json='EditStorageGroupParam',
    returns=jobOr(pm.StorageGroup))
Api.storageGroupDelete = DELETE(
    'sloprovisioning/symmetrix/{symId}/storagegroup/{storageGroupId}',
    SymId, StorageGroupId)

# Volumes
Api.volumeList = GET('sloprovisioning/symmetrix/{symId}/volume', SymId,
                     returns=pm.VolumeIterator)
Api.volumeGet = GET('sloprovisioning/symmetrix/{symId}/volume/{volumeId}',
                    SymId, VolumeId, returns=pm.Volume)
Api.volumeUpdate = PUT(
    'sloprovisioning/symmetrix/{symId}/volume/{volumeId}', SymId, VolumeId,
    json='EditVolumeParam', returns=jobOr(pm.Volume))
Api.volumeDelete = DELETE(
    'sloprovisioning/symmetrix/{symId}/volume/{volumeId}', SymId, VolumeId)

Api.iteratorPage = GET('common/Iterator/{iteratorId}/page', IteratorId,
                       returns=pm.VolumeResultList)
Api.iteratorDelete = DELETE('common/Iterator/{iteratorId}', IteratorId)

# Hosts and initiators
Api.hostList = GET('sloprovisioning/symmetrix/{symId}/host', SymId,
                   returns=pm.HostList)
Api.hostGet = GET('sloprovisioning/symmetrix/{symId}/host/{hostId}',
                  SymId, HostId, returns=pm.Host)
Api.hostCreate = POST('sloprovisioning/symmetrix/{symId}/host', SymId,
                      json='CreateHostParam', returns=pm.Host)
Api.hostUpdate = PUT('sloprovisioning/symmetrix/{symId}/host/{hostId}',
                     SymId, HostId, json='EditHostParam', returns=pm.Host)
Api.hostDelete = DELETE('sloprovisioning/symmetrix/{symId}/host/{hostId}',
                        SymId, HostId)

Api.initiatorList = GET('sloprovisioning/symmetrix/{symId}/initiator',
                        SymId, returns=pm.InitiatorList)
Api.initiatorGet = GET(
    'sloprovisioning/symmetrix/{symId}/initiator/{initiatorId}',
    SymId, InitiatorId, returns=pm.Initiator)

# Port groups
Api.portGroupList = GET('sloprovisioning/symmetrix/{symId}/portgroup',
                        SymId, returns=pm.PortGroupList)
Api.portGroupGet = GET(
    'sloprovisioning/symmetrix/{symId}/portgroup/{portGroupId}',
    SymId, PortGroupId, returns=pm.PortGroup)
Api.portGroupCreate = POST('sloprovisioning/symmetrix/{symId}/portgroup',
                           SymId, json='CreatePortGroupParam',
                           returns=pm.PortGroup)
Api.portGroupUpdate = PUT(
    'sloprovisioning/symmetrix/{symId}/portgroup/{portGroupId}',
    SymId, PortGroupId, json='EditPortGroupParam',
    returns=jobOr(pm.PortGroup))
Api.portGroupDelete = DELETE(
    'sloprovisioning/symmetrix/{symId}/portgroup/{portGroupId}',
    SymId, PortGroupId)

# Masking views
Api.maskingViewList = GET('sloprovisioning/symmetrix/{symId}/maskingview',
                          SymId, returns=pm.MaskingViewList)
Api.maskingViewGet = GET(
    'sloprovisioning/symmetrix/{symId}/maskingview/{maskingViewId}',
    SymId, MaskingViewId, returns=pm.MaskingView)
Api.maskingViewCreate = POST(
    'sloprovisioning/symmetrix/{symId}/maskingview', SymId,
    json='CreateMaskingViewParam', returns=jobOr(pm.MaskingView))
Api.maskingViewDelete = DELETE(
    'sloprovisioning/symmetrix/{symId}/maskingview/{maskingViewId}',
    SymId, MaskingViewId)
Api.maskingViewConnections = GET(
    'sloprovisioning/symmetrix/{symId}/maskingview/{maskingViewId}'
    '/connections', SymId, MaskingViewId,
    returns=pm.MaskingViewConnectionList)

# Remote replication
Api.rdfGroupGet = GET(
    'replication/symmetrix/{symId}/rdf_group/{rdfGroupNo}',
    SymId, RDFGroupNumber, returns=pm.RDFGroup)
Api.rdfDevicePairGet = GET(
    'replication/symmetrix/{symId}/rdf_group/{rdfGroupNo}/volume/{volumeId}',
    SymId, RDFGroupNumber, VolumeId, returns=pm.RDFDevicePair)
Api.rdfDevicePairCreate = POST(
    'replication/symmetrix/{symId}/rdf_group/{rdfGroupNo}/volume/{volumeId}',
    SymId, RDFGroupNumber, VolumeId, json='CreateRDFPair',
    returns=jobOr(pm.RDFDevicePairList))
Api.protectedStorageGroupGet = GET(
    'replication/symmetrix/{symId}/storagegroup/{storageGroupId}',
    SymId, StorageGroupId, returns=pm.RDFStorageGroup)
Api.storageGroupRDFGroupCreate = POST(
    'replication/symmetrix/{symId}/storagegroup/{storageGroupId}/rdf_group',
    SymId, StorageGroupId, json='CreateSGSRDF', returns=jobOr(pm.SGRDFInfo))
Api.storageGroupRDFGroupGet = GET(
    'replication/symmetrix/{symId}/storagegroup/{storageGroupId}'
    '/rdf_group/{rdfGroupNo}',
    SymId, StorageGroupId, RDFGroupNumber, returns=pm.SGRDFInfo)
Api.storageGroupRDFGroupModify = PUT(
    'replication/symmetrix/{symId}/storagegroup/{storageGroupId}'
    '/rdf_group/{rdfGroupNo}',
    SymId, StorageGroupId, RDFGroupNumber, json='ModifySGRDFGroup',
    returns=jobOr(dict))

# Snapshots
Api.snapshotCreate = POST(
    'replication/symmetrix/{symId}/snapshot/{snapId}', SymId, SnapshotName,
    json='CreateVolumesSnapshot', returns=jobOr(dict), private=True)
Api.snapshotModify = PUT(
    'replication/symmetrix/{symId}/snapshot/{snapId}', SymId, SnapshotName,
    json='ModifyVolumeSnapshot', returns=jobOr(dict), private=True)
Api.snapshotDelete = DELETE(
    'replication/symmetrix/{symId}/snapshot/{snapId}', SymId, SnapshotName,
    json='DeleteVolumeSnapshot', returns=jobOr(dict), private=True)
Api.snapVolumeList = GET(
    'replication/symmetrix/{symId}/volume', SymId,
    returns=pm.SymVolumeList, private=True)
Api.volumeSnapshotList = GET(
    'replication/symmetrix/{symId}/volume/{volumeId}/snapshot',
    SymId, VolumeId, returns=pm.SnapshotVolumeGeneration, private=True)
Api.volumeSnapshotGet = GET(
    'replication/symmetrix/{symId}/volume/{volumeId}/snapshot/{snapId}',
    SymId, VolumeId, SnapshotName, returns=pm.VolumeSnapshot, private=True)
Api.volumeSnapshotGenerationList = GET(
    'replication/symmetrix/{symId}/volume/{volumeId}/snapshot/{snapId}'
    '/generation',
    SymId, VolumeId, SnapshotName, returns=pm.VolumeSnapshotGenerations,
    private=True)
Api.volumeSnapshotGenerationGet = GET(
    'replication/symmetrix/{symId}/volume/{volumeId}/snapshot/{snapId}'
    '/generation/{generation}',
    SymId, VolumeId, SnapshotName, Generation,
    returns=pm.VolumeSnapshotGeneration, private=True)

# Performance metrics
Api.storageGroupMetrics = POST(
    'performance/StorageGroup/metrics', json='StorageGroupMetricsParam',
    returns=pm.StorageGroupMetricsIterator, versioned=False)
Api.volumeMetrics = POST(
    'performance/Volume/metrics', json='VolumeMetricsParam',
    returns=pm.VolumeMetricsIterator, versioned=False)

# Non-disruptive migration
Api.migrationEnvironmentCreate = POST(
    'migration/symmetrix/{symId}', SymId, json='CreateMigrationEnv',
    returns=pm.MigrationEnv)
Api.migrationEnvironmentDelete = DELETE(
    'migration/symmetrix/{symId}/environment/{remoteSymId}',
    SymId, RemoteSymId)
Api.migrationSessionCreate = POST(
    'migration/symmetrix/{symId}/{storageGroupId}', SymId, StorageGroupId,
    json='CreateMigrationEnv', returns=pm.MigrationSession)
Api.migrationStorageGroupList = GET(
    'migration/symmetrix/{symId}/storagegroup', SymId,
    returns=pm.MigrationStorageGroups)
Api.migrationStorageGroupCreate = POST(
    'migration/symmetrix/{symId}/storagegroup', SymId,
    json='CreateStorageGroupParam', returns=jobOr(pm.StorageGroup))
Api.migrationSessionGet = GET(
    'migration/symmetrix/{symId}/storagegroup/{storageGroupId}',
    SymId, StorageGroupId, returns=pm.MigrationSession)
Api.migrationSessionModify = PUT(
    'migration/symmetrix/{symId}/storagegroup/{storageGroupId}',
    SymId, StorageGroupId, json='ModifyMigrationSessionRequest',
    returns=pm.MigrationSession)
