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
""" A non-interactive command-line interface to the Unisphere REST API. """

import argparse
import io
import json
import logging
import os
import sys

from powermax import pmapi, pmconfig
from powermax import pmjson as js
from powermax.pmerror import NotFoundError, PowerMaxError


LOG = logging.getLogger(__name__)


def deep_to_json(data):
    """ Convert an API reply to serializable data. """
    if getattr(data, 'to_json', None) is not None:
        return deep_to_json(data.to_json())
    if isinstance(data, list):
        return [deep_to_json(obj) for obj in data]
    if isinstance(data, dict):
        return dict((name, deep_to_json(value))
                    for name, value in data.items())
    return data


def config_with_overrides():
    """ Read the PowerMax configuration files and override any of their
    variables that are also set in the environment. """
    cfg = pmconfig.PMConfig(missing_ok=True)
    overrides = {}
    for name in cfg.keys():
        value = os.environ.get(name, None)
        if value is not None:
            overrides[name] = value
    cfg.update(overrides)
    return cfg


def err_exit(name, descr, **args):
    """ Output an error in JSON form to the standard error stream and exit. """
    err = {
        'error': {
            'transient': False,
            'name': name,
            'descr': descr,
        },
    }
    err['error'].update(args)
    sys.exit(json.dumps(err, indent=2))


def parse_args(argv=None):
    """ Parse the command-line arguments without letting the ArgumentParser
    write to the standard error stream; all errors go out as JSON. """
    parser = argparse.ArgumentParser(
        prog='powermax_req',
        description='Unisphere for PowerMax non-interactive CLI',
    )
    parser.add_argument('-N', '--noop', action='store_true',
                        help='No-operation mode')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Log the requests to the standard error stream')
    parser.add_argument('--json', type=str,
                        help='JSON payload to send to the API')
    parser.add_argument('--param', type=str, action='append', default=[],
                        metavar='NAME=VALUE',
                        help='A query parameter to add to the request')
    parser.add_argument('method', type=str.upper,
                        choices=('GET', 'POST', 'PUT', 'DELETE'),
                        help='The HTTP method to use')
    parser.add_argument('query', type=str,
                        help='The query path template, e.g. '
                             'sloprovisioning/symmetrix/{symId}/volume')
    parser.add_argument('args', type=str, nargs='*',
                        help='Arguments to substitute into the path')

    errbuf = io.StringIO()
    orig_stderr = sys.stderr
    sys.stderr = errbuf
    try:
        args = parser.parse_args(argv)
    except SystemExit as ex_err:
        sys.stderr = orig_stderr
        if ex_err.code == 0:
            sys.exit(0)
        err_exit('cliParseArgs',
                 'Could not parse the command-line arguments',
                 parser_errors=errbuf.getvalue())
    finally:
        sys.stderr = orig_stderr

    return args


def parse_params(params):
    """ Turn a list of "name=value" strings into a dictionary. """
    res = {}
    for param in params:
        name, sep, value = param.partition('=')
        if not sep or not name:
            err_exit('cliInvalidParam',
                     'Query parameters must be specified as name=value',
                     param=param)
        res[name] = value
    return res


def setup_logging(cfg, verbose=False):
    level = 'DEBUG' if verbose else cfg.get('PM_LOG_LEVEL', 'WARNING')
    try:
        logging.basicConfig(
            level=level.upper(),
            format='%(asctime)s %(name)s %(levelname)s %(message)s')
    except ValueError:
        err_exit('cliInvalidLogLevel', 'Invalid PM_LOG_LEVEL value',
                 level=level)


def get_api_method(api, args):
    """ Find the API method with the specified HTTP method and query path.

    Validate the number of arguments passed and the presence of a JSON
    payload. """
    for name in dir(api):
        if name.startswith('_'):
            continue
        method = getattr(api, name, None)
        call = getattr(method, 'pmCall', None)
        if call is None:
            continue
        if call.query == args.query and call.method == args.method:
            break
    else:
        err_exit('cliUnknownQuery', 'Unknown API query',
                 method=args.method, query=args.query)

    if len(call.args) != len(args.args):
        err_exit('cliInvalidNumberOfArguments',
                 'Invalid number of arguments supplied',
                 supplied_count=len(args.args),
                 required_count=len(call.args),
                 required_names=call.argNames)

    json_req = call.json is not None
    if json_req and args.json is None:
        err_exit('cliJSONRequired',
                 'This method requires JSON data')
    elif args.json is not None and not json_req:
        err_exit('cliNoJSONRequired',
                 'This method does not require any JSON data')

    return method


def error_json(err):
    return {
        'error': {
            'transient': err.transient,
            'name': err.name,
            'descr': err.desc,
        },
    }


def main(argv=None):
    """ Main function: parse the arguments, make the call, report. """
    args = parse_args(argv)

    try:
        cfg = config_with_overrides()
    except pmconfig.PMConfigException as err:
        err_exit('cliConfig', str(err))
    setup_logging(cfg, args.verbose)

    try:
        api = pmapi.Api.fromConfig(cfg)
    except (KeyError, pmconfig.PMConfigException, PowerMaxError) as err:
        err_exit('cliInitAPI', str(err))

    method = get_api_method(api, args)
    method_args = list(args.args)
    if args.json is not None:
        try:
            method_args.append(json.loads(args.json))
        except ValueError as err:
            err_exit('cliInvalidJSON', str(err))
    method_kwargs = {'params': parse_params(args.param) or None}

    if args.noop:
        print('About to invoke {method} with {args}, {kwargs}'
              .format(method=method.__name__, args=repr(method_args),
                      kwargs=repr(method_kwargs)))
        return

    try:
        res = method(*method_args, **method_kwargs)
    except PowerMaxError as err:
        LOG.debug("%s %s failed: %s", args.method, args.query, err)
        print(json.dumps(error_json(err), indent=2), file=sys.stderr)
        sys.exit(3 if isinstance(err, NotFoundError) else 2)
    print(js.dumps(deep_to_json(res), indent=2))


if __name__ == '__main__':
    main()
