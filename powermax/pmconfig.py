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
""" PowerMax client configuration file parser. """


import os
import platform

import confget


DEFAULTS = {
    "PM_API_HOST": "127.0.0.1",
    "PM_API_PORT": "8443",
    "PM_API_VERSION": "100",
    "PM_API_USER": "",
    "PM_API_PASSWORD": "",
    "PM_API_INSECURE": "0",
    "PM_API_TIMEOUT": "120",
    "PM_ALLOWED_ARRAYS": "",
    "PM_JOB_POLL_INTERVAL": "3",
    "PM_JOB_TIMEOUT": "90",
    "PM_JOB_BENIGN_MESSAGES":
        "already in desired state,already in the requested state",
    "PM_LOG_LEVEL": "WARNING",
}


class PMConfigException(Exception):
    """ An error that occurred during the configuration parsing. """


class PMConfig(object):
    """ A representation of the PowerMax client configuration settings.

    When constructed, an object of this class will look for the
    configuration files, parse them, and store the obtained
    variables and values into its internal dictionary.
    The object may later be accessed as a dictionary. """

    PATH_CONFIG = '/etc/powermax.conf'
    PATH_CONFIG_DIR = '/etc/powermax.conf.d'

    def __init__(self, section=None, missing_ok=False):
        self._dict = dict()
        self._section = section
        self.run_confget(missing_ok=missing_ok)

    @classmethod
    def get_config_files(cls, missing_ok=False):
        """ Return the configuration files present on the system. """
        to_check = [cls.PATH_CONFIG]
        if os.path.isdir(cls.PATH_CONFIG_DIR):
            to_check.extend([
                os.path.join(cls.PATH_CONFIG_DIR, fname)
                for fname in sorted(os.listdir(cls.PATH_CONFIG_DIR))
                if fname.endswith(".conf") and not fname.startswith(".")
            ])

        if not missing_ok:
            return to_check
        return [path for path in to_check if os.path.isfile(path)]

    @classmethod
    def _read_file(cls, fname):
        ini = confget.BACKENDS['ini']
        try:
            cfg = confget.Config([], filename=fname)
            return ini(cfg).read_file()
        except Exception as exc:
            raise PMConfigException(
                'Could not parse the {fname} PowerMax configuration '
                'file: {exc}'
                .format(fname=fname, exc=exc))

    def run_confget(self, missing_ok=False):
        """ Parse the configuration files, later ones taking precedence. """
        if self._section is not None:
            section = self._section
        else:
            section = platform.node()
        sections = ['', section]
        res = dict(DEFAULTS)

        for fname in self.get_config_files(missing_ok=missing_ok):
            raw = self._read_file(fname)
            for section in sections:
                res.update(raw.get(section, {}))

        self._dict = res

    def __getitem__(self, key):
        return self._dict[key]

    def get(self, key, defval=None):
        """ Return value of the specified configuration variable. """
        return self._dict.get(key, defval)

    def getint(self, key):
        """ Return the value of a numeric configuration variable. """
        value = self._dict[key]
        try:
            return int(value)
        except ValueError:
            raise PMConfigException(
                'Invalid numeric value for {key}: {value!r}'
                .format(key=key, value=value))

    def getbool(self, key):
        """ Return the value of a yes/no configuration variable. """
        return self._dict.get(key, '').strip().lower() in (
            '1', 'yes', 'true', 'on')

    def __iter__(self):
        return iter(self._dict)

    def items(self):
        """ Return a list of the configuration var/value pairs. """
        return self._dict.items()

    def keys(self):
        """ Return a list of the configuration variable names. """
        return self._dict.keys()

    def update(self, values):
        """ Override some of the configuration values, e.g. from the
        process environment. """
        self._dict.update(values)
