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
""" JSON encoding of Unisphere request bodies and of the PowerMax value
objects built from the responses. """

import logging

try:
    import simplejson as js
except ImportError:
    logging.getLogger(__name__).warning(
        'simplejson unavailable, fall-back to standard python json')
    import json as js


loads = js.loads  # pylint: disable=invalid-name

JSONDecodeError = getattr(js, 'JSONDecodeError', ValueError)


def compact(data):
    """ Drop the unset (None) members of a request body or query, at any
    depth; Unisphere rejects explicit nulls in most payloads. """
    if isinstance(data, ValueObject):
        data = data.to_json()

    if isinstance(data, dict):
        return dict((key, compact(value))
                    for key, value in data.items() if value is not None)
    if isinstance(data, (list, set, tuple)):
        return [compact(item) for item in data if item is not None]
    return data


def dumps(obj, indent=None):
    """ Serialize compactly, or indented for human consumption. """
    separators = (',', ':') if indent is None else (',', ': ')
    return js.dumps(obj, cls=JsonEncoder, indent=indent,
                    separators=separators)


class JsonEncoder(js.JSONEncoder):
    """ Serialize value objects and sets of identifiers. """

    def default(self, o):
        # pylint: disable=method-hidden
        if isinstance(o, ValueObject):
            return o.to_json()
        if isinstance(o, set):
            return sorted(o)
        return super(JsonEncoder, self).default(o)


class ValueObject(object):
    """ Base class of the records built by pmtype.JsonObject. """

    __jsonAttrDefs__ = {}

    def __new__(cls, json=None, **kwargs):
        if isinstance(json, cls):
            assert not kwargs, "cannot update an already built value object"
            return json

        src = dict(json) if json is not None else {}
        src.update(kwargs)

        self = super(ValueObject, cls).__new__(cls)
        values = {}
        for attr, attrDef in self.__jsonAttrDefs__.items():
            if src.get(attr) is None:
                values[attr] = attrDef.defaultVal()
            else:
                values[attr] = attrDef.handleVal(src[attr])
        object.__setattr__(self, '__jsonAttrs__', values)
        return self

    def _noAttr(self, attr):
        return AttributeError("'{cls}' has no attribute '{attr}'".format(
            cls=type(self).__name__, attr=attr))

    def __getattr__(self, attr):
        try:
            return self.__jsonAttrs__[attr]
        except KeyError:
            raise self._noAttr(attr) from None

    def __setattr__(self, attr, value):
        attrDef = self.__jsonAttrDefs__.get(attr)
        if attrDef is None:
            raise self._noAttr(attr)
        self.__jsonAttrs__[attr] = attrDef.handleVal(value)

    def __eq__(self, other):
        if not isinstance(other, ValueObject):
            return NotImplemented
        return self.to_json() == other.to_json()

    __hash__ = None

    def to_json(self):
        return dict((attr, self.__jsonAttrs__[attr])
                    for attr in self.__jsonAttrDefs__)

    def __repr__(self):
        return "{cls}({attrs})".format(
            cls=type(self).__name__,
            attrs=", ".join("{0}={1!r}".format(attr, value) for attr, value
                            in sorted(self.to_json().items())
                            if value is not None))

    __str__ = __repr__
