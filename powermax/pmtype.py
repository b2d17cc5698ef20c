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
""" Type definition and validation functions. """

import collections
import inspect
import re

from . import pmjson as js
from .pmerror import ValidationError


PmType = collections.namedtuple('PmType', [
    'name',
    'handleVal',
    'defaultVal',
])


def error(fmt, **kwargs):
    """ Raise a validation error with a formatted message. """
    raise ValidationError(fmt.format(**kwargs))


def pmList(lst):
    assert len(lst) == 1, "PmList :: [subType]"
    subType = pmType(lst[0])
    valT = subType.handleVal
    name = "[{0}]".format(subType.name)

    def buildList(xs):
        if not isinstance(xs, (list, tuple, set, frozenset)):
            error("{name}: expected a list, got {value!r}",
                  name=name, value=xs)
        return [valT(x) for x in xs]

    return PmType(name, buildList, lambda: [])


def pmDict(dct):
    assert len(dct) == 1, "PmDict :: {keyType: valueType}"
    keySt, valSt = [pmType(tp) for tp in list(dct.items())[0]]
    name = "{{{0}: {1}}}".format(keySt.name, valSt.name)

    def buildDict(xs):
        return dict(
            (keySt.handleVal(key), valSt.handleVal(val))
            for key, val in xs.items())

    return PmType(name, buildDict, lambda: {})


def maybe(val):
    subType = pmType(val)

    def validate(val):
        """Validate the supplied value, possibly None."""
        if val is None:
            return None
        return subType.handleVal(val)

    return PmType("Optional({0})".format(subType.name), validate,
                  lambda: None)


def pmTypeFun(argName, validator):
    return PmType(argName, validator,
                  lambda: error("No default value for {argName}",
                                argName=argName))


def regex(argName, regex):
    _regex = re.compile(regex)

    def validator(string):
        if string is None:
            error('No {argName} specified', argName=argName)

        string = str(string)
        if not _regex.match(string):
            error('Invalid {argName} "{argVal}". Must match {regex}',
                  argName=argName, argVal=string, regex=regex)
        return string

    return pmTypeFun(argName, validator)


def oneOf(argName, *accepted):
    accepted = list(accepted)
    _accepted = frozenset(accepted)

    def validator(value):
        if value not in _accepted:
            error("Invalid {argName}: {value}. Must be one of {accepted}",
                  argName=argName, value=value, accepted=accepted)
        return value

    return pmTypeFun(argName, validator)


def intRange(argName, min, max):
    def validator(i):
        try:
            i = int(i)
        except (TypeError, ValueError):
            error('Invalid {argName}. Must be an integer', argName=argName)

        if i < min or i > max:
            error('Invalid {argName}. Must be between {min} and {max}',
                  argName=argName, min=min, max=max)
        return i

    return pmTypeFun(argName, validator)


def nameValidator(argName, regex, size):
    _regex = re.compile(regex)

    def validator(name):
        if name is None:
            error('No {argName} specified', argName=argName)

        name = str(name)
        if not _regex.match(name):
            error('Invalid {argName} "{argVal}". Must match {regex}',
                  argName=argName, argVal=name, regex=regex)
        elif len(name) > size:
            error('{argName} is too long. Max allowed is {max}',
                  argName=argName, max=size)
        return name

    return pmTypeFun(argName, validator)


def _scalar(tp):
    def validator(val):
        if isinstance(val, tp):
            return val
        try:
            return tp(val)
        except (TypeError, ValueError):
            error('Invalid {type} value {val!r}', type=tp.__name__, val=val)

    return validator


def _boolean(val):
    if isinstance(val, str):
        return val.strip().lower() in ('1', 'true', 'yes')
    return bool(val)


pmTypes = {
    list: pmList,
    dict: pmDict,
}

pmScalarTypes = {
    bool: _boolean,
    int: _scalar(int),
    float: _scalar(float),
    str: _scalar(str),
}


def pmTypeVal(val):
    subType = pmType(type(val))
    return PmType("{0}, default={1}".format(subType.name, js.dumps(val)),
                  subType.handleVal, lambda: val)


def pmType(tp):
    if isinstance(tp, PmType):
        return tp
    elif inspect.isclass(tp) or inspect.isfunction(tp):
        handle = pmScalarTypes.get(tp, tp)
        return PmType(tp.__name__, handle,
                      lambda: error("No default value for {type}",
                                    type=tp.__name__))
    else:
        for _type, _pmType in pmTypes.items():
            if isinstance(tp, _type):
                return _pmType(tp)
        else:
            return pmTypeVal(tp)


class JsonObject(object):
    """ Turn a class into a JSON value object with the specified attributes.

    Any keys of the source JSON that are not declared are ignored, so that
    responses of newer Unisphere versions may still be parsed. """

    def __init__(self, **kwargs):
        self.attrDefs = dict(
            (argName, pmType(argVal))
            for argName, argVal in kwargs.items())

    def __call__(self, cls):
        if issubclass(cls, js.ValueObject):
            attrDefs = dict(cls.__jsonAttrDefs__)
            attrDefs.update(self.attrDefs)
        else:
            attrDefs = self.attrDefs

        _doc = cls.__doc__ or "{0}.{1}".format(cls.__module__, cls.__name__)
        _doc += "\n\n    JSON attributes:\n"
        for attrName, attrType in sorted(attrDefs.items()):
            _doc += "        {name}: {type}\n".format(
                name=attrName, type=attrType.name)

        return type(cls.__name__, (cls, js.ValueObject),
                    dict(__jsonAttrDefs__=attrDefs, __module__=cls.__module__,
                         __doc__=_doc))
