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
""" Utility functions and constants for the PowerMax API bindings. """


sec = 1.0


def uniq(items):
    """ Drop repeated items, keeping the order of their first appearance. """
    seen = set()
    res = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        res.append(item)
    return res


def parseList(value):
    """ Split a comma-separated configuration value, dropping blanks. """
    if not value:
        return []
    return [item.strip() for item in value.split(',') if item.strip()]
