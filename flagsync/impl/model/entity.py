import json
from typing import Any, List

# FeatureFlag and Segment subclass ModelEntity. Each constructor type-checks only the properties
# that synchronization depends on, so a malformed item is rejected when it is decoded instead of
# being written to the store. The original dict is kept so the item serializes back unchanged.


def _invalid(message: str, *args) -> ValueError:
    return ValueError('error in flag/segment data: ' + (message % args))


def opt_type(data: dict, name: str, desired_type) -> Any:
    value = data.get(name)
    if value is None or isinstance(value, desired_type):
        return value
    raise _invalid('property "%s" should be %s but was %s', name, desired_type.__name__, type(value).__name__)


def opt_bool(data: dict, name: str) -> bool:
    return opt_type(data, name, bool) is True


def opt_list(data: dict, name: str) -> list:
    value = opt_type(data, name, list)
    return [] if value is None else value


def validate_list_type(items: list, name: str, desired_type) -> list:
    bad = [item for item in items if not isinstance(item, desired_type)]
    if bad:
        raise _invalid('property "%s" should hold only %s but contained %s', name, desired_type.__name__, type(bad[0]).__name__)
    return items


def opt_dict_list(data: dict, name: str) -> list:
    return validate_list_type(opt_list(data, name), name, dict)


def opt_str_list(data: dict, name: str) -> List[str]:
    return validate_list_type(opt_list(data, name), name, str)


def req_type(data: dict, name: str, desired_type) -> Any:
    value = opt_type(data, name, desired_type)
    if value is None:
        raise _invalid('required property "%s" is missing', name)
    return value


def req_str(data: dict, name: str) -> str:
    return req_type(data, name, str)


def req_int(data: dict, name: str) -> int:
    # bool is a subclass of int
    value = req_type(data, name, int)
    if isinstance(value, bool):
        raise _invalid('property "%s" should be int but was bool', name)
    return value


class ModelEntity:
    """
    Base class for decoded flags and segments: the required ``key`` and ``version``, the optional
    ``deleted`` marker, and dict-style read access to the raw JSON properties.
    """

    def __init__(self, data: dict):
        if not isinstance(data, dict):
            raise _invalid('expected an object but got %s', type(data).__name__)
        self._data = data
        self._key = req_str(data, 'key')
        self._version = req_int(data, 'version')
        self._deleted = opt_bool(data, 'deleted')

    @property
    def key(self) -> str:
        return self._key

    @property
    def version(self) -> int:
        return self._version

    @property
    def deleted(self) -> bool:
        return self._deleted

    def to_json_dict(self) -> dict:
        return self._data

    def get(self, attribute, default=None) -> Any:
        return self._data.get(attribute, default)

    def __getitem__(self, attribute) -> Any:
        return self._data[attribute]

    def __contains__(self, attribute) -> bool:
        return attribute in self._data

    def __eq__(self, other) -> bool:
        return type(self) is type(other) and self._data == other._data

    def __repr__(self) -> str:
        return '%s(%s)' % (type(self).__name__, json.dumps(self._data, separators=(',', ':')))
