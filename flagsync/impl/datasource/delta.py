"""
Decoding of stream and poll payloads, and application of the decoded data to the store.

Every parse function raises :class:`flagsync.impl.util.InvalidDataError` for a payload that is
not valid JSON or does not have the expected shape, before anything has been written to the store.
"""

import json
from collections import namedtuple
from typing import Any, Dict, Mapping, Optional

from flagsync.impl.util import InvalidDataError, log
from flagsync.interfaces import DataSourceUpdateSink, ItemDescriptor
from flagsync.versioned_data_kind import (ALL_KINDS, FEATURES, SEGMENTS,
                                          VersionedDataKind)

ParsedPath = namedtuple('ParsedPath', ['kind', 'key'])

PatchData = namedtuple('PatchData', ['path', 'item'])
DeleteData = namedtuple('DeleteData', ['path', 'version'])

AllData = Dict[VersionedDataKind, Dict[str, ItemDescriptor]]

# the names of the two collections in a full data set, as they appear on the wire
_COLLECTION_NAMES = {FEATURES: 'flags', SEGMENTS: 'segments'}


def parse_path(path: str) -> Optional[ParsedPath]:
    """
    Matches a ``patch`` or ``delete`` path against the known ``/flags/<key>`` and
    ``/segments/<key>`` shapes. Anything else, including a known prefix with an empty key, returns
    None: such events are meant for newer clients and are skipped.
    """
    for kind in ALL_KINDS:
        prefix = kind.stream_api_path
        if path.startswith(prefix):
            key = path[len(prefix):]
            return ParsedPath(kind=kind, key=key) if key else None
    return None


def _load(data: Any) -> Any:
    if isinstance(data, (str, bytes)):
        try:
            return json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidDataError("malformed JSON: %s" % e) from e
    return data


def _require_dict(value: Any, what: str) -> dict:
    if not isinstance(value, dict):
        raise InvalidDataError("expected %s to be an object" % what)
    return value


def _decode_item(kind: VersionedDataKind, data: Any) -> ItemDescriptor:
    try:
        item = kind.decode(data)
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidDataError("invalid %s item: %s" % (kind.namespace, e)) from e
    if item.deleted:
        return ItemDescriptor.deleted_item(item.version)
    return ItemDescriptor(item.version, item)


def parse_all_data(data: Any) -> AllData:
    """
    Decodes a full data set in the ``{"flags": {...}, "segments": {...}}`` shape returned by the
    polling endpoint. A missing collection is treated as empty.
    """
    payload = _require_dict(_load(data), "data set")
    all_data = {}
    for kind, name in _COLLECTION_NAMES.items():
        items = _require_dict(payload.get(name, {}), "'%s'" % name)
        all_data[kind] = {key: _decode_item(kind, item) for key, item in items.items()}
    return all_data


def parse_put_data(data: Any) -> AllData:
    """
    Decodes the body of a stream ``put`` event, ``{"data": {"flags": {...}, "segments": {...}}}``.
    """
    payload = _require_dict(_load(data), "put event")
    if 'data' not in payload:
        raise InvalidDataError("put event has no data")
    return parse_all_data(payload['data'])


def _parse_event_path(payload: dict, event_name: str) -> str:
    path = payload.get('path')
    if not isinstance(path, str):
        raise InvalidDataError("%s event has no valid path" % event_name)
    return path


def parse_patch_data(data: Any) -> PatchData:
    """
    Decodes the body of a stream ``patch`` event, ``{"path": "/flags/<key>", "data": {...}}``. The
    item is returned undecoded, because only a recognized path says what kind of item it is.
    """
    payload = _require_dict(_load(data), "patch event")
    path = _parse_event_path(payload, 'patch')
    if 'data' not in payload:
        raise InvalidDataError("patch event has no data")
    return PatchData(path=path, item=payload['data'])


def parse_delete_data(data: Any) -> DeleteData:
    """
    Decodes the body of a stream ``delete`` event, ``{"path": "/flags/<key>", "version": 2}``.
    """
    payload = _require_dict(_load(data), "delete event")
    path = _parse_event_path(payload, 'delete')
    version = payload.get('version')
    if isinstance(version, bool) or not isinstance(version, int):
        raise InvalidDataError("delete event has no valid version")
    return DeleteData(path=path, version=version)


class DeltaApplier:
    """
    Turns decoded payloads into calls on a :class:`flagsync.interfaces.DataSourceUpdateSink`.

    Store failures are not handled here: the sink raises
    :class:`flagsync.impl.util.StoreUpdateError` and it propagates to the data source.
    """

    def __init__(self, sink: DataSourceUpdateSink):
        self.__sink = sink

    def apply_put(self, all_data: Mapping[VersionedDataKind, Mapping[str, ItemDescriptor]]):
        log.debug("Received put with %d flags and %d segments", len(all_data.get(FEATURES, {})), len(all_data.get(SEGMENTS, {})))
        self.__sink.init(all_data)

    def apply_patch(self, patch: PatchData) -> bool:
        """
        :return: True if the store was changed
        """
        target = parse_path(patch.path)
        if target is None:
            log.warning("Patch for unknown path: %s", patch.path)
            return False
        item = _decode_item(target.kind, patch.item)
        log.debug("Received patch for %s, new version: [%d]", patch.path, item.version)
        return self.__sink.upsert(target.kind, target.key, item)

    def apply_delete(self, delete: DeleteData) -> bool:
        """
        :return: True if the store was changed
        """
        target = parse_path(delete.path)
        if target is None:
            log.warning("Delete for unknown path: %s", delete.path)
            return False
        log.debug("Received delete for %s, new version: [%d]", delete.path, delete.version)
        return self.__sink.upsert(target.kind, target.key, ItemDescriptor.deleted_item(delete.version))
