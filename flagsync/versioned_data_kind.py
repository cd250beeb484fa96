"""
This submodule defines the two kinds of data that the data sources keep synchronized.

A store implementation receives a :class:`VersionedDataKind` as the ``kind`` parameter of every
operation; its ``namespace`` property tells the store which collection is being referenced. Stores
should treat the items themselves as opaque, apart from their key and version.
"""

from typing import Any, Callable, Iterable, Optional

from flagsync.impl.model import FeatureFlag, ModelEntity, Segment


class VersionedDataKind:
    def __init__(
        self,
        namespace: str,
        stream_api_path: str,
        decoder: Callable[[dict], ModelEntity],
        priority: int,
        get_dependency_keys: Optional[Callable[[Any], Iterable[str]]] = None,
    ):
        self._namespace = namespace
        self._stream_api_path = stream_api_path
        self._decoder = decoder
        self._priority = priority
        self._get_dependency_keys = get_dependency_keys

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def stream_api_path(self) -> str:
        """
        The prefix of ``patch`` and ``delete`` event paths that refer to this kind, for instance
        ``/flags/``.
        """
        return self._stream_api_path

    @property
    def priority(self) -> int:
        """
        Kinds with a lower priority are written first when a full data set is stored, so that
        anything a flag depends on is present before the flag itself.
        """
        return self._priority

    @property
    def get_dependency_keys(self) -> Optional[Callable[[Any], Iterable[str]]]:
        return self._get_dependency_keys

    def decode(self, data: Any) -> ModelEntity:
        if isinstance(data, ModelEntity):
            return data
        return self._decoder(data)

    def __repr__(self) -> str:
        return self._namespace


FEATURES = VersionedDataKind(
    namespace="features",
    stream_api_path="/flags/",
    decoder=FeatureFlag,
    priority=1,
    get_dependency_keys=lambda flag: flag.prerequisite_keys,
)

SEGMENTS = VersionedDataKind(namespace="segments", stream_api_path="/segments/", decoder=Segment, priority=0)

ALL_KINDS = [FEATURES, SEGMENTS]
