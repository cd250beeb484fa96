"""
This submodule contains the default in-memory implementation of the data store, and the ordering
logic used when a full data set is written to any store.

Persistent storage backends are not part of this package; they implement the same
:class:`flagsync.interfaces.FeatureStore` interface.
"""

from collections import OrderedDict, defaultdict
from typing import Dict, Mapping

from flagsync.impl.rwlock import ReadWriteLock
from flagsync.impl.util import log
from flagsync.interfaces import (DiagnosticDescription, FeatureStore,
                                 ItemDescriptor)
from flagsync.versioned_data_kind import VersionedDataKind


class InMemoryFeatureStore(FeatureStore, DiagnosticDescription):
    """The default store implementation, which holds all data in a thread-safe data structure in memory.
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._initialized = False
        self._items: Dict[VersionedDataKind, Dict[str, ItemDescriptor]] = defaultdict(dict)

    def get(self, kind, key):
        with self._lock.read():
            item = self._items[kind].get(key)
            if item is None:
                log.debug("Attempted to get missing key %s in '%s', returning None", key, kind.namespace)
            return item

    def all(self, kind):
        with self._lock.read():
            return dict(self._items[kind])

    def init(self, all_data):
        with self._lock.write():
            self._items.clear()
            for kind, items in all_data.items():
                self._items[kind] = dict(items)
                log.debug("Initialized '%s' store with %d items", kind.namespace, len(items))
            self._initialized = True

    def upsert(self, kind, key, item):
        with self._lock.write():
            items_of_kind = self._items[kind]
            old = items_of_kind.get(key)
            if old is not None and old.version >= item.version:
                return False
            items_of_kind[key] = item
            log.debug("Updated %s in '%s' to version %d%s", key, kind.namespace, item.version, " (deleted)" if item.deleted else "")
            return True

    @property
    def initialized(self) -> bool:
        with self._lock.read():
            return self._initialized

    def is_monitoring_enabled(self) -> bool:
        return False

    def describe_configuration(self, config):
        return 'memory'


class _FeatureStoreDataSetSorter:
    """
    Implements a dependency graph ordering for data to be stored in a feature store. We must use this
    on every data set that will be passed to the feature store's init() method.
    """

    @staticmethod
    def sort_all_collections(all_data: Mapping[VersionedDataKind, Mapping[str, ItemDescriptor]]):
        """Returns a copy of the input data that has the following guarantees: the iteration order of the outer
        dictionary will be in ascending order by the kind's ``priority``, and for each kind that has a
        ``get_dependency_keys`` function, the inner dictionary will have an iteration order where B is before
        A if A has a dependency on B.
        """
        outer_hash = OrderedDict()
        for kind in sorted(all_data.keys(), key=lambda k: k.priority):
            outer_hash[kind] = _FeatureStoreDataSetSorter._sort_collection(kind, all_data[kind])
        return outer_hash

    @staticmethod
    def _sort_collection(kind, input):
        dependency_fn = kind.get_dependency_keys
        if dependency_fn is None or len(input) == 0:
            return input
        remaining_items = OrderedDict(input)
        items_out = OrderedDict()
        while len(remaining_items) > 0:
            key = next(iter(remaining_items))
            _FeatureStoreDataSetSorter._add_with_dependencies_first(key, dependency_fn, remaining_items, items_out)
        return items_out

    @staticmethod
    def _add_with_dependencies_first(key, dependency_fn, remaining_items, items_out):
        descriptor = remaining_items.pop(key)  # we won't need to visit this item again
        if descriptor.item is not None:
            for dep_key in dependency_fn(descriptor.item):
                if dep_key in remaining_items:
                    _FeatureStoreDataSetSorter._add_with_dependencies_first(dep_key, dependency_fn, remaining_items, items_out)
        items_out[key] = descriptor
