"""
The flagsync module keeps a local store of feature flags and segments synchronized with the
flag delivery service, by streaming or by polling, and reports the health of that process.
"""

from flagsync.config import Config, HTTPConfig
from flagsync.feature_store import InMemoryFeatureStore
from flagsync.impl.datasystem import DataSystem
from flagsync.impl.util import log
from flagsync.interfaces import (DataSourceErrorInfo, DataSourceErrorKind,
                                 DataSourceState, DataSourceStatus,
                                 DataStoreStatus, FeatureStore,
                                 ItemDescriptor)
from flagsync.version import VERSION
from flagsync.versioned_data_kind import FEATURES, SEGMENTS

__version__ = VERSION

__all__ = [
    'Config',
    'HTTPConfig',
    'DataSystem',
    'FeatureStore',
    'InMemoryFeatureStore',
    'ItemDescriptor',
    'DataSourceState',
    'DataSourceErrorKind',
    'DataSourceErrorInfo',
    'DataSourceStatus',
    'DataStoreStatus',
    'FEATURES',
    'SEGMENTS',
    'log',
]
