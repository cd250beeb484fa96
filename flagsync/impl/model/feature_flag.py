from typing import List

from flagsync.impl.model.entity import *


class FeatureFlag(ModelEntity):
    __slots__ = ['_data', '_key', '_version', '_deleted', '_prerequisite_keys']

    def __init__(self, data: dict):
        super().__init__(data)
        # Only the properties whose types matter to synchronization are checked here; the rest of
        # the flag is carried through to the store untouched.
        self._prerequisite_keys: List[str] = []
        if self._deleted:
            return
        opt_type(data, 'on', bool)
        opt_list(data, 'variations')
        opt_dict_list(data, 'targets')
        opt_dict_list(data, 'contextTargets')
        opt_dict_list(data, 'rules')
        for prereq in opt_dict_list(data, 'prerequisites'):
            self._prerequisite_keys.append(req_str(prereq, 'key'))

    @property
    def prerequisite_keys(self) -> List[str]:
        return self._prerequisite_keys
