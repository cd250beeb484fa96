from flagsync.impl.model.entity import *


class Segment(ModelEntity):
    __slots__ = ['_data', '_key', '_version', '_deleted']

    def __init__(self, data: dict):
        super().__init__(data)
        if self._deleted:
            return
        opt_str_list(data, 'included')
        opt_str_list(data, 'excluded')
        opt_dict_list(data, 'includedContexts')
        opt_dict_list(data, 'excludedContexts')
        opt_dict_list(data, 'rules')
