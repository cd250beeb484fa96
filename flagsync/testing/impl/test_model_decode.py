import pytest

from flagsync.impl.model import FeatureFlag, Segment
from flagsync.testing.builders import FlagBuilder, SegmentBuilder
from flagsync.versioned_data_kind import FEATURES, SEGMENTS


def test_flag_exposes_key_version_and_prerequisites():
    flag = FlagBuilder('a').version(3).prerequisite('b', 0).prerequisite('c', 1).build()
    assert flag.key == 'a'
    assert flag.version == 3
    assert flag.deleted is False
    assert flag.prerequisite_keys == ['b', 'c']


def test_flag_keeps_unrecognized_properties():
    data = {'key': 'a', 'version': 1, 'somethingNew': {'x': 1}}
    flag = FEATURES.decode(data)
    assert flag['somethingNew'] == {'x': 1}
    assert flag.to_json_dict() == data


def test_decode_passes_through_decoded_items():
    segment = SegmentBuilder('s').build()
    assert SEGMENTS.decode(segment) is segment


def test_deleted_flag_is_not_validated_further():
    flag = FeatureFlag({'key': 'a', 'version': 2, 'deleted': True, 'rules': 'garbage'})
    assert flag.deleted is True
    assert flag.prerequisite_keys == []


@pytest.mark.parametrize('data', [
    'not an object',
    {'version': 1},
    {'key': 1, 'version': 1},
    {'key': 'a'},
    {'key': 'a', 'version': '1'},
    {'key': 'a', 'version': True},
    {'key': 'a', 'version': 1, 'on': 'yes'},
    {'key': 'a', 'version': 1, 'rules': {}},
    {'key': 'a', 'version': 1, 'prerequisites': [{'variation': 0}]},
])
def test_malformed_flag_is_rejected(data):
    with pytest.raises(ValueError):
        FeatureFlag(data)


@pytest.mark.parametrize('data', [
    {'key': 's', 'version': 1, 'included': 'a'},
    {'key': 's', 'version': 1, 'excluded': [1]},
    {'key': 's', 'version': 1, 'rules': ['x']},
])
def test_malformed_segment_is_rejected(data):
    with pytest.raises(ValueError):
        Segment(data)


def test_entities_compare_by_data():
    assert FlagBuilder('a').build() == FlagBuilder('a').build()
    assert FlagBuilder('a').build() != FlagBuilder('a').version(2).build()
    assert FlagBuilder('a').build() != SegmentBuilder('a').build()
