from .entity import ModelEntity
from .feature_flag import FeatureFlag
from .segment import Segment
