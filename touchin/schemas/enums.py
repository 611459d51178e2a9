from enum import Enum

class SpeedClass(str, Enum):
    unknown = "unknown"
    slow = "slow"
    fast = "fast"
