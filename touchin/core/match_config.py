# --------------------------------------------------
# ENCOUNTER DETECTION
# --------------------------------------------------

# Two users count as "near" inside this distance
PROXIMITY_RADIUS_METERS = 100.0

# Continuous contact needed before a peer becomes eligible
DWELL_THRESHOLD_SECONDS = 10 * 60

# Peers that have not published for this long are treated as gone
PEER_STALE_SECONDS = 2 * 60

# --------------------------------------------------
# SAMPLING
# --------------------------------------------------

# At or below walking pace the owner counts as "slow"
SLOW_SPEED_MPS = 1.6

# Accept a sample after this much movement ...
SAMPLE_MIN_DISTANCE_METERS = 5.0
# ... or after this much time
SAMPLE_MIN_INTERVAL_SECONDS = 3.0

# --------------------------------------------------
# PLACE LABEL
# --------------------------------------------------

# 3 decimals ~ 100m grid cells
PLACE_CELL_DECIMALS = 3
PLACE_MIN_INTERVAL_SECONDS = 3.0
PLACE_UNKNOWN_LABEL = "位置不明"

# --------------------------------------------------
# SELF WINDOW ("did I stay put")
# --------------------------------------------------

SELF_WINDOW_RADIUS_METERS = 20.0
SELF_WINDOW_MIN_SECONDS = 10 * 60
# Buffer keeps a little more than the minimum so the span can reach it
SELF_WINDOW_SPAN_SECONDS = 12 * 60

# --------------------------------------------------
# GEO INDEX
# --------------------------------------------------

GEOHASH_PRECISION = 10
DEFAULT_NEARBY_RADIUS_METERS = 100.0
