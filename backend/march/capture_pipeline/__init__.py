from .deduplicator import store_capture
from .dispatcher import CaptureFailure, dispatch, select_agent
from .fingerprint import md5sum
from .resolver import Outcome, Resolution, resolve, resolve_path
