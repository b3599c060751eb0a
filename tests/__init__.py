# This file makes tests a Python package

# Narrowly targeted warning filters for known upstream/library warnings.
import warnings as _warnings

# uvicorn's websockets implementation (imported by the OAuth callback listener)
_warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    message=r".*websockets\.legacy is deprecated.*",
)
_warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    message=r".*websockets\.server\.WebSocketServerProtocol is deprecated.*",
)
