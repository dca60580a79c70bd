"""Internal constants shared across the library."""

BASE_URL = "http://localhost:3000"
API_PATH = "/api/state"
HEALTH_PATH = "/api/health"
SOCKET_SUFFIX = "/ws"
STREAM_SUFFIX = "/events"
USER_AGENT = "junctionsync/1"

#: Writer id for documents that were not produced by a participant.
SYSTEM_WRITER = "system"

DEFAULT_POLLING_INTERVAL_MS = 5000
DEFAULT_RECONNECT_DELAY = 5.0
DEFAULT_REQUEST_TIMEOUT = 10.0

POLES: tuple[str, ...] = ("P1", "P2", "P3", "P4")
BOARD_SUFFIXES: tuple[str, ...] = ("A", "B")


def boards_for_pole(pole: str) -> tuple[str, ...]:
    """Controller boards driving one pole (``P1`` -> ``P1A``, ``P1B``)."""
    return tuple(f"{pole}{suffix}" for suffix in BOARD_SUFFIXES)
