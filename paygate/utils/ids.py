"""Random identifiers for files, entries, events and idempotency keys"""

import uuid


def new_id() -> str:
    return uuid.uuid4().hex
