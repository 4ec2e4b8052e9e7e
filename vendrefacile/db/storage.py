from typing import Optional

from sqlalchemy.orm import Session


class StorageGateway:
    """
    Pair of sessions handed to services.

    `write` talks to the primary and is the only source for read-after-write
    checks. `read` may point at a lagging replica and is used for plain
    listing/browsing queries. When no replica is configured both attributes
    are the same session.
    """

    def __init__(self, write: Session, read: Optional[Session] = None):
        self.write = write
        self.read = read if read is not None else write
