from typing import Optional

import redis.asyncio as redis

from timesync.db.core import DocumentStore

# Global runtime state initialized in lifespan.setup_resources
redis_client: Optional[redis.Redis] = None
document_store: Optional[DocumentStore] = None
