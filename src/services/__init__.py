"""External service clients for the calendar engine.

Services are remote stay record stores reached over the network.
"""

from services.rest_store import RestStayStore

__all__ = [
    "RestStayStore",
]
