"""Storage adapters for the prediction engine ports.

Modules:
    memory   - In-process stores (local cache, tests)
    postgres - asyncpg-backed stores for the remote database
"""

from src.cycles.stores.memory import (
    InMemoryPeriodStore,
    InMemoryPredictionStore,
    InMemorySettingsProvider,
)
from src.cycles.stores.postgres import (
    PostgresPeriodStore,
    PostgresPredictionStore,
    PostgresSettingsProvider,
)

__all__ = [
    "InMemoryPeriodStore",
    "InMemoryPredictionStore",
    "InMemorySettingsProvider",
    "PostgresPeriodStore",
    "PostgresPredictionStore",
    "PostgresSettingsProvider",
]
