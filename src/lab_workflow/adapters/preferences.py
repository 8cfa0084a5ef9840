"""Assignment preference store - sticky (company, procedure) -> lab_id choices."""

import abc
import logging
from typing import Dict, Optional, Tuple

import redis

import config

logger = logging.getLogger(__name__)

KEY_PREFIX = "assignment-preference"


def preference_key(company_id: str, procedure: str) -> str:
    return f"{KEY_PREFIX}:{company_id}:{procedure}"


class AbstractPreferenceStore(abc.ABC):
    """
    Narrow get/set view of an external key-value store.

    The engine never owns the store's lifecycle. Writes are last-writer-wins
    upserts on a single key.
    """

    @abc.abstractmethod
    def get(self, company_id: str, procedure: str) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    def set(self, company_id: str, procedure: str, lab_id: str) -> None:
        raise NotImplementedError


class RedisPreferenceStore(AbstractPreferenceStore):
    def __init__(self, client: Optional[redis.Redis] = None):
        self.client = client or redis.Redis(**config.get_redis_host_and_port())

    def get(self, company_id: str, procedure: str) -> Optional[str]:
        value = self.client.get(preference_key(company_id, procedure))
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else value

    def set(self, company_id: str, procedure: str, lab_id: str) -> None:
        logger.debug("storing preference %s -> %s", preference_key(company_id, procedure), lab_id)
        self.client.set(preference_key(company_id, procedure), lab_id)


class InMemoryPreferenceStore(AbstractPreferenceStore):
    """Dictionary-backed store, owned by whoever creates it."""

    def __init__(self, initial: Optional[Dict[Tuple[str, str], str]] = None):
        self._values = dict(initial or {})

    def get(self, company_id: str, procedure: str) -> Optional[str]:
        return self._values.get((company_id, procedure))

    def set(self, company_id: str, procedure: str, lab_id: str) -> None:
        self._values[(company_id, procedure)] = lab_id
