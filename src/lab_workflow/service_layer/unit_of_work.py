# pylint: disable=attribute-defined-outside-init
from __future__ import annotations
import abc
import functools
import logging

from sqlalchemy import create_engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.orm.session import Session

import config
from lab_workflow.adapters import directory, preferences, repository
from lab_workflow.domain.exceptions import ConcurrentModification

logger = logging.getLogger(__name__)

SERIALIZATION_FAILURE = "40001"


class AbstractUnitOfWork(abc.ABC):
    cases: repository.AbstractRepository
    directory: directory.AbstractDirectory
    preferences: preferences.AbstractPreferenceStore

    def __enter__(self) -> AbstractUnitOfWork:
        return self

    def __exit__(self, *args):
        self.rollback()

    def commit(self):
        self._commit()

    def collect_new_events(self):
        for case in self.cases.seen:
            while case.events:
                yield case.events.pop(0)

    @abc.abstractmethod
    def _commit(self):
        raise NotImplementedError

    @abc.abstractmethod
    def rollback(self):
        raise NotImplementedError


@functools.lru_cache(maxsize=None)
def default_session_factory():
    return sessionmaker(
        bind=create_engine(
            config.get_postgres_uri(),
            isolation_level="REPEATABLE READ",
        )
    )


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    """
    One transaction against the case store.

    Cases are version-checked on write, so two units of work that loaded the
    same case version cannot both commit a transition; the loser gets
    ``ConcurrentModification`` and its changes are rolled back.
    """

    def __init__(self, session_factory=None, preference_store=None):
        self.session_factory = session_factory or default_session_factory()
        self.preference_store = preference_store or preferences.RedisPreferenceStore()

    def __enter__(self):
        self.session = self.session_factory()  # type: Session
        self.cases = repository.SqlAlchemyRepository(self.session)
        self.directory = directory.SqlAlchemyDirectory(self.session)
        self.preferences = self.preference_store
        return super().__enter__()

    def __exit__(self, *args):
        super().__exit__(*args)
        self.session.close()

    def _commit(self):
        case_ids = sorted(case.case_id for case in self.cases.seen)
        try:
            self.session.commit()
        except StaleDataError:
            self.session.rollback()
            logger.warning(f"Version conflict committing case(s) {case_ids}")
            raise ConcurrentModification(", ".join(case_ids))
        except DBAPIError as e:
            self.session.rollback()
            if getattr(e.orig, "pgcode", None) == SERIALIZATION_FAILURE:
                logger.warning(f"Serialization failure committing case(s) {case_ids}")
                raise ConcurrentModification(", ".join(case_ids)) from e
            raise

    def rollback(self):
        self.session.rollback()
