import logging
from typing import Optional

from catalog.diff import CatalogDiffCalculator
from catalog.service import CatalogService, StaticCatalogService, default_catalog
from config.postgres import PostgresConfig
from config.settings import AppSettings
from documents.composer import DocumentComposer
from documents.storage import DocumentStorage, InMemoryDocumentStorage, LocalDocumentStorage
from registration.graph import IntakeGraphFactory
from registration.session import IntakeSession
from registration.validator import StepValidator
from registry.builder import RegistrationBuilder
from registry.identity_registry import IdentityRegistry
from registry.store import InMemoryRegistrationStore, RegistrationStore
from registry.verification import VerificationService

logger = logging.getLogger(__name__)


class Services:
    """Wires the registry, builder and intake graph over one store and catalog."""

    def __init__(
        self,
        catalog_service: CatalogService,
        store: RegistrationStore,
        storage: DocumentStorage,
        validator: Optional[StepValidator] = None,
        composer: Optional[DocumentComposer] = None,
    ):
        self.catalog_service = catalog_service
        self.store = store
        self.storage = storage
        self.validator = validator or StepValidator()
        self.composer = composer or DocumentComposer()

        self.registry = IdentityRegistry(store)
        self.diff_calculator = CatalogDiffCalculator(catalog_service, self.registry)
        self.verification = VerificationService(self.registry, self.diff_calculator, catalog_service)
        self.builder = RegistrationBuilder(store, self.registry, self.diff_calculator, catalog_service, storage)
        self.graph_factory = IntakeGraphFactory(self.validator, self.verification, self.builder, self.composer)
        self._graph = None

    @property
    def graph(self):
        if self._graph is None:
            self._graph = self.graph_factory.compile()
        return self._graph

    def new_session(self) -> IntakeSession:
        return IntakeSession(self.graph)


def build_services(settings: Optional[AppSettings] = None) -> Services:
    settings = settings or AppSettings.from_env()

    if settings.documents_dir:
        storage: DocumentStorage = LocalDocumentStorage(settings.documents_dir)
    else:
        storage = InMemoryDocumentStorage()

    if settings.store_backend == "postgres":
        from persistence.crypto import CryptoUtils
        from persistence.postgres_catalog import PostgresCatalogService
        from persistence.postgres_store import PostgresRegistrationStore

        pg = PostgresConfig.from_env()
        catalog_service = PostgresCatalogService(pg.connect)
        catalog_service.setup()
        if not catalog_service.snapshot().categories:
            catalog_service.seed(default_catalog())
        store = PostgresRegistrationStore(pg.connect, CryptoUtils.from_env())
        store.setup()
    else:
        catalog_service = StaticCatalogService(default_catalog())
        store = InMemoryRegistrationStore()

    logger.info("Services ready (store=%s, documents=%s)", settings.store_backend, settings.documents_dir or "memory")
    return Services(catalog_service, store, storage)
