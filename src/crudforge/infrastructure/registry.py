"""Explicit per-entity registry: descriptor, storage adapter and service.

Built once at process start from EntityDefinition config structs and passed
explicitly to whatever serves requests (see crudforge.api.app.create_app);
request handling never looks services up through ambient global state.

    registry = EntityRegistry.from_settings(
        [
            EntityDefinition(
                User,
                IdentifierType.LONG_IDENTITY,
                unique_constraints=(UniqueConstraint(("email",), "Email already registered"),),
                audit_slots=AuditSlot.timestamps(),
            ),
        ],
        Settings(),
    )
    await registry.initialize()
    user = await registry.service("users").create(User(name="A", email="a@x.com"))
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from pymongo import AsyncMongoClient
from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine

from crudforge.domain.errors import ConfigurationError
from crudforge.domain.models.descriptor import EntityDescriptor, UniqueConstraint
from crudforge.domain.models.entity import Entity
from crudforge.domain.models.enums import AuditSlot, IdentifierType
from crudforge.domain.repositories.base import StorageAdapter
from crudforge.domain.services.audit import ActorResolver, AuditStamper
from crudforge.domain.services.crud import CrudService
from crudforge.domain.services.telemetry import LoggingTelemetry, TelemetrySink
from crudforge.infrastructure.database import (
    Settings,
    create_engine,
    create_metadata,
    create_mongo_client,
)
from crudforge.infrastructure.persistence.adapters import (
    MongoDocumentAdapter,
    SqlIdentityAdapter,
    SqlSequenceAdapter,
)

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[EntityDescriptor[Any]], StorageAdapter[Any]]


@dataclass(frozen=True)
class EntityDefinition:
    """Registration-time configuration for one entity type."""

    model: type[Entity]
    identifier_type: IdentifierType
    unique_constraints: tuple[UniqueConstraint, ...] = ()
    audit_slots: frozenset[AuditSlot] = field(default_factory=frozenset)
    name: str | None = None

    def describe(self) -> EntityDescriptor[Any]:
        return EntityDescriptor.build(
            self.model,
            self.identifier_type,
            name=self.name,
            unique_constraints=self.unique_constraints,
            audit_slots=self.audit_slots,
        )


@dataclass(frozen=True)
class RegisteredEntity:
    """Everything bound to one entity type at registration."""

    descriptor: EntityDescriptor[Any]
    adapter: StorageAdapter[Any]
    service: CrudService[Any]

    @property
    def name(self) -> str:
        return self.descriptor.name


class StorageAdapterFactory:
    """Selects and builds the adapter matching a descriptor's identifier type.

    Engines are shared per database URL and the Mongo client is shared
    across collections; close() releases all of them.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._metadata: MetaData = create_metadata()
        self._engines: dict[str, AsyncEngine] = {}
        self._mongo: AsyncMongoClient | None = None

    def __call__(self, descriptor: EntityDescriptor[Any]) -> StorageAdapter[Any]:
        settings = self._settings
        if descriptor.identifier_type is IdentifierType.STRING_GENERATED:
            collection = self._mongo_client()[settings.mongo_database][descriptor.name]
            return MongoDocumentAdapter(
                descriptor, collection, query_timeout=settings.query_timeout
            )
        if descriptor.identifier_type is IdentifierType.LONG_SEQUENCE:
            return SqlSequenceAdapter(
                descriptor,
                self._engine(settings.sequence_url),
                self._metadata,
                query_timeout=settings.query_timeout,
                flush_size=settings.insert_flush_size,
            )
        return SqlIdentityAdapter(
            descriptor,
            self._engine(settings.identity_url),
            self._metadata,
            query_timeout=settings.query_timeout,
            flush_size=settings.insert_flush_size,
        )

    def _engine(self, url: str) -> AsyncEngine:
        if url not in self._engines:
            self._engines[url] = create_engine(url, self._settings)
        return self._engines[url]

    def _mongo_client(self) -> AsyncMongoClient:
        if self._mongo is None:
            self._mongo = create_mongo_client(self._settings)
        return self._mongo

    async def close(self) -> None:
        for engine in self._engines.values():
            await engine.dispose()
        self._engines.clear()
        if self._mongo is not None:
            await self._mongo.close()
            self._mongo = None


class EntityRegistry:
    def __init__(
        self,
        adapter_factory: AdapterFactory,
        *,
        settings: Settings | None = None,
        telemetry: TelemetrySink | None = None,
        stamper: AuditStamper | None = None,
    ) -> None:
        self._adapter_factory = adapter_factory
        self._settings = settings or Settings()
        self._telemetry = telemetry or LoggingTelemetry()
        self._stamper = stamper or AuditStamper()
        self._entries: dict[str, RegisteredEntity] = {}

    @classmethod
    def from_settings(
        cls,
        definitions: Iterable[EntityDefinition],
        settings: Settings | None = None,
        *,
        telemetry: TelemetrySink | None = None,
        actor_resolver: ActorResolver | None = None,
    ) -> EntityRegistry:
        settings = settings or Settings()
        registry = cls(
            StorageAdapterFactory(settings),
            settings=settings,
            telemetry=telemetry,
            stamper=AuditStamper(actor_resolver=actor_resolver),
        )
        for definition in definitions:
            registry.register(definition)
        return registry

    @property
    def settings(self) -> Settings:
        return self._settings

    def register(self, definition: EntityDefinition) -> RegisteredEntity:
        descriptor = definition.describe()
        if descriptor.name in self._entries:
            raise ConfigurationError(f"entity name {descriptor.name!r} is already registered")
        adapter = self._adapter_factory(descriptor)
        service = CrudService(
            descriptor,
            adapter,
            stamper=self._stamper,
            telemetry=self._telemetry,
            chunk_size=self._settings.batch_chunk_size,
            max_page_size=self._settings.max_page_size,
        )
        entry = RegisteredEntity(descriptor=descriptor, adapter=adapter, service=service)
        self._entries[descriptor.name] = entry
        logger.info(
            "registered %s as %r (%s, %d unique group(s))",
            descriptor.entity_name,
            descriptor.name,
            descriptor.identifier_type.value,
            len(descriptor.unique_constraints),
        )
        return entry

    def get(self, name: str) -> RegisteredEntity:
        try:
            return self._entries[name]
        except KeyError:
            raise ConfigurationError(f"no entity registered as {name!r}") from None

    def service(self, name: str) -> CrudService[Any]:
        return self.get(name).service

    def __iter__(self) -> Iterator[RegisteredEntity]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    async def initialize(self) -> None:
        for entry in self:
            await entry.adapter.initialize()

    async def close(self) -> None:
        for entry in self:
            await entry.adapter.close()
        close = getattr(self._adapter_factory, "close", None)
        if close is not None:
            await close()
