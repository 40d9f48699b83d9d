"""
组件装配

根据配置组装支付校验与发票开具流水线：网关注册表、去重存储、发票事件通道、
Unit of Work 工厂以及各应用服务。测试可以通过关键字参数替换任一组件。
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncEngine

from application.ports.dedup_store import DedupStore
from application.ports.invoice_channel import InvoiceEventChannel
from application.ports.invoice_renderer import InvoiceRenderer
from application.ports.payment_gateway import StrategyResolver
from application.ports.storage import StoragePort
from application.services.booking_state_machine import BookingStateMachine
from application.services.invoice_listener import InvoiceIssuanceListener
from application.services.invoice_service import InvoiceService
from application.services.payment_service import PaymentService
from application.services.verification_processor import VerificationProcessor
from core.config import Settings, settings as default_settings
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice import InvoiceType
from infrastructure.cache import InMemoryDedupStore, RedisDedupStore, create_redis_connection
from infrastructure.database import create_engine, create_session_factory, create_tables
from infrastructure.external.messaging import create_invoice_channel
from infrastructure.external.payments import build_gateway_registry
from infrastructure.external.rendering import create_invoice_renderer
from infrastructure.external.storage import create_invoice_storage
from infrastructure.repositories.memory import InMemoryDatabase
from infrastructure.unit_of_work import InMemoryUnitOfWork, SQLAlchemyUnitOfWork

logger = get_logger(__name__)

UnitOfWorkFactory = Callable[..., AbstractUnitOfWork]


@dataclass
class PaymentPipeline:
    """已装配的组件集合，由应用生命周期负责启动与关闭"""

    registry: StrategyResolver
    dedup_store: DedupStore
    channel: InvoiceEventChannel
    uow_factory: UnitOfWorkFactory
    state_machine: BookingStateMachine
    processor: VerificationProcessor
    listener: InvoiceIssuanceListener
    payment_service: PaymentService
    invoice_service: InvoiceService
    renderer: InvoiceRenderer
    storage: StoragePort
    engine: Optional[AsyncEngine] = None
    create_schema: bool = False

    async def start(self) -> None:
        if self.engine is not None and self.create_schema:
            await create_tables(self.engine)
            logger.info("database_initialized")
        await self.channel.start(self.listener.handle)

    async def aclose(self) -> None:
        """按启动的逆序关闭；单个组件关闭失败不影响其余组件"""
        await self.channel.stop()
        for closer in (self.registry, self.renderer, self.dedup_store):
            close = getattr(closer, "aclose", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as exc:
                logger.warning("pipeline_close_failed", component=type(closer).__name__, error=str(exc))
        if self.engine is not None:
            await self.engine.dispose()


def build_uow_factory(
    config: Settings, *, memory_db: Optional[InMemoryDatabase] = None
) -> Tuple[UnitOfWorkFactory, Optional[AsyncEngine]]:
    """返回 (uow_factory, engine)；进程内存储时 engine 为 None"""
    if config.storage.backend == "memory":
        db = memory_db if memory_db is not None else InMemoryDatabase()
        return partial(InMemoryUnitOfWork, db), None
    engine = create_engine(config.database)
    return partial(SQLAlchemyUnitOfWork, create_session_factory(engine)), engine


def build_dedup_store(config: Settings) -> DedupStore:
    if config.dedup.backend == "redis":
        client = create_redis_connection(config.redis)
        return RedisDedupStore(client, namespace=config.redis.namespace)
    return InMemoryDedupStore()


def build_invoice_listener(
    config: Settings,
    uow_factory: UnitOfWorkFactory,
    *,
    renderer: Optional[InvoiceRenderer] = None,
    storage: Optional[StoragePort] = None,
) -> InvoiceIssuanceListener:
    return InvoiceIssuanceListener(
        uow_factory,
        renderer or create_invoice_renderer(config.invoice),
        storage or create_invoice_storage(config.invoice),
        sweep_batch_size=config.invoice.sweep_batch_size,
    )


def build_pipeline(
    config: Optional[Settings] = None,
    *,
    payment_config: Optional[PaymentSettings] = None,
    registry: Optional[StrategyResolver] = None,
    dedup_store: Optional[DedupStore] = None,
    channel: Optional[InvoiceEventChannel] = None,
    uow_factory: Optional[UnitOfWorkFactory] = None,
    renderer: Optional[InvoiceRenderer] = None,
    storage: Optional[StoragePort] = None,
) -> PaymentPipeline:
    config = config or default_settings

    engine: Optional[AsyncEngine] = None
    if uow_factory is None:
        uow_factory, engine = build_uow_factory(config)

    if dedup_store is None:
        dedup_store = build_dedup_store(config)

    if registry is None:
        registry = build_gateway_registry(payment_config)
    channel = channel or create_invoice_channel(config.channel)
    renderer = renderer or create_invoice_renderer(config.invoice)
    storage = storage or create_invoice_storage(config.invoice)

    state_machine = BookingStateMachine(
        uow_factory,
        channel,
        invoice_type=InvoiceType(config.invoice.default_type.upper()),
        max_attempts=config.state_machine.cas_max_attempts,
        backoff_seconds=config.state_machine.cas_backoff_seconds,
    )
    processor = VerificationProcessor(
        registry,
        dedup_store,
        state_machine,
        uow_factory,
        claim_ttl_seconds=config.dedup.claim_ttl_seconds,
        result_ttl_seconds=config.dedup.result_ttl_seconds,
        wait_timeout_seconds=config.dedup.wait_timeout_seconds,
        poll_interval_seconds=config.dedup.poll_interval_seconds,
    )
    listener = build_invoice_listener(config, uow_factory, renderer=renderer, storage=storage)

    logger.info(
        "pipeline_built",
        storage=config.storage.backend,
        dedup=type(dedup_store).__name__,
        channel=type(channel).__name__,
        providers=[p.value for p in registry.providers()],
    )
    return PaymentPipeline(
        registry=registry,
        dedup_store=dedup_store,
        channel=channel,
        uow_factory=uow_factory,
        state_machine=state_machine,
        processor=processor,
        listener=listener,
        payment_service=PaymentService(registry, state_machine, uow_factory),
        invoice_service=InvoiceService(uow_factory),
        renderer=renderer,
        storage=storage,
        engine=engine,
        create_schema=config.DEBUG,
    )
