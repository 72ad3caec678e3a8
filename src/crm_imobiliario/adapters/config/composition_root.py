from __future__ import annotations

import structlog
from dependency_injector import containers, providers

from config.structlog_config import configure_from_settings

from crm_imobiliario.adapters.record_store.memory_store import InMemoryRecordStore
from crm_imobiliario.adapters.record_store.postgrest_store import PostgrestRecordStore
from crm_imobiliario.adapters.webhooks.webhook_sender import HttpxWebhookSender

# Commands / CQRS
from crm_imobiliario.core.application.commands.record_commands import (
    CreateRecordCommand,
    DeleteRecordCommand,
    TransitionStageCommand,
    UpdateRecordCommand,
)
from crm_imobiliario.core.application.cqrs import CommandBusImpl
from crm_imobiliario.core.application.dtos.operation_result import OperationResult

# Handlers
from crm_imobiliario.core.application.handlers.record_handlers import (
    CreateRecordHandler,
    DeleteRecordHandler,
    TransitionStageHandler,
    UpdateRecordHandler,
)

# Services
from crm_imobiliario.core.application.services.aggregate_service import AggregateEngine
from crm_imobiliario.core.application.services.appointment_workspace import AppointmentWorkspace
from crm_imobiliario.core.application.services.automation_service import AutomationService
from crm_imobiliario.core.application.services.client_registry_service import ClientRegistryService
from crm_imobiliario.core.application.services.collaborator_workspace import CollaboratorWorkspace
from crm_imobiliario.core.application.services.dashboard_service import DashboardService
from crm_imobiliario.core.application.services.entity_cache import EntityCache
from crm_imobiliario.core.application.services.formatter_service import FormatterService
from crm_imobiliario.core.application.services.ledger_service import LedgerService
from crm_imobiliario.core.application.services.lead_workspace import LeadWorkspace
from crm_imobiliario.core.application.services.notification_bridge import NotificationBridge
from crm_imobiliario.core.application.services.notification_center import NotificationCenter
from crm_imobiliario.core.application.services.ticket_workspace import TicketWorkspace
from crm_imobiliario.core.application.services.transition_service import TransitionService

# Domínio
from crm_imobiliario.core.domain.mappers.record_mapper import RecordMapper
from crm_imobiliario.core.domain.services import ordering
from crm_imobiliario.core.domain.services.event_dispatcher import EventDispatcher
from crm_imobiliario.core.domain.services.stage_model import (
    appointment_stage_model,
    collaborator_stage_model,
    lead_stage_model,
    ticket_stage_model,
)

logger = structlog.get_logger(__name__)


class Container(containers.DeclarativeContainer):
    """Raiz de composição: uma instância de cada cache/workspace por sessão."""

    config = providers.Configuration()

    # Infra básica
    event_dispatcher = providers.Singleton(EventDispatcher)
    command_bus = providers.Singleton(CommandBusImpl, dispatcher=event_dispatcher)

    record_store = providers.Selector(
        config.record_store_backend,
        memory=providers.Singleton(InMemoryRecordStore),
        postgrest=providers.Singleton(
            PostgrestRecordStore,
            base_url=config.postgrest.url,
            api_key=config.postgrest.api_key,
            timeout=config.postgrest.timeout,
        ),
    )
    webhook_sender = providers.Singleton(HttpxWebhookSender, timeout=config.webhook_timeout)

    # Estágios
    lead_stages = providers.Singleton(lead_stage_model)
    appointment_stages = providers.Singleton(appointment_stage_model)
    ticket_stages = providers.Singleton(ticket_stage_model)
    collaborator_stages = providers.Singleton(collaborator_stage_model)
    stage_models = providers.Dict(
        leads=lead_stages,
        appointments=appointment_stages,
        support_tickets=ticket_stages,
        collaborators=collaborator_stages,
    )

    # Serviços puros
    formatter_service = providers.Singleton(FormatterService, currency_symbol=config.currency_symbol)
    aggregate_engine = providers.Singleton(
        AggregateEngine,
        timezone=config.reference_timezone,
        lead_stages=lead_stages,
        formatter=formatter_service,
    )

    # Handlers
    create_record_handler = providers.Factory(CreateRecordHandler, store=record_store)
    update_record_handler = providers.Factory(UpdateRecordHandler, store=record_store)
    delete_record_handler = providers.Factory(DeleteRecordHandler, store=record_store)
    transition_stage_handler = providers.Factory(
        TransitionStageHandler, store=record_store, stage_models=stage_models
    )
    transition_service = providers.Singleton(
        TransitionService, command_bus=command_bus, stage_models=stage_models
    )

    # Caches (um por tabela)
    lead_cache = providers.Singleton(
        EntityCache,
        store=record_store,
        table="leads",
        mapper=RecordMapper.to_lead,
        sort_key=ordering.lead_sort_key,
        descending=True,
        order_by=ordering.LEAD_ORDER,
        dispatcher=event_dispatcher,
    )
    appointment_cache = providers.Singleton(
        EntityCache,
        store=record_store,
        table="appointments",
        mapper=RecordMapper.to_appointment,
        sort_key=ordering.appointment_sort_key,
        order_by=ordering.APPOINTMENT_ORDER,
        dispatcher=event_dispatcher,
    )
    ticket_cache = providers.Singleton(
        EntityCache,
        store=record_store,
        table="support_tickets",
        mapper=RecordMapper.to_ticket,
        sort_key=ordering.ticket_sort_key,
        descending=True,
        order_by=ordering.TICKET_ORDER,
        dispatcher=event_dispatcher,
    )
    message_cache = providers.Singleton(
        EntityCache,
        store=record_store,
        table="ticket_messages",
        mapper=RecordMapper.to_ticket_message,
        sort_key=ordering.message_sort_key,
        order_by=ordering.MESSAGE_ORDER,
        stage_field=None,
    )
    collaborator_cache = providers.Singleton(
        EntityCache,
        store=record_store,
        table="collaborators",
        mapper=RecordMapper.to_collaborator,
        sort_key=ordering.collaborator_sort_key,
        order_by=ordering.COLLABORATOR_ORDER,
        dispatcher=event_dispatcher,
    )

    # Workspaces
    lead_workspace = providers.Singleton(
        LeadWorkspace,
        cache=lead_cache,
        command_bus=command_bus,
        transitions=transition_service,
        stage_model=lead_stages,
        engine=aggregate_engine,
    )
    appointment_workspace = providers.Singleton(
        AppointmentWorkspace,
        cache=appointment_cache,
        command_bus=command_bus,
        transitions=transition_service,
        stage_model=appointment_stages,
        engine=aggregate_engine,
    )
    ticket_workspace = providers.Singleton(
        TicketWorkspace,
        cache=ticket_cache,
        messages=message_cache,
        command_bus=command_bus,
        transitions=transition_service,
        stage_model=ticket_stages,
        engine=aggregate_engine,
    )
    collaborator_workspace = providers.Singleton(
        CollaboratorWorkspace,
        cache=collaborator_cache,
        command_bus=command_bus,
        transitions=transition_service,
        stage_model=collaborator_stages,
        engine=aggregate_engine,
    )
    ledger_service = providers.Singleton(LedgerService, engine=aggregate_engine, dispatcher=event_dispatcher)
    client_registry = providers.Singleton(ClientRegistryService, leads=lead_workspace)
    dashboard_service = providers.Singleton(
        DashboardService,
        leads=lead_workspace,
        appointments=appointment_workspace,
        ledger=ledger_service,
    )

    # Notificações e automações
    notification_center = providers.Singleton(NotificationCenter, formatter=formatter_service)
    notification_bridge = providers.Singleton(
        NotificationBridge,
        store=record_store,
        center=notification_center,
        dispatcher=event_dispatcher,
        lead_stages=lead_stages,
        formatter=formatter_service,
    )
    automation_service = providers.Singleton(
        AutomationService,
        sender=webhook_sender,
        engine=aggregate_engine,
    )

    def init(self):
        # Registrar comandos no CommandBus
        bus = self.command_bus()
        bus.register(CreateRecordCommand, self.create_record_handler())
        bus.register(UpdateRecordCommand, self.update_record_handler())
        bus.register(DeleteRecordCommand, self.delete_record_handler())
        bus.register(TransitionStageCommand, self.transition_stage_handler())

        # Eventos de domínio → automações e notificações
        dispatcher = self.event_dispatcher()
        self.automation_service().wire(dispatcher)
        self.notification_bridge().attach()


def setup_di_container_from_settings(settings) -> Container:
    """Monta um container novo a partir do módulo de settings (decouple)."""
    container = Container()
    container.config.record_store_backend.from_value(settings.RECORD_STORE_BACKEND)
    container.config.postgrest.url.from_value(settings.POSTGREST_URL)
    container.config.postgrest.api_key.from_value(settings.POSTGREST_API_KEY)
    container.config.postgrest.timeout.from_value(settings.POSTGREST_TIMEOUT)
    container.config.reference_timezone.from_value(settings.REFERENCE_TIMEZONE)
    container.config.currency_symbol.from_value(settings.CURRENCY_SYMBOL)
    container.config.webhook_timeout.from_value(settings.WEBHOOK_TIMEOUT)
    Container.init(container)
    logger.info("container.ready", record_store=settings.RECORD_STORE_BACKEND)
    return container


def bootstrap(settings=None) -> Container:
    """Ponto de entrada: configura o logging e monta o container."""
    if settings is None:
        from config import settings
    configure_from_settings(settings)
    return setup_di_container_from_settings(settings)


# ───────────────────────────────────────────────
# Ciclo de vida da sessão
# ───────────────────────────────────────────────
def _workspaces(container: Container) -> dict:
    return {
        "leads": container.lead_workspace(),
        "appointments": container.appointment_workspace(),
        "support_tickets": container.ticket_workspace(),
        "collaborators": container.collaborator_workspace(),
    }


async def start_session(container: Container) -> dict[str, OperationResult]:
    """Assina os feeds, faz a carga inicial de cada workspace e liga o bridge."""
    container.notification_bridge().start()
    results = {}
    for name, workspace in _workspaces(container).items():
        results[name] = await workspace.start()
        if not results[name].success:
            logger.warning("session.load_failed", workspace=name, message=results[name].message)
    return results


async def shutdown_session(container: Container) -> None:
    for workspace in _workspaces(container).values():
        await workspace.stop()
    await container.notification_bridge().stop()
    await container.event_dispatcher().flush()
    await container.record_store().aclose()
    await container.webhook_sender().aclose()
