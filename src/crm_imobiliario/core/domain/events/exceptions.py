class CrmError(Exception):
    """Classe base para todas as exceções do núcleo do CRM."""
    pass

class TransportFailure(CrmError):
    """
    A chamada remota não foi concluída.
    Exemplos:
    - Timeout ou conexão recusada pelo record store.
    - Resposta 5xx do servidor.
    """
    pass

class RecordNotFound(CrmError):
    """Update/delete referenciou um identificador inexistente."""

    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(f"Registro {record_id!r} não encontrado em {table}")
        self.table = table
        self.record_id = record_id

class ValidationGap(CrmError):
    """
    Campo obrigatório ausente/malformado ou estágio desconhecido.
    A validação é fraca: o restante fica a cargo das constraints do store.
    """
    pass

class MappingError(ValidationGap):
    """Erro no mapeamento registro ➜ Entity."""
    pass

class UnhandledCommand(CrmError):
    """Comando despachado sem handler registrado no CommandBus."""
    pass
