from dataclasses import asdict, fields, is_dataclass, replace
from typing import Any, TypeVar

T = TypeVar("T")


class EntityMixin:
    @classmethod
    def from_dict(cls: type[T], data: dict[str, Any]) -> T:
        """
        Cria uma instância da entidade a partir de um dict.
        Chaves que não são campos da dataclass são ignoradas.
        """
        if not is_dataclass(cls):
            raise TypeError(f"{cls.__name__} deve ser um dataclass")
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})

    def to_dict(self) -> dict[str, Any]:
        """
        Converte a entidade em dict, recursivamente se for dataclass.
        """
        return asdict(self)

    def with_changes(self: T, **changes: Any) -> T:
        """Retorna uma cópia da entidade com os campos alterados."""
        return replace(self, **changes)
