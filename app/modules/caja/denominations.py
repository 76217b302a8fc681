"""
Arqueo de caja por denominaciones

DenominationCounter convierte pares (denominación, cantidad) en el total
contado. Es un cálculo puro: se usa en vivo mientras el operador escribe las
cantidades y una vez más cuando el conteo se aplica a la sesión.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from app.common.money import Money
from app.core.config import settings
from app.modules.caja.exceptions import InvalidDenomination, InvalidDenominationCount


@dataclass(frozen=True)
class DenominationBreakdown:
    """Conteo validado: centavos de la denominación -> cantidad"""
    counts: Dict[int, int] = field(default_factory=dict)
    total: Money = field(default_factory=Money.zero)

    def lines(self) -> List[Tuple[Money, int, Money]]:
        """(denominación, cantidad, subtotal) de mayor a menor denominación"""
        return [
            (Money.from_cents(cents), count, Money.from_cents(cents).multiply(count))
            for cents, count in sorted(self.counts.items(), reverse=True)
        ]

    def as_dict(self) -> Dict[str, int]:
        return {
            str(Money.from_cents(cents).to_decimal()): count
            for cents, count in sorted(self.counts.items(), reverse=True)
        }


class DenominationCounter:
    """Calcula el total de un arqueo sobre un conjunto fijo de denominaciones"""

    def __init__(self, denominations: Optional[Iterable[Any]] = None):
        values = denominations if denominations is not None else settings.CAJA_DENOMINATIONS
        self.denominations = tuple(sorted(
            {Money.from_decimal(_as_decimal_text(value)).cents for value in values},
            reverse=True
        ))
        if not self.denominations or any(cents <= 0 for cents in self.denominations):
            raise ValueError("El conjunto de denominaciones debe contener valores positivos")

    def allowed(self) -> List[Decimal]:
        return [Money.from_cents(cents).to_decimal() for cents in self.denominations]

    def parse(self, raw_counts: Mapping[Any, Any]) -> DenominationBreakdown:
        """Valida el conteo y devuelve el desglose con su total exacto."""
        counts: Dict[int, int] = {}
        for raw_key, raw_count in raw_counts.items():
            cents = self._denomination_cents(raw_key)
            if cents in counts:
                raise InvalidDenomination(
                    f"La denominación {raw_key} aparece más de una vez",
                    denomination=str(raw_key)
                )
            counts[cents] = self._count(raw_key, raw_count)

        try:
            total = Money.sum(
                Money.from_cents(cents).multiply(count) for cents, count in counts.items()
            )
        except ValueError:
            raise InvalidDenominationCount("El conteo excede el máximo permitido")
        return DenominationBreakdown(counts=counts, total=total)

    def total(self, raw_counts: Mapping[Any, Any]) -> Money:
        return self.parse(raw_counts).total

    def _denomination_cents(self, raw_key: Any) -> int:
        try:
            cents = Money.from_decimal(_as_decimal_text(raw_key)).cents
        except (TypeError, ValueError):
            raise InvalidDenomination(
                f"Denominación inválida: {raw_key}",
                denomination=str(raw_key)
            )
        if cents not in self.denominations:
            raise InvalidDenomination(
                f"La denominación {raw_key} no está permitida",
                denomination=str(raw_key),
                allowed=[str(value) for value in self.allowed()]
            )
        return cents

    def _count(self, raw_key: Any, raw_count: Any) -> int:
        if isinstance(raw_count, bool) or not isinstance(raw_count, int) or raw_count < 0:
            raise InvalidDenominationCount(
                f"Cantidad inválida para la denominación {raw_key}: {raw_count}",
                denomination=str(raw_key)
            )
        return raw_count


def _as_decimal_text(value: Any) -> Any:
    # Las claves JSON llegan como texto; los floats se pasan por str para no
    # arrastrar su representación binaria (0.1 -> "0.1").
    if isinstance(value, float):
        return str(value)
    return value
