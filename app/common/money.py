"""
Aritmética monetaria exacta en centavos.

Todo el cálculo de caja se hace con enteros; el formato con símbolo y
decimales solo se aplica al presentar los valores.
"""
from decimal import Decimal, DecimalException
from functools import total_ordering
from typing import Iterable, Union

CENTS_PER_UNIT = 100

# Rango de BigInteger en la base de datos
MAX_CENTS = 2 ** 63 - 1
MIN_CENTS = -(2 ** 63)

MoneyInput = Union["Money", Decimal, int, str]


@total_ordering
class Money:
    """Cantidad de dinero expresada como un entero de centavos."""

    __slots__ = ("_cents",)

    def __init__(self, cents: int = 0):
        if isinstance(cents, bool) or not isinstance(cents, int):
            raise TypeError("Money se construye con un entero de centavos")
        if not MIN_CENTS <= cents <= MAX_CENTS:
            raise ValueError("El monto excede el máximo permitido")
        self._cents = cents

    @classmethod
    def zero(cls) -> "Money":
        return cls(0)

    @classmethod
    def from_cents(cls, cents: int) -> "Money":
        return cls(cents)

    @classmethod
    def from_decimal(cls, value: MoneyInput) -> "Money":
        """
        Convierte Decimal, entero o texto numérico a Money.

        Rechaza floats y valores con más de dos decimales para que ningún
        redondeo silencioso entre al cálculo.
        """
        if isinstance(value, Money):
            return value
        if isinstance(value, float):
            raise TypeError("No se permiten montos float; use Decimal o texto")
        if isinstance(value, bool):
            raise TypeError("Monto inválido")
        if isinstance(value, int):
            return cls(value * CENTS_PER_UNIT)
        try:
            amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
            if not amount.is_finite():
                raise ValueError(f"Monto inválido: {value!r}")
            scaled = amount * CENTS_PER_UNIT
            exact = scaled == scaled.to_integral_value()
        except DecimalException:
            raise ValueError(f"Monto inválido: {value!r}")
        if not exact:
            raise ValueError(f"El monto {value} tiene más de dos decimales")
        if not MIN_CENTS <= scaled <= MAX_CENTS:
            raise ValueError("El monto excede el máximo permitido")
        return cls(int(scaled))

    @classmethod
    def sum(cls, amounts: Iterable["Money"]) -> "Money":
        total = 0
        for amount in amounts:
            total += amount.cents
        return cls(total)

    @property
    def cents(self) -> int:
        return self._cents

    def is_zero(self) -> bool:
        return self._cents == 0

    def is_negative(self) -> bool:
        return self._cents < 0

    def to_decimal(self) -> Decimal:
        return (Decimal(self._cents) / CENTS_PER_UNIT).quantize(Decimal("0.01"))

    def format(self, symbol: str = "Q") -> str:
        sign = "-" if self._cents < 0 else ""
        units, cents = divmod(abs(self._cents), CENTS_PER_UNIT)
        return f"{sign}{symbol}{units:,}.{cents:02d}"

    def add(self, other: "Money") -> "Money":
        return Money(self._cents + _cents_of(other))

    def subtract(self, other: "Money") -> "Money":
        return Money(self._cents - _cents_of(other))

    def multiply(self, factor: int) -> "Money":
        if isinstance(factor, bool) or not isinstance(factor, int):
            raise TypeError("Solo se permite multiplicar por enteros")
        return Money(self._cents * factor)

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply
    __rmul__ = multiply

    def __radd__(self, other):
        # Permite sum() con el 0 inicial
        if other == 0:
            return self
        return NotImplemented

    def __neg__(self) -> "Money":
        return Money(-self._cents)

    def __abs__(self) -> "Money":
        return Money(abs(self._cents))

    def __eq__(self, other) -> bool:
        if isinstance(other, Money):
            return self._cents == other._cents
        return NotImplemented

    def __lt__(self, other) -> bool:
        if isinstance(other, Money):
            return self._cents < other._cents
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._cents)

    def __bool__(self) -> bool:
        return self._cents != 0

    def __repr__(self) -> str:
        return f"Money({self.to_decimal()})"

    def __str__(self) -> str:
        return self.format()


def _cents_of(other) -> int:
    if not isinstance(other, Money):
        raise TypeError("Solo se pueden operar montos Money entre sí")
    return other.cents
