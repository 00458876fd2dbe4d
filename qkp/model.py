"""
Plik: qkp/model.py

Cel i rola w projekcie
----------------------
Zawiera *modele danych* (Pydantic v2) używane w całym projekcie:
- `Item`, `InteractionMatrix` i `Instance` - reprezentacja instancji
  kwadratowego problemu plecakowego (QKP): wartości liniowe, wartości parami
  (symetryczna macierz) oraz pojemność,
- `Solution` - wynik solvera (wektor 0/1 + wartość + waga),
- `GAParams` i pomocnicze konfiguracje (`SelectionConfig`, `EarlyStopConfig`,
  `SubsetConfig`, `TraceConfig`) - wszystkie parametry GA w *jednym,
  walidowanym miejscu*.

Jak łączy się z resztą:
- `qkp/io.py` buduje z plików obiekty `Instance` (walidacja tutaj),
- `qkp/fitness.py`, `qkp/greedy.py` i `qkp/ga.py` czytają z instancji tylko
  gotowe tablice NumPy (`weights`, `values`, `interactions`),
- `qkp/cli.py` zamienia JSON config w `GAParams` i nakłada nadpisania z CLI.

Założenia:
- Instancja jest *niezmienna* po zbudowaniu. Tablice pochodne są liczone raz
  (cache) i mają wyłączony zapis, więc wiele prób GA może je współdzielić.
"""
from __future__ import annotations

from functools import cached_property
from typing import Any, List, Literal, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidInstance


# --- Macierz wartości parami ------------------------------------------------------------------
def _read_only(a: np.ndarray) -> np.ndarray:
    a.flags.writeable = False
    return a


class InteractionMatrix:
    """
    Symetryczna macierz wartości parami `p(i, j)` (n x n) z zerową przekątną.

    `upper` to ścisły trójkąt górny - każda nieuporządkowana para (i<j)
    występuje w nim dokładnie raz, co wykorzystuje `fitness.evaluate_value`.
    """

    __slots__ = ("_dense", "_upper")

    def __init__(self, dense: np.ndarray):
        m = np.array(dense, dtype=np.float64)
        if m.ndim != 2 or m.shape[0] != m.shape[1]:
            raise InvalidInstance(f"Macierz wartości parami musi być kwadratowa, jest {m.shape}")
        if not np.array_equal(m, m.T):
            raise InvalidInstance("Macierz wartości parami nie jest symetryczna")
        np.fill_diagonal(m, 0.0)
        self._dense = _read_only(m)
        self._upper = _read_only(np.triu(m, k=1))

    @classmethod
    def zeros(cls, n: int) -> "InteractionMatrix":
        return cls(np.zeros((n, n), dtype=np.float64))

    @classmethod
    def from_square(cls, rows: Sequence[Sequence[float]]) -> "InteractionMatrix":
        return cls(np.asarray(rows, dtype=np.float64))

    @classmethod
    def from_upper_triangle(cls, n: int, rows: Sequence[Sequence[float]]) -> "InteractionMatrix":
        """
        Zbuduj macierz z zapisu trójkątnego: wiersz i (0..n-2) zawiera
        p(i, i+1), ..., p(i, n-1).
        """
        if len(rows) != max(0, n - 1):
            raise InvalidInstance(f"Oczekiwano {max(0, n - 1)} wierszy trójkąta, jest {len(rows)}")
        m = np.zeros((n, n), dtype=np.float64)
        for i, row in enumerate(rows):
            if len(row) != n - i - 1:
                raise InvalidInstance(f"Wiersz {i} trójkąta ma {len(row)} wartości, oczekiwano {n - i - 1}")
            m[i, i + 1:] = row
        m = m + m.T
        return cls(m)

    @property
    def n(self) -> int:
        return int(self._dense.shape[0])

    @property
    def dense(self) -> np.ndarray:
        return self._dense

    @property
    def upper(self) -> np.ndarray:
        return self._upper

    def value(self, i: int, j: int) -> float:
        """Wartość pary (i, j); dla i == j zawsze 0."""
        return float(self._dense[i, j])

    def row(self, i: int) -> np.ndarray:
        return self._dense[i]

    def upper_rows(self) -> List[List[float]]:
        """Odwrotność `from_upper_triangle` (do zapisu w formacie tekstowym)."""
        n = self.n
        return [self._dense[i, i + 1:].tolist() for i in range(n - 1)]


# --- Modele instancji -------------------------------------------------------------------------
class Item(BaseModel):
    """Pojedynczy przedmiot; `id` = pozycja w instancji (od 0)"""
    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    weight: float = Field(ge=0, description="Waga przedmiotu (>=0; zero obsługuje konwencja gęstości)")
    value: float = Field(description="Wartość liniowa przedmiotu")


class Instance(BaseModel):
    """Instancja QKP: pojemność + przedmioty + symetryczna macierz wartości parami + metadane"""
    model_config = ConfigDict(frozen=True)

    capacity: float = Field(ge=0, description="Pojemność plecaka (>=0)")
    items: List[Item] = Field(min_length=1)
    pairwise: Optional[List[List[float]]] = Field(
        None, description="Pełna macierz n x n wartości parami; None = same zera"
    )
    constraint_type: int = Field(1, description="Rodzaj ograniczenia; przenoszony bez zmian")
    meta: Optional[dict[str, Any]] = None

    @field_validator("items")
    @classmethod
    def _ids_in_order(cls, v: List[Item]) -> List[Item]:
        """Identyfikatory muszą być kolejnymi indeksami 0..n-1."""
        for pos, it in enumerate(v):
            if it.id != pos:
                raise ValueError(f"Przedmiot na pozycji {pos} ma id={it.id}; wymagane id == pozycja")
        return v

    @model_validator(mode="after")
    def _check_pairwise(self) -> "Instance":
        if self.pairwise is None:
            return self
        n = len(self.items)
        if len(self.pairwise) != n or any(len(row) != n for row in self.pairwise):
            raise ValueError(f"Macierz wartości parami musi mieć wymiar {n}x{n}")
        m = np.asarray(self.pairwise, dtype=np.float64)
        if not np.array_equal(m, m.T):
            raise ValueError("Macierz wartości parami nie jest symetryczna")
        return self

    @property
    def n_items(self) -> int:
        """Zwraca liczbę przedmiotów w instancji"""
        return len(self.items)

    @cached_property
    def weights(self) -> np.ndarray:
        return _read_only(np.array([it.weight for it in self.items], dtype=np.float64))

    @cached_property
    def values(self) -> np.ndarray:
        return _read_only(np.array([it.value for it in self.items], dtype=np.float64))

    @cached_property
    def interactions(self) -> InteractionMatrix:
        if self.pairwise is None:
            return InteractionMatrix.zeros(self.n_items)
        return InteractionMatrix.from_square(self.pairwise)


def make_instance(
    weights: Sequence[float],
    values: Sequence[float],
    capacity: float,
    pairwise: Optional[Sequence[Sequence[float]]] = None,
    constraint_type: int = 1,
    meta: Optional[dict[str, Any]] = None,
) -> Instance:
    """
    Zbuduj zwalidowaną instancję z surowych list.
    Każde naruszenie niezmienników kończy się `InvalidInstance`.
    """
    if len(weights) != len(values):
        raise InvalidInstance(f"Długości weights ({len(weights)}) i values ({len(values)}) się różnią")
    data = {
        "capacity": capacity,
        "items": [{"id": i, "weight": w, "value": v} for i, (w, v) in enumerate(zip(weights, values))],
        "pairwise": [list(row) for row in pairwise] if pairwise is not None else None,
        "constraint_type": constraint_type,
        "meta": meta,
    }
    return validate_instance_dict(data)


def validate_instance_dict(data: dict) -> Instance:
    """Zamień słownik na `Instance`; błąd Pydantic przepakowujemy w `InvalidInstance`."""
    try:
        return Instance.model_validate(data)
    except ValidationError as e:
        raise InvalidInstance(str(e)) from e


def ensure_solvable(instance: Instance) -> None:
    """
    Obronne sprawdzenie na wejściu każdego solvera (instancje zbudowane np.
    przez `model_construct` omijają walidację).
    """
    if not instance.items:
        raise InvalidInstance("Instancja nie zawiera przedmiotów")
    if instance.capacity < 0:
        raise InvalidInstance(f"Ujemna pojemność: {instance.capacity}")


# --- Wynik solvera ----------------------------------------------------------------------------
class Solution(BaseModel):
    """Podzbiór przedmiotów jako wektor 0/1 wraz z wartością i wagą"""
    bits: List[int]
    value: float
    weight: float

    @property
    def selected(self) -> List[int]:
        """Posortowane id wybranych przedmiotów"""
        return [i for i, b in enumerate(self.bits) if b]


# --- Konfiguracja parametrów -------------------------------------------------------------------
class SelectionConfig(BaseModel):
    """Selekcja turniejowa z zaszumioną akceptacją zwycięzcy"""
    type: Literal["tournament"] = "tournament"
    k: int = Field(2, ge=2, description="Rozmiar turnieju")
    p_win: float = Field(0.9, ge=0.0, le=1.0, description="Szansa wyboru najlepszego z turnieju")


class EarlyStopConfig(BaseModel):
    """Parametr wczesnego stopu (patience=0 wyłącza)"""
    patience: int = Field(0, ge=0)
    min_delta: float = 0.0


class SubsetConfig(BaseModel):
    """Opcjonalne przycięcie liczby przedmiotów (do testów / szybkich przebiegów)"""
    mode: Literal["none", "random", "first_k"] = "none"
    size: int = Field(0, ge=0, description="Maksymalna liczba przedmiotów po przycięciu")
    seed: int = 0


class TraceConfig(BaseModel):
    """Co zapisywać w śladzie przebiegu"""
    store_best_per_gen: bool = True
    store_avg_per_gen: bool = True


class GAParams(BaseModel):
    """Główny zbiór parametrów GA i serii prób"""
    population: Optional[int] = Field(None, ge=1, description="Rozmiar populacji; None = liczba przedmiotów")
    generations: Optional[int] = Field(None, ge=1, description="Liczba generacji; None = 10 * liczba przedmiotów")
    trials: int = Field(50, ge=1, description="Liczba niezależnych prób")
    pc: float = Field(0.7, ge=0.0, le=1.0, description="Prawdopodobieństwo krzyżowania (inaczej mutacja)")

    selection: SelectionConfig = Field(default_factory=SelectionConfig)             # type: ignore
    early_stop: EarlyStopConfig = Field(default_factory=EarlyStopConfig)            # type: ignore
    time_limit_sec: float = Field(0.0, ge=0.0, description="Limit czasu jednej próby; 0 = brak")

    seeds: List[int] = Field(default_factory=lambda: [0])

    subset: SubsetConfig = Field(default_factory=SubsetConfig)                      # type: ignore
    trace: TraceConfig = Field(default_factory=TraceConfig)

    def resolve_population(self, n_items: int) -> int:
        return self.population if self.population is not None else max(1, n_items)

    def resolve_generations(self, n_items: int) -> int:
        return self.generations if self.generations is not None else max(1, 10 * n_items)

    def trial_seeds(self) -> List[int]:
        """
        Seedy dla kolejnych prób; krótką listę dopełniamy deterministycznie
        kolejnymi liczbami, których jeszcze nie ma na liście.
        """
        seeds = list(self.seeds)[: self.trials]
        used = set(seeds)
        candidate = 0
        while len(seeds) < self.trials:
            if candidate not in used:
                seeds.append(candidate)
                used.add(candidate)
            candidate += 1
        return seeds
