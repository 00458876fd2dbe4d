"""
Plik: qkp/ga.py

Cel i rola w projekcie
----------------------
Ten moduł implementuje operatory algorytmu genetycznego dla QKP:
- reprezentacja chromosomu: wektor 0/1 (np.int8) długości n,
- inicjalizacja populacji: losowa kolejność + zachłanne dopełnianie
  (każdy osobnik dopuszczalny już przy starcie),
- selekcja turniejowa z zaszumioną akceptacją (z p_win najlepszy, inaczej drugi),
- krzyżowanie „iloczynowe”: dziecko dziedziczy tylko bity wspólne obu rodziców,
  potem naprawa / dopełnienie w losowej kolejności,
- mutacja adaptacyjna: każdy wybrany bit gaśnie z p = 2/|wybrane|, potem
  dopełnienie przedmiotami, których rodzic nie miał,
- elityzm: najlepszy dotąd osobnik w slocie 0 nowego pokolenia.

Jak łączy się z resztą:
- `fitness.py` dostarcza naprawę (`repair`) i fitness populacji,
- `runner.py` wywołuje `init_population` i `next_generation` w pętli po
  generacjach i śledzi najlepszego osobnika w całym przebiegu.

Założenia:
- Populacja jest przechowywana jako macierz `np.ndarray` o kształcie (P, n)
  z dtype=np.int8 i wartościami {0,1}; operatory zawsze zwracają kopie.
- RNG jest obiektem `numpy.random.Generator` przekazanym z `runner.py`,
  co gwarantuje powtarzalność eksperymentów.
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from .fitness import greedy_fill, repair
from .model import GAParams, Instance



# --- Inicjalizacja populacji ----------------------------------------------------------------------------
def init_population(instance: Instance, pop_size: int, rng: np.random.Generator) -> np.ndarray:
  """Stwórz populację startową (P, n): każdy wiersz to losowe zachłanne wypełnienie pustego plecaka"""
  n = instance.n_items
  pop = np.zeros((pop_size, n), dtype=np.int8)
  for i in range(pop_size):
    pop[i] = greedy_fill(pop[i], instance, rng)
  return pop



# --- Selekcja --------------------------------------------------------------------------------------------
def tournament_select(fitness: np.ndarray, k: int, p_win: float, rng: np.random.Generator) -> int:
  """
  Wybierz indeks jednego rodzica metodą turniejową:
   - losujemy min(k, P) *różnych* kandydatów,
   - sortujemy malejąco po fitness (remis: kolejność losowania),
   - z prawdopodobieństwem p_win zwracamy pierwszego, inaczej drugiego.
  """
  size = min(k, fitness.shape[0])
  idx = rng.choice(fitness.shape[0], size=size, replace=False)
  ranked = idx[np.argsort(-fitness[idx], kind="stable")]
  if ranked.size == 1:
    return int(ranked[0])
  return int(ranked[0]) if rng.random() < p_win else int(ranked[1])



# --- Krzyżowanie -----------------------------------------------------------------------------------------
def intersection_child(p1: np.ndarray, p2: np.ndarray) -> np.ndarray:
  """Dziecko przed naprawą: bit = 1 tylko tam, gdzie oba rodzice mają 1"""
  return (p1 & p2).astype(np.int8)


def crossover(p1: np.ndarray, p2: np.ndarray, instance: Instance, rng: np.random.Generator) -> np.ndarray:
  """Krzyżowanie iloczynowe + dopełnienie wolnej pojemności w losowej kolejności"""
  return repair(intersection_child(p1, p2), instance, rng)



# --- Mutacja -------------------------------------------------------------------------------------------------
def mutation_rate(n_selected: int) -> float:
  """p = 2/|wybrane|; przy pustym wyborze 0 (nie dzielimy przez zero)"""
  if n_selected == 0:
    return 0.0
  return 2.0 / n_selected


def mutate(parent: np.ndarray, instance: Instance, rng: np.random.Generator) -> np.ndarray:
  """
  Mutacja adaptacyjna:
  - każdy wybrany bit gasimy niezależnie z p = mutation_rate(|wybrane|),
  - zwolnioną pojemność dopełniamy przedmiotami, których rodzic NIE miał
    (w losowej kolejności), więc zgaszony bit nie wraca od razu.
  """
  child = parent.copy()
  included = np.flatnonzero(child == 1)
  excluded = np.flatnonzero(child == 0)

  pm = mutation_rate(included.size)
  if pm > 0:
    flips = rng.random(included.size) < pm
    child[included[flips]] = 0

  return repair(child, instance, rng, candidates=excluded)



# --- Jedna generacja -------------------------------------------------------------------------------------------
def make_offspring(
    pop: np.ndarray,
    fitness: np.ndarray,
    instance: Instance,
    params: GAParams,
    rng: np.random.Generator,
) -> np.ndarray:
    """Dwa turnieje, potem krzyżowanie (z p = pc) albo mutacja pierwszego rodzica"""
    k, p_win = params.selection.k, params.selection.p_win
    p1 = pop[tournament_select(fitness, k, p_win, rng)]
    p2 = pop[tournament_select(fitness, k, p_win, rng)]

    if rng.random() < params.pc:
        return crossover(p1, p2, instance, rng)
    return mutate(p1, instance, rng)


def next_generation(
    pop: np.ndarray,
    fitness: np.ndarray,
    instance: Instance,
    params: GAParams,
    rng: np.random.Generator,
    elite: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Zbuduj następne pokolenie (całe od nowa).
    Jeśli podano `elite`, jego kopia trafia bez zmian do slotu 0 (późniejsze
    zmiany tablicy `elite` nie ruszają nowej populacji), reszta to nowe potomstwo.
    Uwaga: tu nie liczymy fitnessu (to robi `fitness.population_fitness`).
    """
    P = pop.shape[0]
    new_pop = np.empty_like(pop, dtype=np.int8)

    start = 0
    if elite is not None:
        new_pop[0] = elite
        start = 1

    for i in range(start, P):
        new_pop[i] = make_offspring(pop, fitness, instance, params, rng)

    return new_pop
