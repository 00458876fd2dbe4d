"""
Plik: qkp/fitness.py

Cel i rola w projekcie
----------------------
Ten moduł zawiera całą logikę „matematyczną” dla kwadratowego problemu plecakowego:
- liczenie wagi i wartości rozwiązania (liniowo + wszystkie pary i<j wybranych przedmiotów),
- liczenie wag / wartości / fitnessu *dla całej populacji* (wektorowo w NumPy),
- gęstość krańcową przedmiotu względem częściowego rozwiązania (wspólna dla obu greedy),
- naprawę chromosomu: zdejmowanie przedmiotów przy przeładowaniu oraz
  losowe zachłanne dopełnianie wolnej pojemności.

Jak łączy się z innymi plikami:
- `greedy.py` używa `marginal_densities` / `marginal_density` i `make_solution`,
- `ga.py` używa `repair` / `greedy_fill` i fitnessu populacji,
- `runner.py` liczy fitness populacji w każdej generacji.

Założenia / konwencje:
- Chromosom = wektor bitów {0,1} o długości n (np.int8).
- Funkcje są „czyste” (nie robią I/O). Losowość pochodzi wyłącznie z generatora
  `rng` przekazanego przez wołającego.
- Gęstość dla wagi 0: +inf gdy licznik > 0, 0.0 gdy licznik == 0, -inf gdy licznik < 0.
"""
from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

from .model import Instance, Solution


# --- Pomocnicze: reprezentacja rozwiązania -------------------------------------------------------------
def bits_from_ids(ids: Iterable[int], n_items: int) -> np.ndarray:
  """Zamień zbiór id na wektor 0/1 (np.int8) długości n"""
  bits = np.zeros(n_items, dtype=np.int8)
  idx = np.fromiter(ids, dtype=np.intp)
  bits[idx] = 1
  return bits


def make_solution(instance: Instance, bits: np.ndarray) -> Solution:
  """Zbuduj `Solution` (bity + wartość + waga) z wektora 0/1"""
  x = np.asarray(bits, dtype=np.int8)
  return Solution(
    bits=[int(b) for b in x.tolist()],
    value=evaluate_value(instance, x),
    weight=evaluate_weight(instance, x),
  )



# --- Waga / wartość dla jednego rozwiązania -------------------------------------------------------------
def evaluate_weight(instance: Instance, bits: np.ndarray) -> float:
  """Zwróć łączną wagę rozwiązania"""
  return float(np.dot(np.asarray(bits, dtype=np.float64), instance.weights))


def evaluate_value(instance: Instance, bits: np.ndarray) -> float:
  """
  Zwróć wartość rozwiązania: suma wartości liniowych + suma p(i, j)
  po wszystkich wybranych parach i<j (każda para raz, bez par (i, i)).
  """
  sel = np.flatnonzero(np.asarray(bits))
  if sel.size == 0:
    return 0.0
  linear = float(instance.values[sel].sum())
  # sel jest rosnące, więc podmacierz trójkąta górnego zawiera tylko pary i<j
  pairs = float(instance.interactions.upper[np.ix_(sel, sel)].sum())
  return linear + pairs


def is_feasible(instance: Instance, bits: np.ndarray) -> bool:
  """Sprawdź czy rozwiązanie jest dopuszczalne: waga <= capacity"""
  return evaluate_weight(instance, bits) <= instance.capacity


def fitness(instance: Instance, bits: np.ndarray) -> float:
  """Fitness dla GA: wartość gdy rozwiązanie dopuszczalne, inaczej 0"""
  if not is_feasible(instance, bits):
    return 0.0
  return evaluate_value(instance, bits)



# --- Gęstość krańcowa --------------------------------------------------------------------------------------
def density_ratio(numerators: np.ndarray, weights: np.ndarray) -> np.ndarray:
  """Jedyna definicja dzielenia licznik / waga razem z konwencją dla wagi 0."""
  num, w = np.broadcast_arrays(
    np.asarray(numerators, dtype=np.float64), np.asarray(weights, dtype=np.float64)
  )
  out = np.zeros(num.shape, dtype=np.float64)
  zero = w == 0
  np.divide(num, w, out=out, where=~zero)
  out[zero & (num > 0)] = np.inf
  out[zero & (num < 0)] = -np.inf
  return out


def selection_mask(selected, n_items: int) -> np.ndarray:
  """
  Sprowadź wybór do maski float długości n.
  `np.ndarray` traktujemy jako wektor 0/1, każdą inną kolekcję (lista, krotka,
  zbiór) jako zbiór id wybranych przedmiotów.
  """
  if isinstance(selected, np.ndarray):
    mask = np.asarray(selected, dtype=np.float64)
    if mask.shape != (n_items,):
      raise ValueError(f"Maska wyboru musi mieć kształt ({n_items},), jest {mask.shape}")
    return mask
  return bits_from_ids(selected, n_items).astype(np.float64)


def marginal_densities(instance: Instance, candidates: np.ndarray, selected) -> np.ndarray:
  """
  Gęstość krańcowa dla wielu kandydatów naraz:
    (value[c] + sum_{s wybrane} p(c, s)) / weight[c]
  `selected` to wektor 0/1 długości n (np.ndarray) albo kolekcja id
  (przekątna macierzy = 0, więc kandydat obecny w wyborze nie liczy pary z samym sobą).
  """
  c = np.asarray(candidates, dtype=np.intp)
  mask = selection_mask(selected, instance.n_items)
  numer = instance.values[c] + instance.interactions.dense[c] @ mask
  return density_ratio(numer, instance.weights[c])


def marginal_density(instance: Instance, item_id: int, selected) -> float:
  """Gęstość krańcowa pojedynczego przedmiotu względem częściowego rozwiązania"""
  return float(marginal_densities(instance, np.array([item_id]), selected)[0])



# --- Waga / wartość / fitness dla populacji (batched) -------------------------------------------------------
def population_weights(instance: Instance, pop: np.ndarray) -> np.ndarray:
  """Zwróć wektor wag dla populacji: pop.shape=(P,n) -> (P,)"""
  return pop.astype(np.float64) @ instance.weights


def population_values(instance: Instance, pop: np.ndarray) -> np.ndarray:
  """Zwróć wektor wartości (liniowe + pary i<j) dla populacji: (P,n) -> (P,)"""
  x = pop.astype(np.float64)
  linear = x @ instance.values
  pairs = np.einsum("pi,ij,pj->p", x, instance.interactions.upper, x)
  return linear + pairs


def population_fitness(instance: Instance, pop: np.ndarray) -> np.ndarray:
  """Fitness całej populacji; osobniki niedopuszczalne dostają 0"""
  w_sum = population_weights(instance, pop)
  v_sum = population_values(instance, pop)
  return np.where(w_sum <= instance.capacity, v_sum, 0.0)



# --- Repair (naprawa) ----------------------------------------------------------------------------------
def greedy_fill(
  bits: np.ndarray,
  instance: Instance,
  rng: np.random.Generator,
  candidates: Optional[np.ndarray] = None,
) -> np.ndarray:
  """
  Losowe zachłanne dopełnienie: odwiedzamy kandydatów (domyślnie wszystkie
  przedmioty) w losowej kolejności i ustawiamy bit na 1, jeśli przedmiot
  jeszcze się mieści. Zwraca kopię.
  """
  x = np.array(bits, dtype=np.int8, copy=True)
  weights = instance.weights
  capacity = instance.capacity
  current_w = float(np.dot(x, weights))

  pool = np.arange(x.shape[0]) if candidates is None else np.asarray(candidates, dtype=np.intp)
  order = rng.permutation(pool)

  for j in order.tolist():
    if x[j] == 0 and current_w + weights[j] <= capacity:
      x[j] = 1
      current_w += float(weights[j])
  return x


def drop_overweight(bits: np.ndarray, instance: Instance) -> np.ndarray:
  """
  Jeśli waga > capacity, zdejmujemy kolejno przedmioty o najmniejszej gęstości
  krańcowej (względem całego bieżącego wyboru), aż rozwiązanie stanie się
  dopuszczalne. Przy równej gęstości - stabilnie po indeksie (rosnąco).
  """
  x = np.array(bits, dtype=np.int8, copy=True)
  weights = instance.weights

  current_w = float(np.dot(x, weights))
  if current_w <= instance.capacity:
    return x

  chosen_idx = np.flatnonzero(x == 1)
  ratio = marginal_densities(instance, chosen_idx, x)
  remove_seq = chosen_idx[np.lexsort((chosen_idx, ratio))]

  for j in remove_seq:
    if current_w <= instance.capacity:
      break
    x[j] = 0
    current_w -= float(weights[j])
  return x


def repair(
  bits: np.ndarray,
  instance: Instance,
  rng: np.random.Generator,
  candidates: Optional[np.ndarray] = None,
) -> np.ndarray:
  """Napraw chromosom: najpierw `drop_overweight`, potem `greedy_fill`. Wynik zawsze dopuszczalny."""
  return greedy_fill(drop_overweight(bits, instance), instance, rng, candidates)
