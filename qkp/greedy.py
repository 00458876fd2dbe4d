"""
Plik: qkp/greedy.py

Cel i rola w projekcie
----------------------
Dwie heurystyki konstrukcyjne dla QKP, punkt odniesienia dla GA:

1) `greedy_absolute` - gęstość „absolutna” liczona RAZ względem wszystkich
   przedmiotów (a nie względem rosnącego rozwiązania), jedno sortowanie
   malejąco i jedno przejście z dopełnianiem. Szybka, ale świadomie przybliżona:
   para z przedmiotem, który i tak nie wejdzie do plecaka, podbija gęstość.
   Gęstości nie przeliczamy w trakcie skanowania.

2) `greedy_relative` - wielostartowa: każdy przedmiot jest raz punktem
   startowym, a potem dokładamy przedmiot o najwyższej gęstości krańcowej
   względem *bieżącego* wyboru, dopóki cokolwiek się mieści. Zwraca najlepsze
   z n rozwiązań. Złożoność O(n^3) w najgorszym przypadku.

Jak łączy się z resztą:
- gęstości liczy `fitness.marginal_densities` (jedna definicja dla obu heurystyk),
- wynik to `model.Solution`, który `cli.py` wypisuje obok wyników GA.

Deterministyczność:
- brak losowości; remisy w `greedy_absolute` rozstrzyga rosnące id,
  w `greedy_relative` pierwszy napotkany przedmiot (najniższy indeks).
"""
from __future__ import annotations

import numpy as np

from .fitness import bits_from_ids, evaluate_value, make_solution, marginal_densities
from .model import Instance, Solution, ensure_solvable


# --- Greedy absolutny --------------------------------------------------------------------------------------
def absolute_densities(instance: Instance) -> np.ndarray:
    """Gęstość każdego przedmiotu względem pełnego zbioru przedmiotów"""
    n = instance.n_items
    everything = np.ones(n, dtype=np.int8)
    return marginal_densities(instance, np.arange(n), everything)


def absolute_order(instance: Instance) -> np.ndarray:
    """Kolejność skanowania: gęstość malejąco, przy remisie id rosnąco"""
    dens = absolute_densities(instance)
    ids = np.arange(instance.n_items)
    return np.lexsort((ids, -dens))


def greedy_absolute(instance: Instance) -> Solution:
    """Jedno przejście po przedmiotach w kolejności `absolute_order`, bez cofania"""
    ensure_solvable(instance)
    weights = instance.weights
    capacity = instance.capacity

    chosen = []
    current_w = 0.0
    for j in absolute_order(instance).tolist():
        if current_w + weights[j] <= capacity:
            chosen.append(j)
            current_w += float(weights[j])

    return make_solution(instance, bits_from_ids(chosen, instance.n_items))



# --- Greedy relatywny ------------------------------------------------------------------------------------
def relative_run_from(instance: Instance, start: int) -> np.ndarray:
    """
    Jeden przebieg konstrukcyjny od przedmiotu `start`; zwraca wektor 0/1.
    Zbiór kandydatów budujemy od nowa w każdym kroku (filtrowanie, bez
    usuwania elementów w trakcie iteracji). Przedmiot o gęstości -inf nigdy
    nie jest dokładany; gdy zostały tylko takie, przebieg się kończy.
    """
    n = instance.n_items
    weights = instance.weights
    capacity = instance.capacity

    mask = np.zeros(n, dtype=np.int8)
    mask[start] = 1
    current_w = float(weights[start])

    while True:
        remaining = np.flatnonzero(mask == 0)
        fits = remaining[current_w + weights[remaining] <= capacity]
        if fits.size == 0:
            break
        dens = marginal_densities(instance, fits, mask)
        # gęstość -inf (zerowa waga, ujemny wkład) tylko obniża wartość
        keep = dens > -np.inf
        if not keep.any():
            break
        fits, dens = fits[keep], dens[keep]
        best = int(fits[int(np.argmax(dens))])      # argmax = pierwszy z maksimów
        mask[best] = 1
        current_w += float(weights[best])

    return mask


def greedy_relative(instance: Instance) -> Solution:
    """
    Najlepsze rozwiązanie ze wszystkich startów.

    Przedmiot cięższy niż cała pojemność nie jest punktem startowym (dałby
    rozwiązanie niedopuszczalne). Punktem odniesienia jest pusty wybór o
    wartości 0, zastępowany tylko przez ściśle lepsze rozwiązanie.
    """
    ensure_solvable(instance)
    n = instance.n_items
    weights = instance.weights

    best_bits = np.zeros(n, dtype=np.int8)
    best_value = 0.0

    for start in range(n):
        if weights[start] > instance.capacity:
            continue
        bits = relative_run_from(instance, start)
        value = evaluate_value(instance, bits)
        if value > best_value:
            best_value = value
            best_bits = bits

    return make_solution(instance, best_bits)
