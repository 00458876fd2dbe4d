"""
Testy operatorów GA: inicjalizacja, selekcja, krzyżowanie, mutacja, elityzm.
"""

import unittest

import numpy as np

from qkp.fitness import evaluate_weight, population_fitness
from qkp.ga import (
    crossover,
    init_population,
    intersection_child,
    mutate,
    mutation_rate,
    next_generation,
    tournament_select,
)
from qkp.model import GAParams, make_instance


def random_instance(seed, n=20):
    rng = np.random.default_rng(seed)
    w = rng.integers(1, 20, size=n)
    v = rng.integers(0, 30, size=n)
    upper = np.triu(rng.integers(-5, 15, size=(n, n)), k=1)
    return make_instance(w.tolist(), v.tolist(), capacity=float(w.sum()) / 3, pairwise=(upper + upper.T).tolist())


class TestInitialization(unittest.TestCase):

    def setUp(self):
        self.inst = random_instance(0)
        self.rng = np.random.default_rng(42)

    def test_shape_and_dtype(self):
        pop = init_population(self.inst, 10, self.rng)
        self.assertEqual(pop.shape, (10, self.inst.n_items))
        self.assertEqual(pop.dtype, np.int8)

    def test_feasible_and_maximal(self):
        pop = init_population(self.inst, 15, self.rng)
        for row in pop:
            w = evaluate_weight(self.inst, row)
            self.assertLessEqual(w, self.inst.capacity)
            for j in np.flatnonzero(row == 0):
                self.assertGreater(w + self.inst.weights[j], self.inst.capacity)

    def test_reproducible(self):
        a = init_population(self.inst, 8, np.random.default_rng(7))
        b = init_population(self.inst, 8, np.random.default_rng(7))
        np.testing.assert_array_equal(a, b)


class TestTournament(unittest.TestCase):

    def test_winner_with_certainty(self):
        rng = np.random.default_rng(0)
        fit = np.array([1.0, 5.0, 3.0])
        for _ in range(20):
            self.assertEqual(tournament_select(fit, 3, 1.0, rng), 1)

    def test_second_when_winner_rejected(self):
        rng = np.random.default_rng(0)
        fit = np.array([1.0, 5.0, 3.0])
        for _ in range(20):
            self.assertEqual(tournament_select(fit, 3, 0.0, rng), 2)

    def test_draws_are_distinct(self):
        # przy losowaniu bez zwracania drugi z dwóch to zawsze słabszy osobnik
        rng = np.random.default_rng(1)
        fit = np.array([0.0, 10.0])
        for _ in range(20):
            self.assertEqual(tournament_select(fit, 2, 0.0, rng), 0)

    def test_tournament_larger_than_population(self):
        rng = np.random.default_rng(0)
        self.assertEqual(tournament_select(np.array([7.0]), 2, 0.9, rng), 0)

    def test_win_rate_close_to_p_win(self):
        rng = np.random.default_rng(123)
        fit = np.array([1.0, 2.0])
        wins = sum(tournament_select(fit, 2, 0.9, rng) == 1 for _ in range(2000))
        self.assertGreater(wins, 1700)
        self.assertLess(wins, 1900)


class TestVariation(unittest.TestCase):

    def setUp(self):
        self.inst = random_instance(3)
        self.rng = np.random.default_rng(9)
        self.pop = init_population(self.inst, 12, self.rng)

    def test_intersection_is_subset_of_both_parents(self):
        for i in range(len(self.pop) - 1):
            p1, p2 = self.pop[i], self.pop[i + 1]
            child = intersection_child(p1, p2)
            self.assertTrue(np.all(child <= p1))
            self.assertTrue(np.all(child <= p2))

    def test_crossover_keeps_common_bits_and_is_feasible(self):
        for i in range(len(self.pop) - 1):
            p1, p2 = self.pop[i], self.pop[i + 1]
            child = crossover(p1, p2, self.inst, self.rng)
            self.assertTrue(np.all(child >= intersection_child(p1, p2)))
            self.assertLessEqual(evaluate_weight(self.inst, child), self.inst.capacity)

    def test_mutation_rate(self):
        self.assertEqual(mutation_rate(0), 0.0)
        self.assertEqual(mutation_rate(4), 0.5)
        self.assertEqual(mutation_rate(1), 2.0)

    def test_mutation_copies_parent(self):
        parent = self.pop[0].copy()
        child = mutate(self.pop[0], self.inst, self.rng)
        np.testing.assert_array_equal(self.pop[0], parent)
        self.assertLessEqual(evaluate_weight(self.inst, child), self.inst.capacity)

    def test_mutation_of_empty_chromosome(self):
        empty = np.zeros(self.inst.n_items, dtype=np.int8)
        child = mutate(empty, self.inst, self.rng)
        self.assertLessEqual(evaluate_weight(self.inst, child), self.inst.capacity)
        self.assertGreater(child.sum(), 0)

    def test_single_item_always_dropped(self):
        # p = 2/1, więc jedyny wybrany bit gaśnie i nie wraca w dopełnieniu
        inst = make_instance([1, 1, 1], [1, 1, 1], capacity=1)
        child = mutate(np.array([1, 0, 0], dtype=np.int8), inst, np.random.default_rng(0))
        self.assertEqual(child[0], 0)
        self.assertEqual(child.sum(), 1)


class TestGeneration(unittest.TestCase):

    def setUp(self):
        self.inst = random_instance(5)
        self.params = GAParams(population=10, generations=5)

    def test_elite_in_slot_zero(self):
        rng = np.random.default_rng(2)
        pop = init_population(self.inst, 10, rng)
        fit = population_fitness(self.inst, pop)
        elite = pop[int(np.argmax(fit))].copy()
        new_pop = next_generation(pop, fit, self.inst, self.params, rng, elite=elite)
        self.assertEqual(new_pop.shape, pop.shape)
        np.testing.assert_array_equal(new_pop[0], elite)

    def test_elite_slot_is_a_copy(self):
        rng = np.random.default_rng(3)
        pop = init_population(self.inst, 10, rng)
        fit = population_fitness(self.inst, pop)
        elite = pop[int(np.argmax(fit))].copy()
        kept = elite.copy()
        new_pop = next_generation(pop, fit, self.inst, self.params, rng, elite=elite)
        elite[:] = 1 - elite
        np.testing.assert_array_equal(new_pop[0], kept)
        self.assertFalse(np.shares_memory(new_pop, elite))

    def test_parents_untouched(self):
        rng = np.random.default_rng(2)
        pop = init_population(self.inst, 10, rng)
        before = pop.copy()
        next_generation(pop, population_fitness(self.inst, pop), self.inst, self.params, rng)
        np.testing.assert_array_equal(pop, before)

    def test_every_generation_feasible_with_elite(self):
        rng = np.random.default_rng(4)
        pop = init_population(self.inst, 10, rng)
        fit = population_fitness(self.inst, pop)
        best = pop[int(np.argmax(fit))].copy()
        best_fit = float(fit.max())
        for _ in range(10):
            pop = next_generation(pop, fit, self.inst, self.params, rng, elite=best)
            fit = population_fitness(self.inst, pop)
            for row in pop:
                self.assertLessEqual(evaluate_weight(self.inst, row), self.inst.capacity)
            self.assertGreaterEqual(float(fit.max()), best_fit)
            if fit.max() > best_fit:
                best_fit = float(fit.max())
                best = pop[int(np.argmax(fit))].copy()


if __name__ == "__main__":
    unittest.main()
