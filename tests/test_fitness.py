"""
Testy funkcji celu, gęstości krańcowej i naprawy chromosomu.
"""

import unittest

import numpy as np

from qkp.fitness import (
    bits_from_ids,
    density_ratio,
    drop_overweight,
    evaluate_value,
    evaluate_weight,
    fitness,
    greedy_fill,
    is_feasible,
    make_solution,
    marginal_density,
    population_fitness,
    population_values,
    repair,
)
from qkp.model import make_instance


def three_items(capacity=10.0, weights=(1, 1, 1)):
    return make_instance(
        weights=list(weights),
        values=[10, 20, 30],
        capacity=capacity,
        pairwise=[[0, 5, -3], [5, 0, 8], [-3, 8, 0]],
    )


def random_instance(rng, n=20):
    w = rng.integers(1, 20, size=n)
    v = rng.integers(-5, 30, size=n)
    upper = np.triu(rng.integers(-10, 20, size=(n, n)), k=1)
    return make_instance(
        weights=w.tolist(),
        values=v.tolist(),
        capacity=float(w.sum()) / 3,
        pairwise=(upper + upper.T).tolist(),
    )


class TestObjective(unittest.TestCase):
    """Wartość = liniowe + każda wybrana para i<j dokładnie raz."""

    def test_three_items_all_selected(self):
        inst = three_items()
        self.assertEqual(evaluate_value(inst, np.array([1, 1, 1])), 70.0)

    def test_subset_values(self):
        inst = three_items()
        self.assertEqual(evaluate_value(inst, bits_from_ids([0, 2], 3)), 37.0)
        self.assertEqual(evaluate_value(inst, bits_from_ids([1], 3)), 20.0)
        self.assertEqual(evaluate_value(inst, np.zeros(3, dtype=np.int8)), 0.0)

    def test_weight_and_feasibility(self):
        inst = three_items(capacity=2.0, weights=(1, 1, 1))
        self.assertEqual(evaluate_weight(inst, np.array([1, 1, 1])), 3.0)
        self.assertFalse(is_feasible(inst, np.array([1, 1, 1])))
        self.assertTrue(is_feasible(inst, np.array([1, 0, 1])))

    def test_fitness_zeroes_infeasible(self):
        inst = three_items(capacity=2.0)
        self.assertEqual(fitness(inst, np.array([1, 1, 1])), 0.0)
        self.assertEqual(fitness(inst, np.array([0, 1, 1])), 58.0)

    def test_population_matches_single(self):
        rng = np.random.default_rng(3)
        inst = random_instance(rng)
        pop = rng.integers(0, 2, size=(12, inst.n_items), dtype=np.int8)
        expected = [evaluate_value(inst, row) for row in pop]
        np.testing.assert_allclose(population_values(inst, pop), expected)

    def test_population_fitness(self):
        inst = three_items(capacity=2.0)
        pop = np.array([[1, 1, 1], [1, 0, 1], [0, 0, 0]], dtype=np.int8)
        np.testing.assert_array_equal(population_fitness(inst, pop), [0.0, 37.0, 0.0])

    def test_make_solution(self):
        inst = three_items()
        sol = make_solution(inst, bits_from_ids([1, 2], 3))
        self.assertEqual(sol.bits, [0, 1, 1])
        self.assertEqual(sol.value, 58.0)
        self.assertEqual(sol.weight, 2.0)


class TestMarginalDensity(unittest.TestCase):
    """Gęstość krańcowa względem częściowego rozwiązania."""

    def test_against_selected(self):
        inst = three_items(weights=(1, 1, 5))
        # (30 - 3 + 8) / 5
        self.assertAlmostEqual(marginal_density(inst, 2, bits_from_ids([0, 1], 3)), 7.0)
        self.assertAlmostEqual(marginal_density(inst, 2, np.zeros(3)), 6.0)

    def test_selected_given_as_ids(self):
        inst = three_items(weights=(1, 1, 5))
        self.assertAlmostEqual(marginal_density(inst, 2, [0, 1]), 7.0)
        self.assertAlmostEqual(marginal_density(inst, 2, {0, 1}), 7.0)
        self.assertAlmostEqual(marginal_density(inst, 2, ()), 6.0)

    def test_mask_of_wrong_length(self):
        with self.assertRaises(ValueError):
            marginal_density(three_items(), 0, np.ones(2))

    def test_own_bit_does_not_count(self):
        inst = three_items()
        self.assertAlmostEqual(marginal_density(inst, 0, np.ones(3)), 10 + 5 - 3)

    def test_zero_weight_convention(self):
        inst = make_instance([0, 0, 0, 1], [5, -5, 0, 1], capacity=1)
        empty = np.zeros(4)
        self.assertEqual(marginal_density(inst, 0, empty), np.inf)
        self.assertEqual(marginal_density(inst, 1, empty), -np.inf)
        self.assertEqual(marginal_density(inst, 2, empty), 0.0)
        self.assertEqual(marginal_density(inst, 3, empty), 1.0)

    def test_density_ratio_no_nan(self):
        out = density_ratio(np.array([4.0, 0.0, -1.0, 3.0]), np.array([2.0, 0.0, 0.0, 0.0]))
        np.testing.assert_array_equal(out, [2.0, 0.0, -np.inf, np.inf])
        self.assertFalse(np.isnan(out).any())


class TestRepair(unittest.TestCase):
    """Naprawa nigdy nie zostawia wagi > capacity."""

    def test_repeated_repair_stays_feasible(self):
        rng = np.random.default_rng(11)
        inst = random_instance(rng, n=25)
        for _ in range(50):
            bits = rng.integers(0, 2, size=inst.n_items, dtype=np.int8)
            for _ in range(3):
                bits = repair(bits, inst, rng)
                self.assertLessEqual(evaluate_weight(inst, bits), inst.capacity)

    def test_fill_is_maximal(self):
        rng = np.random.default_rng(5)
        inst = random_instance(rng, n=15)
        bits = greedy_fill(np.zeros(inst.n_items, dtype=np.int8), inst, rng)
        slack = inst.capacity - evaluate_weight(inst, bits)
        for j in np.flatnonzero(bits == 0):
            self.assertGreater(inst.weights[j], slack)

    def test_fill_respects_candidates(self):
        inst = make_instance([1, 1, 1, 1], [1, 1, 1, 1], capacity=10)
        rng = np.random.default_rng(0)
        bits = greedy_fill(np.zeros(4, dtype=np.int8), inst, rng, candidates=np.array([1, 3]))
        np.testing.assert_array_equal(bits, [0, 1, 0, 1])

    def test_fill_returns_copy(self):
        inst = make_instance([1, 1], [1, 1], capacity=10)
        bits = np.zeros(2, dtype=np.int8)
        greedy_fill(bits, inst, np.random.default_rng(0))
        np.testing.assert_array_equal(bits, [0, 0])

    def test_drop_lowest_density_first(self):
        # gęstości względem pełnego wyboru: 0 -> 10, 1 -> 1, 2 -> 5
        inst = make_instance([1, 1, 1], [10, 1, 5], capacity=2)
        np.testing.assert_array_equal(drop_overweight(np.ones(3, dtype=np.int8), inst), [1, 0, 1])

    def test_drop_leaves_feasible_untouched(self):
        inst = make_instance([1, 1, 1], [10, 1, 5], capacity=3)
        np.testing.assert_array_equal(drop_overweight(np.ones(3, dtype=np.int8), inst), [1, 1, 1])


if __name__ == "__main__":
    unittest.main()
