"""
Plik: qkp/runner.py

Cel i rola w projekcie
----------------------
To jest „kierownik” uruchomień (high-level runner) dla GA.
Ten moduł:
1) `run_single_ga` - jedna próba GA dla jednej instancji i jednego seeda:
   - inicjalizuje generator losowy NumPy (deterministycznie z seed),
   - buduje populację startową (`ga.init_population`),
   - przez dokładnie G generacji tworzy nowe pokolenie (`ga.next_generation`)
     z elitą (najlepszy dotąd osobnik) w slocie 0 od drugiej generacji,
   - śledzi najlepszego osobnika w CAŁYM przebiegu (ślad best jest niemalejący),
   - opcjonalnie: early-stop (patience/min_delta), limit czasu oraz
     kooperacyjne przerwanie (`should_stop`) sprawdzane na granicy generacji.
2) `run_trials` - seria niezależnych prób (każda z własnym generatorem,
   wspólna jest tylko niezmienna instancja) + średnia najlepszych fitnessów.
3) `run_experiment` - instancje z pliku -> subset -> `run_trials` -> JSONL.

Jak łączy się z resztą:
- `cli.py` woła `run_experiment(...)`,
- `io.py` obsługuje wczytywanie instancji oraz zapis wyników JSONL,
- `fitness.py` liczy fitness populacji, `ga.py` tworzy nowe pokolenia.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from rich.console import Console

from .fitness import evaluate_weight, make_solution, population_fitness
from .ga import init_population, next_generation
from .io import apply_subset, iter_instances, write_run_result
from .model import GAParams, Instance, Solution, ensure_solvable

console = Console()

StopFn = Callable[[], bool]


# --- Pomocnicze: kodowanie chromosomu do JSON ----------------------------------------------------------------------
def bits_to_str(bits: np.ndarray) -> str:
    """Zamień wektor 0/1 na krótki zapis tekstowy '010101...' (mniejsze wyniki w JSONL)."""
    return "".join("1" if b else "0" for b in bits.tolist())



# --- Wyniki --------------------------------------------------------------------------------------------------------
@dataclass
class GAResult:
    """Wynik jednej próby GA"""
    seed: int
    best_bits: np.ndarray
    best_fitness: float
    best_weight: float
    gen_reached: int
    stopped_reason: str
    time_sec: float
    trace_best: List[float] = field(default_factory=list)
    trace_avg: List[float] = field(default_factory=list)

    def solution(self, instance: Instance) -> Solution:
        return make_solution(instance, self.best_bits)

    def to_record(self, instance: Instance, params: GAParams) -> Dict[str, Any]:
        """Słownik gotowy do zapisania jako 1 linia w JSONL."""
        record: Dict[str, Any] = {
            "instance_meta": instance.meta or {},
            "capacity": float(instance.capacity),
            "n_items": instance.n_items,

            "seed": self.seed,
            "params": params.model_dump(mode="json"),

            "gen_reached": self.gen_reached,
            "time_sec": self.time_sec,

            "best_fitness": self.best_fitness,
            "best_weight": self.best_weight,
            "feasible": bool(self.best_weight <= instance.capacity),
            "best_bits": bits_to_str(self.best_bits),

            "stopped_reason": self.stopped_reason,
        }
        # Trace dopisujemy tylko jeśli włączony (żeby wyniki nie były gigantyczne)
        if params.trace.store_best_per_gen:
            record["trace_best_fitness"] = self.trace_best
        if params.trace.store_avg_per_gen:
            record["trace_avg_fitness"] = self.trace_avg
        return record


@dataclass
class TrialStats:
    """Zbiorcze wyniki serii prób"""
    results: List[GAResult]

    @property
    def per_trial_best(self) -> List[float]:
        return [r.best_fitness for r in self.results]

    @property
    def mean_fitness(self) -> float:
        if not self.results:
            return 0.0
        return float(np.mean(self.per_trial_best))

    @property
    def best(self) -> Optional[GAResult]:
        if not self.results:
            return None
        return max(self.results, key=lambda r: r.best_fitness)



# --- Pojedynczy run GA dla jednej instancji ------------------------------------------------------------------------
def run_single_ga(
    instance: Instance,
    params: GAParams,
    seed: int,
    log_every: int = 50,
    should_stop: Optional[StopFn] = None,
    out: Optional[Console] = None,
) -> GAResult:
    """
    Uruchom GA dla pojedynczej instancji i pojedynczego seeda.
    Bez warunków stopu wykonuje dokładnie `params.resolve_generations(n)` generacji.
    """
    ensure_solvable(instance)
    out = out or console
    stopped_reason = "max_generations"
    t0 = time.time()

    n = instance.n_items
    pop_size = params.resolve_population(n)
    generations = params.resolve_generations(n)
    capacity = float(instance.capacity)

    # 1) RNG deterministyczny - jedyne źródło losowości w całym przebiegu
    rng = np.random.default_rng(seed)

    # 2) Populacja startowa (każdy osobnik dopuszczalny z konstrukcji)
    pop = init_population(instance, pop_size, rng)
    fitness = population_fitness(instance, pop)

    # 3) Tracking best global
    best_idx = int(np.argmax(fitness))
    best_fit = float(fitness[best_idx])
    best_bits = pop[best_idx].copy()

    trace_best: List[float] = []
    trace_avg: List[float] = []

    # 4) Early-stop bookkeeping
    patience = int(params.early_stop.patience)
    min_delta = float(params.early_stop.min_delta)
    no_improve = 0
    best_ref = best_fit

    # 5) Pętla generacji
    gen_reached = 0
    for gen in range(generations):
        if should_stop is not None and should_stop():
            stopped_reason = "cancelled"
            break
        if params.time_limit_sec and (time.time() - t0) >= params.time_limit_sec:
            stopped_reason = "time_limit"
            out.print("[[red]STOPPED[/red]][white]: Time limit reached.[/white]")
            break

        elite = best_bits if gen > 0 else None
        pop = next_generation(pop, fitness, instance, params, rng, elite=elite)
        fitness = population_fitness(instance, pop)
        gen_reached = gen + 1

        # aktualizacja global best
        cur_best_idx = int(np.argmax(fitness))
        cur_best_fit = float(fitness[cur_best_idx])
        if cur_best_fit > best_fit:
            best_fit = cur_best_fit
            best_bits = pop[cur_best_idx].copy()

        if params.trace.store_best_per_gen:
            trace_best.append(best_fit)
        if params.trace.store_avg_per_gen:
            trace_avg.append(float(np.mean(fitness)))

        if log_every > 0 and (gen == 0 or gen_reached % log_every == 0):
            best_weight = evaluate_weight(instance, best_bits)
            fill = best_weight / capacity * 100 if capacity > 0 else 0.0
            out.print(
                f"[[bold yellow]Generation[/bold yellow]] [bold white]{gen_reached}/{generations}[/bold white]  "
                f"[bold green]best_fit[/bold green] = [white]{best_fit:.3f}[/white]  "
                f"[bold green]best_w[/bold green] = [white]{best_weight:.2f}/{capacity:.2f}[/white] [cyan](≈{fill:.3f}%)[/cyan]  "
                f"[bold green]elapsed[/bold green] = [white]{time.time() - t0:.1f}s[/white]"
            )

        # early-stop: jeśli brak poprawy o min_delta przez patience generacji
        if patience > 0:
            if best_fit > best_ref + min_delta:
                best_ref = best_fit
                no_improve = 0
            else:
                no_improve += 1
                if no_improve >= patience:
                    stopped_reason = "early_stop"
                    out.print("[[red]STOPPED[/red]][white]: Early stopping constraint reached.[/white]")
                    break

    return GAResult(
        seed=seed,
        best_bits=best_bits,
        best_fitness=best_fit,
        best_weight=evaluate_weight(instance, best_bits),
        gen_reached=gen_reached,
        stopped_reason=stopped_reason,
        time_sec=float(time.time() - t0),
        trace_best=trace_best,
        trace_avg=trace_avg,
    )



# --- Seria prób -----------------------------------------------------------------------------------------------------
def run_trials(
    instance: Instance,
    params: GAParams,
    log_every: int = 0,
    should_stop: Optional[StopFn] = None,
    out: Optional[Console] = None,
) -> TrialStats:
    """
    Uruchom `params.trials` niezależnych prób GA. Każda próba ma własny
    generator (seed z `params.trial_seeds()`), więc próby nie dzielą stanu.
    """
    ensure_solvable(instance)
    out = out or console
    results: List[GAResult] = []

    for t, seed in enumerate(params.trial_seeds()):
        if should_stop is not None and should_stop():
            break
        if log_every > 0:
            out.print(f"[bold green][START][/bold green] [[yellow]Trial[/yellow]: [white]{t + 1}/{params.trials}[/white]] [[yellow]Seed[/yellow]: [white]{seed}[/white]]")
        res = run_single_ga(instance, params, seed, log_every=log_every, should_stop=should_stop, out=out)
        results.append(res)
        if log_every > 0:
            out.print(f"[bold]Trial {t + 1}[/bold]: best fitness = [white]{res.best_fitness:.3f}[/white]")

    return TrialStats(results=results)



# --- Publiczny interfejs: uruchom eksperymenty ---------------------------------------------------------------------
def run_experiment(
    instance_path: Path,
    params: GAParams,
    out_path: Path,
    log_every: int = 50,
    out: Optional[Console] = None,
) -> List[TrialStats]:
    """
    Uruchom serię eksperymentów:
    - wczytuje instancje z instance_path,
    - stosuje subsetowanie zgodnie z params.subset,
    - dla każdej instancji uruchamia `params.trials` prób,
    - zapisuje każdą próbę do out_path jako 1 linia JSON.
    """
    out = out or console
    all_stats: List[TrialStats] = []

    for inst in iter_instances(instance_path):
        inst2 = apply_subset(inst, params.subset)
        name = (inst2.meta or {}).get("name", "?")
        line = "=" * 120
        out.print(f"\n[bold green][START][/bold green] [[yellow]Instance[/yellow]: [white]{name}[/white]] [[yellow]n[/yellow]=[white]{inst2.n_items}[/white]]")
        out.print(f"[white]{line}[/white]")

        stats = run_trials(inst2, params, log_every=log_every, out=out)
        for r_idx, res in enumerate(stats.results):
            record = res.to_record(inst2, params)
            # Dodatkowe pola identyfikacyjne „run id”
            record["run_index"] = r_idx
            write_run_result(record, out_path)

        out.print(f"\n[bold]Mean Fitness Over {len(stats.results)} Trials[/bold] = [white]{stats.mean_fitness:.3f}[/white]")
        all_stats.append(stats)

    return all_stats
