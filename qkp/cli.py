"""
Plik: qkp/cli.py

Cel i rola w projekcie
----------------------
Interfejs wiersza poleceń (CLI):
- `greedy`  - uruchamia obie heurystyki zachłanne i wypisuje wynik w tabeli,
- `run-ga`  - wczytuje config (np. `configs/base.json`), pozwala *nadpisać*
  wybrane parametry z linii poleceń (np. `--pop`, `--pc`), uruchamia serię
  prób GA i dopisuje wyniki do `*.jsonl`,
- `convert` - konwersja instancji między formatem tekstowym a JSON.

Jak łączy się z resztą:
- Używa `qkp/io.py` do I/O i `qkp/model.py` do walidacji configu,
- Do uruchomienia GA woła `runner.run_experiment`.

Komenda przewodnia: `python -m qkp.cli run-ga --instance ... --config ... --out ...`
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich import print
from rich.table import Table

from .greedy import greedy_absolute, greedy_relative
from .io import apply_subset, iter_instances, read_json, try_load_instance, write_instance
from .model import GAParams
from .runner import run_experiment


app = typer.Typer(add_completion=False, help="CLI do heurystyk i GA dla kwadratowego problemu plecakowego.")


def _merge_overrides(
    params: GAParams,
    pop: Optional[int],
    generations: Optional[int],
    trials: Optional[int],
    pc: Optional[float],
    k: Optional[int],
    p_win: Optional[float],
    patience: Optional[int],
    min_delta: Optional[float],
    time_limit: Optional[float],
    subset_mode: Optional[str],
    subset_size: Optional[int],
    subset_seed: Optional[int],
    seeds_csv: Optional[str],
    ) -> GAParams:
    """Zastosuj ewentualne nadpisania z linii poleceń do obiektu GAParams."""
    data = params.model_dump()

    if pop is not None:
        data["population"] = pop
    if generations is not None:
        data["generations"] = generations
    if trials is not None:
        data["trials"] = trials
    if pc is not None:
        data["pc"] = pc

    if k is not None:
        data["selection"]["k"] = k
    if p_win is not None:
        data["selection"]["p_win"] = p_win

    if patience is not None:
        data["early_stop"]["patience"] = patience
    if min_delta is not None:
        data["early_stop"]["min_delta"] = min_delta
    if time_limit is not None:
        data["time_limit_sec"] = time_limit

    if subset_mode is not None:
        data["subset"]["mode"] = subset_mode
    if subset_size is not None:
        data["subset"]["size"] = subset_size
    if subset_seed is not None:
        data["subset"]["seed"] = subset_seed

    if seeds_csv:
        seeds = [int(s) for s in seeds_csv.split(",") if s.strip()]
        if seeds:
            data["seeds"] = seeds

    return GAParams.model_validate(data)


DEFAULT_INSTANCE = Path("data/instances/toy-qkp-n8.txt")
DEFAULT_CONFIG = Path("configs/base.json")
DEFAULT_OUT = Path("experiments/results/auto.jsonl")


@app.command("greedy")
def greedy(
    instance: Path = typer.Option(
        DEFAULT_INSTANCE, "--instance", "-i",
        help=f"Plik z instancją (*.json lub tekstowy; domyślnie: {DEFAULT_INSTANCE})"
    ),
):
    """Uruchom greedy absolutny i relatywny na jednej instancji."""
    res = try_load_instance(instance)
    if not res.ok:
        print(f"[red]Nie udało się wczytać instancji ({res.error_kind}):[/red] {res.message}")
        raise typer.Exit(code=1)
    inst = res.instance

    table = Table(title=f"Greedy: {(inst.meta or {}).get('name', instance.name)}")   # type: ignore[union-attr]
    table.add_column("Heurystyka")
    table.add_column("Wartość", justify="right")
    table.add_column("Waga", justify="right")
    table.add_column("Wybrane id")

    for label, solver in (("absolute", greedy_absolute), ("relative", greedy_relative)):
        sol = solver(inst)                                                          # type: ignore[arg-type]
        table.add_row(label, f"{sol.value:g}", f"{sol.weight:g}/{inst.capacity:g}", " ".join(map(str, sol.selected)))  # type: ignore[union-attr]

    print(table)


@app.command("run-ga")
def run_ga(
    instance: Path = typer.Option(
        DEFAULT_INSTANCE, "--instance", "-i",
        help=f"Ścieżka do pliku *.json, *.jsonl lub tekstowego (domyślnie: {DEFAULT_INSTANCE})"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c",
        help=f"Plik konfiguracyjny JSON (np. {DEFAULT_CONFIG}); brak = wartości domyślne"
    ),
    out: Path = typer.Option(
        DEFAULT_OUT, "--out", "-o",
        help=f"Plik wynikowy *.jsonl (dopisywanie; domyślnie: {DEFAULT_OUT})"
    ),

    # Nadpisania popularnych parametrów:
    pop: Optional[int] = typer.Option(None, help="population (domyślnie n)"),
    generations: Optional[int] = typer.Option(None, help="generations (domyślnie 10*n)"),
    trials: Optional[int] = typer.Option(None, help="liczba niezależnych prób"),
    pc: Optional[float] = typer.Option(None, help="pc - prawdopodobieństwo krzyżowania"),

    # Selekcja
    k: Optional[int] = typer.Option(None, help="selection.k (rozmiar turnieju)"),
    p_win: Optional[float] = typer.Option(None, help="selection.p_win"),

    # Stop
    early_patience: Optional[int] = typer.Option(None, help="early_stop.patience"),
    early_delta: Optional[float] = typer.Option(None, help="early_stop.min_delta"),
    time_limit: Optional[float] = typer.Option(None, help="limit czasu jednej próby [s]"),

    # Subset
    subset_mode: Optional[str] = typer.Option(None, help='subset.mode: "none" | "random" | "first_k"'),
    subset_size: Optional[int] = typer.Option(None, help="subset.size"),
    subset_seed: Optional[int] = typer.Option(None, help="subset.seed"),

    # Seeds lista
    seeds_csv: Optional[str] = typer.Option(None, help='Nadpisz seeds: np. "0,1,2,3"'),
    log_every: int = typer.Option(50, help="Co ile generacji wypisywać postęp (0 = cisza)"),

    # Walidacja bez uruchamiania
    dry_run: bool = typer.Option(False, help="Tylko wczytaj i zweryfikuj config/instancje - nie uruchamiaj GA"),
):
    """Główna komenda: przygotuj parametry, wczytaj instancje i odpal serię prób GA."""
    # 1) Wczytaj config i zwaliduj
    params = GAParams.model_validate(read_json(config)) if config is not None else GAParams()

    # 2) Zastosuj ewentualne nadpisania z CLI
    params = _merge_overrides(
        params, pop, generations, trials, pc, k, p_win,
        early_patience, early_delta, time_limit,
        subset_mode, subset_size, subset_seed, seeds_csv,
    )

    print("[bold]Konfiguracja końcowa (parsowana i zwalidowana):[/bold]")
    print(params.model_dump(mode="json"))

    # 3) Policz instancje (bez ładowania wszystkich do pamięci na raz)
    count = 0
    first_meta = None
    for inst in iter_instances(instance):
        inst2 = apply_subset(inst, params.subset)
        count += 1
        if first_meta is None:
            first_meta = inst2.meta
    print(f"[green]Znaleziono instancji:[/green] {count}")
    if first_meta:
        print(f"Przykładowa meta pierwszej instancji: {first_meta}")

    if dry_run:
        print("[yellow]Dry-run zakończony. Nie uruchamiam GA.[/yellow]")
        raise typer.Exit(code=0)

    # 4) Runner sam strumieniuje instancje i dopisuje do pliku wynikowego
    run_experiment(instance_path=instance, params=params, out_path=out, log_every=log_every)
    print(f"[bold green]Zakończono. Wyniki w:[/bold green] {out}")


@app.command("convert")
def convert(
    src: Path = typer.Argument(..., help="Instancja wejściowa (*.json lub tekstowa)"),
    dst: Path = typer.Argument(..., help="Plik wyjściowy (*.json -> JSON, inne -> format tekstowy)"),
):
    """Przekonwertuj instancję między formatem tekstowym a JSON."""
    res = try_load_instance(src)
    if not res.ok:
        print(f"[red]Nie udało się wczytać instancji ({res.error_kind}):[/red] {res.message}")
        raise typer.Exit(code=1)
    write_instance(res.instance, dst)                                               # type: ignore[arg-type]
    print(f"[green]Zapisano:[/green] {dst}")


if __name__ == "__main__":
    app()
