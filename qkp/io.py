"""
Plik: qkp/io.py

Cel i rola w projekcie
----------------------
Ten moduł odpowiada za *wszystkie operacje wejścia/wyjścia*:
- wczytywanie instancji QKP z plików JSON i JSONL (strumieniowo),
- wczytywanie i zapis klasycznego formatu tekstowego instancji QKP:
    linia 1:        nazwa instancji
    linia 2:        n (liczba przedmiotów)
    linia 3:        n wartości liniowych
    n-1 linii:      trójkąt górny wartości parami (wiersz i: p(i,i+1) ... p(i,n-1))
    pusta linia
    typ ograniczenia
    pojemność
    n wag
- zapis wyników pojedynczej próby GA do plików *.jsonl (1 linia = 1 wynik),
- opcjonalne *próbkowanie podzbioru przedmiotów* (subset) razem z przycięciem macierzy.

Granica wczytywania zwraca jawny rodzaj błędu (`try_load_instance` -> `LoadResult`),
a `load_instance` to wariant zgłaszający wyjątek dla wygody w skryptach.

Jak łączy się z resztą:
- korzysta z modeli z `qkp/model.py` (Pydantic) do walidacji struktur danych,
- jest używany przez `qkp/cli.py` i `qkp/runner.py`.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

import numpy as np
import orjson

from .errors import InstanceFormatError, InvalidInstance
from .model import Instance, InteractionMatrix, SubsetConfig, validate_instance_dict

TEXT_SUFFIXES = {".txt", ".dat", ".qkp"}


# -- JSON utils -------------------------------------------------------------------------------------
def _loads(s: Union[str, bytes]) -> Dict:
    """Parse JSON string/bytes -> dict"""
    return orjson.loads(s)

def _dumps(obj: Dict) -> str:
    """Dump dict -> JSON string (orjson rozumie też tablice NumPy)."""
    return orjson.dumps(obj, option=orjson.OPT_SERIALIZE_NUMPY).decode("utf-8")



# -- Wczytywanie instancji JSON ----------------------------------------------------------------------
def read_json(path: Union[str, Path]) -> Dict:
    """Wczytuje plik JSON i zwraca jego zawartość jako słownik."""
    p = Path(path)
    return _loads(p.read_bytes())

def iter_jsonl(path: Union[str, Path]) -> Iterator[Dict]:
    """Iteruj po rekordach pliku JSONL (1 linia = 1 instancja), pomijając puste linie."""
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            yield _loads(line)

def load_instance_from_dict(d: Dict) -> Instance:
    """Zamień słownik na zwalidowaną instancję `Instance` (błąd -> InvalidInstance)."""
    return validate_instance_dict(d)

def instance_to_dict(inst: Instance) -> Dict:
    """Postać JSON instancji; macierz zawsze zapisujemy w pełnej postaci n x n."""
    data = inst.model_dump(mode="json")
    data["pairwise"] = inst.interactions.dense.tolist()
    return data



# -- Format tekstowy -----------------------------------------------------------------------------------
def _num(tok: str) -> float:
    try:
        return float(tok)
    except ValueError as e:
        raise InstanceFormatError(f"Niepoprawna liczba: {tok!r}") from e


def parse_qkp_text(text: str) -> Instance:
    """
    Sparsuj instancję w formacie tekstowym. Liczby czytamy jako strumień
    tokenów, więc podział na linie (poza linią z nazwą) nie ma znaczenia.
    """
    lines = text.splitlines()
    if not lines:
        raise InstanceFormatError("Pusty plik instancji")
    name = lines[0].strip()
    tokens = " ".join(lines[1:]).split()
    if not tokens:
        raise InstanceFormatError("Brak liczby przedmiotów")

    n_raw = _num(tokens[0])
    if not n_raw.is_integer() or n_raw < 0:
        raise InstanceFormatError(f"Liczba przedmiotów musi być nieujemną liczbą całkowitą: {tokens[0]!r}")
    n = int(n_raw)

    n_pairs = n * (n - 1) // 2
    expected = 1 + n + n_pairs + 2 + n
    if len(tokens) != expected:
        raise InstanceFormatError(f"Oczekiwano {expected} liczb dla n={n}, jest {len(tokens)}")

    nums = [_num(t) for t in tokens[1:]]
    values = nums[:n]
    tri_flat = nums[n:n + n_pairs]
    constraint_type = nums[n + n_pairs]
    capacity = nums[n + n_pairs + 1]
    weights = nums[n + n_pairs + 2:]

    rows: List[List[float]] = []
    pos = 0
    for i in range(n - 1):
        width = n - i - 1
        rows.append(tri_flat[pos:pos + width])
        pos += width

    if not constraint_type.is_integer():
        raise InstanceFormatError(f"Typ ograniczenia musi być liczbą całkowitą: {constraint_type}")

    matrix = InteractionMatrix.from_upper_triangle(n, rows)
    data = {
        "capacity": capacity,
        "items": [{"id": i, "weight": w, "value": v} for i, (w, v) in enumerate(zip(weights, values))],
        "pairwise": matrix.dense.tolist(),
        "constraint_type": int(constraint_type),
        "meta": {"name": name},
    }
    return load_instance_from_dict(data)


def _fmt(x: float) -> str:
    x = float(x)
    return str(int(x)) if x.is_integer() else repr(x)


def format_qkp_text(inst: Instance, name: Optional[str] = None) -> str:
    """Zapisz instancję w formacie tekstowym (odwrotność `parse_qkp_text`)."""
    if name is None:
        name = str((inst.meta or {}).get("name", "qkp"))
    out = [name, str(inst.n_items), " ".join(_fmt(v) for v in inst.values)]
    out += [" ".join(_fmt(v) for v in row) for row in inst.interactions.upper_rows()]
    out += ["", str(inst.constraint_type), _fmt(inst.capacity), " ".join(_fmt(w) for w in inst.weights)]
    return "\n".join(out) + "\n"


def load_qkp_text(path: Union[str, Path]) -> Instance:
    """Wczytaj instancję z pliku tekstowego (plik musi być w UTF-8)."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise InstanceFormatError(f"{p}: plik nie jest poprawnym UTF-8 ({e.reason} na bajcie {e.start})") from e
    return parse_qkp_text(text)



# -- Wczytywanie: wspólny interfejs ----------------------------------------------------------------------
def load_instance(path: Union[str, Path]) -> Instance:
    """Wczytaj pojedynczą instancję (*.json albo format tekstowy)."""
    p = Path(path)
    if p.suffix == ".json":
        return load_instance_from_dict(read_json(p))
    return load_qkp_text(p)

def iter_instances(path: Union[str, Path]) -> Iterator[Instance]:
    """
    Wczytaj jedną lub wiele instancji:
     - *.json -> dokładnie jedna instancja
     - *.jsonl -> wiele instancji (1 linia = 1 instancja)
     - *.txt / *.dat / *.qkp -> jedna instancja w formacie tekstowym
    """
    p = Path(path)
    if p.suffix == ".jsonl":
        for rec in iter_jsonl(p):
            yield load_instance_from_dict(rec)
    elif p.suffix == ".json" or p.suffix in TEXT_SUFFIXES:
        yield load_instance(p)
    else:
        raise ValueError(f"Nieobsługiwany format pliku: {p.suffix}. Obsługiwane: .json, .jsonl, .txt, .dat, .qkp")


@dataclass(frozen=True)
class LoadResult:
    """Wynik wczytania: albo instancja, albo rodzaj błędu ("not_found" | "format" | "invalid")."""
    instance: Optional[Instance] = None
    error_kind: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.instance is not None


def try_load_instance(path: Union[str, Path]) -> LoadResult:
    """Wczytaj instancję bez zgłaszania wyjątków - błąd wraca jako `LoadResult.error_kind`."""
    try:
        return LoadResult(instance=load_instance(path))
    except FileNotFoundError as e:
        return LoadResult(error_kind="not_found", message=str(e))
    except InvalidInstance as e:
        return LoadResult(error_kind="invalid", message=str(e))
    except (InstanceFormatError, orjson.JSONDecodeError) as e:
        return LoadResult(error_kind="format", message=str(e))



# -- Subsetowanie przedmiotów (wybór tylko kilku z całego zbioru) ---------------------------------------
def apply_subset(inst: Instance, subset: Optional[SubsetConfig]) -> Instance:
    """
    Zastosuj reguły subsetowania (none/random/first_k).
    Zwraca "nową" instancję (id przenumerowane od 0, macierz przycięta),
    a oryginał pozostaje niezmieniony.
    """
    if not subset or subset.mode == "none":
        return inst

    n = inst.n_items
    k = min(subset.size, n)
    if subset.mode == "first_k":
        picked = np.arange(k)
    elif subset.mode == "random":
        rng = np.random.default_rng(subset.seed)
        picked = np.sort(rng.permutation(n)[:k])
    else:   # pragma: no cover
        raise ValueError(f"Nieobsługiwany tryb subsetowania: {subset.mode}")

    # Notujemy w meta, że zastosowano subsetowanie, dla czytelności w wynikach
    meta = dict(inst.meta or {})
    meta["subset_applied"] = True
    meta["subset_mode"] = subset.mode
    meta["subset_size"] = k

    data = {
        "capacity": inst.capacity,
        "items": [
            {"id": new_id, "weight": inst.items[old].weight, "value": inst.items[old].value}
            for new_id, old in enumerate(picked.tolist())
        ],
        "pairwise": inst.interactions.dense[np.ix_(picked, picked)].tolist(),
        "constraint_type": inst.constraint_type,
        "meta": meta,
    }
    return load_instance_from_dict(data)



# -- Zapis wyników ---------------------------------------------------------------------------------------
def write_run_result(run: Dict, out_path: Union[str, Path]) -> None:
    """Dopisz pojedynczy wynik (dict) jako jedną linię w wynikowym JSONL"""
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    line = _dumps(run)
    with p.open("a", encoding="utf-8") as f:
        f.write(line)
        f.write("\n")


def write_instance(inst: Instance, out_path: Union[str, Path]) -> None:
    """Zapisz instancję jako JSON albo w formacie tekstowym (po rozszerzeniu)."""
    p = Path(out_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if p.suffix == ".json":
        p.write_text(_dumps(instance_to_dict(inst)), encoding="utf-8")
    else:
        p.write_text(format_qkp_text(inst), encoding="utf-8")
