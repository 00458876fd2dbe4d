"""
Plik: qkp/errors.py

Wspólne wyjątki projektu. Błędy strukturalne instancji (`InvalidInstance`)
zgłaszamy od razu na granicy wczytywania i nie dopuszczamy ich do solverów.
Pozostałe przypadki brzegowe (przedmiot cięższy niż pojemność, pusta mutacja)
nie są błędami - solvery obsługują je same.
"""
from __future__ import annotations


class QKPError(Exception):
    """Bazowy wyjątek pakietu."""


class InvalidInstance(QKPError, ValueError):
    """Naruszony niezmiennik instancji (puste przedmioty, ujemna pojemność, zły wymiar macierzy...)."""


class InstanceFormatError(QKPError, ValueError):
    """Plik tekstowy z instancją nie pasuje do oczekiwanego formatu."""
