"""Heurystyki zachłanne i algorytm genetyczny dla kwadratowego problemu plecakowego (QKP)."""
