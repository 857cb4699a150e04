"""credits/ -- Per-business credit ledger for Exa.

Layer rule: credits/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, web/, auth/, business/, or mail/.
"""
