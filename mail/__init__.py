"""mail/ -- Transactional email for Exa.

Layer rule: mail/ imports only stdlib, third-party libraries, and core/.
Callers hand it plain values (addresses, names, URLs), never domain objects.
"""
