"""business/ -- Business profiles, team membership, and invitations.

Layer rule: business/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, web/, auth/, credits/, or mail/.
api/ wires users (auth/) and businesses together, not the other way around.
"""
