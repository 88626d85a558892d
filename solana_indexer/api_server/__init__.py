"""
API server package — read-only HTTP interface over the index.

Exposes indexed transactions and account snapshots; never writes to the store.
"""
