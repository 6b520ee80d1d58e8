"""
Supply-chain tracker — Sync Coordinator Package.

Components:
    - coordinator: two-phase writes (ledger first, then store) and their failure policy
    - history: merge of on-chain events with the stored record
    - store: SQLAlchemy persistence of Product records
    - errors: coordinator failure taxonomy
"""
