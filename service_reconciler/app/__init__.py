"""
Reconciler Service package for the Credit Gateway.

Settles usage reported by the proxy's access log against consumers'
on-ledger credit balances. It provides:

- app.main: Process entrypoint, signal handling and metrics server.
- app.loop: The supervised reconciliation cycle.
- app.queue: PostgreSQL work queue of usage records.
- app.settlement: Record resolution, charge computation, debit and
  outcome recording.

Guidelines:
- Run exactly one instance against a given queue; records are processed
  sequentially and debits are capped by the observed balance.
- Per-record errors become retry increments; only store or configuration
  errors stop the process.
"""
