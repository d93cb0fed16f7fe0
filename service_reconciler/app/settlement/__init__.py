"""
Settlement pipeline for usage records.

Modules of interest:
- resolver: record validation, service/subscription lookup and the
  batch-scoped contract cache.
- executor: charge computation and the balance-capped debit.
- recorder: writes outcomes back into the work queue.
"""
