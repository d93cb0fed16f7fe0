"""
Durable work queue of usage records written by the log-ingestion shim.
"""
