"""
Introspection Service package for the Credit Gateway.

The reverse proxy asks this service, for every incoming request, whether it
may be forwarded upstream and with which credential. It provides:

- app.main: API surface (``POST /introspect``), banner and health.
- app.engine: Allow/Deny decision, including the open-access fallback.
- app.tokens: Access token decryption and claim models.
- app.endpoints: Endpoint template matching.
- app.subscriptions: Subscription balance checks against the ledger.
- app.credentials: Upstream Authorization header composition.

Guidelines:
- The service is stateless; every decision reads the registry and ledger.
- Denials surface as an opaque 401; reasons only go to the operator log.
"""
