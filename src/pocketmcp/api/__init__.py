# HTTP API: routers and app factories.
# Created: 2026-02-20
