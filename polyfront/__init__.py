"""
Polymarket Frontrun Bot

Watches a set of accounts for in-flight trades and reacts with a competing,
prioritized order.

Entry point: python -m polyfront.main

Key Modules:
- polyfront.signals: Live mempool listener, poll fallback, merger, aggregator
- polyfront.execution: Decision engine and order executor
- polyfront.clients: Polygon RPC, mempool websocket, data API and CLOB clients
- polyfront.pipeline: Queues and tasks wiring the stages together
"""
