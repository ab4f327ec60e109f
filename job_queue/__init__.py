"""
Message Bus — Decouples the orchestrator from the agents that consume its work.

- The orchestrator PUBLISHES work items to one channel per worker
- Workers CONSUME work items and PUBLISH results to the validation channel
- Supports Redis Streams (durable) and in-memory asyncio.Queue (dev)
"""
