"""Expedition Chat: the CuratedAscents Expedition Architect.

Architecture Overview
=====================

A chat quoting agent for luxury adventure travel.  Each turn runs a
**LangGraph** loop with two nodes:

1. **chatbot** - calls DeepSeek (OpenAI-compatible API) with the
   conversation and a system prompt built from today's date, the channel
   (web or WhatsApp) and, for known clients, their profile and recent
   conversation memory.

2. **tools** - runs every tool call of the last response concurrently
   (rate search, quoting, bookings, permits, acclimatisation, upsells),
   strips cost and margin data from each result and hands it back.

Routing: chatbot → (tool calls, rounds left?) → tools → chatbot, capped at
ten tool rounds.

Key Design Decisions
--------------------
- **Pricing safety**: every tool result passes through the sanitiser, so
  cost prices and margins never reach the model.
- **Failure isolation**: a failing tool becomes an error result for that
  call only; a failing model call after the first ends the loop with the
  best answer so far.
- **Side effects**: lead scoring, memory writes and locale updates run
  detached on a background pool and never delay the reply.
- **Dual Interface**: FastAPI server (production) + CLI chat loop.

Package Structure
-----------------
- ``expedition_chat/agent.py`` - graph and ``ChatOrchestrator``
- ``expedition_chat/config.py`` - ``Settings`` from env / SSM
- ``expedition_chat/prompts.py`` - system prompt assembly
- ``expedition_chat/sanitizer.py`` - cost and margin stripping
- ``expedition_chat/language.py`` - script-based language detection
- ``expedition_chat/guardrails.py`` - input and output checks
- ``expedition_chat/memory.py`` / ``scoring.py`` - client memory and lead scores
- ``expedition_chat/background.py`` - fire-and-forget runner
- ``expedition_chat/server.py`` / ``main.py`` - FastAPI app and CLI
- ``expedition_chat/services/`` - CloudWatch metrics
- ``expedition_chat/tools/`` - tool schemas, registry, backend and pure tools
- ``expedition_chat/api/`` - FastAPI routes and Pydantic schemas
"""
