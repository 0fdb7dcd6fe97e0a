"""
Services Layer

Fixture engine and its persistence orchestration:
- Pure engine modules (round_robin, slot_allocator, standings, bracket_builder,
  stage_machine) take value types and return value types, no I/O
- stage_orchestrator converts rows to engine inputs and persists engine output
- Do NOT depend on HTTP request/response objects
"""
