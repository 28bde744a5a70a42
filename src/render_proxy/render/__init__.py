"""Render orchestration engine.

Turns a raw render query into a fully rendered HTML document using a
bounded pool of headless browser contexts.

Sub-modules:
- ``config``     : constants and tuning parameters
- ``models``     : requests, tasks, outcomes and option variants
- ``normalizer`` : canonical URL construction from the raw query
- ``domain_gate``: optional hostname allow-list
- ``user_agent`` : user-agent strategy resolution
- ``cache``      : in-process LRU + TTL result cache
- ``browser``    : Playwright-backed browser engine and execution contexts
- ``pipeline``   : per-task navigate / retry / redirect / extract state machine
- ``pool``       : fixed-size worker pool with a FIFO task queue
- ``hooks``      : ``before_render`` / ``after_render`` observers
- ``service``    : ``RenderService`` composition root
"""
