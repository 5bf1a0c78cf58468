"""
Asset lifecycle engine.

    config.py         Layered configuration (defaults, YAML, KASSET_* env)
    observability.py  Structured JSON logging and tracing spans
    events.py         Phase events and the observer capability
    options.py        Per-call option defaulting and validation
    services.py       Chain and node collaborator protocols
    mock.py           In-memory collaborators
    polling.py        Bounded operation polling
    bids.py           Bid estimation and agreement ids
    lifecycle.py      Create/update pipeline phases
    orchestrator.py   Public asset operations
"""
