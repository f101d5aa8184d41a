"""Domain Event definitions.

Represents significant resilience decisions (tokens granted or deferred,
retries scheduled, circuit transitions) that other parts of the system
might react to.
"""
