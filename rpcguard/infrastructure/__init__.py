"""Infrastructure Layer: Contains concrete implementations and adapters.

Implements the interfaces defined in the domain layer (clocks, console UI)
and holds the resilience components, configuration loading and logging setup.
"""
