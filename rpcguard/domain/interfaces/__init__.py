"""Domain Interfaces (Ports):

Defines the contracts (Abstract Base Classes) that infrastructure components
must implement. The resilience components depend on these interfaces, not
concrete implementations.
"""
