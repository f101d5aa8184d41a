"""Clock Implementations.

Contains the wall-clock implementation used in production and a manually
advanced virtual clock for tests and simulations, both implementing the
`Clock` interface from the domain layer.
"""
