"""Domain Layer: value objects, failure classification, events and ports.

Has no dependency on the infrastructure layer.
"""
