"""powermem_core test suite.

- unit: individual components
- integration: stores and adapters working together
- e2e: full Memory workflows
"""
