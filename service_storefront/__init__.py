"""
Storefront service: cache-backed catalog access over a resilient GraphQL pipeline.
"""
