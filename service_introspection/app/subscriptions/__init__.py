"""
Subscription checks run before a token-bearing request is allowed.
"""
