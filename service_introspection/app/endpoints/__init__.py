"""
Endpoint template matching (``/users/:id`` style patterns).
"""
