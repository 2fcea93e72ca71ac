"""
Ready-made producers for watchers.
"""
