"""
Python client for the MURRS API: the typed REST client, the session store built on it,
and the role-gated navigation and catalog helpers used by front ends.
"""
